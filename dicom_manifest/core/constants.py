"""Shared constants for manifest parsing, retrieval and synthesis.

References:
- DICOM PS3.3 C.17.6 (Key Object Selection Document)
- DICOM PS3.18 (Web Services, WADO-RS)
- IHE RAD MADO (Manifest-based Access to DICOM Objects)

"""

from __future__ import annotations

from typing import Final

from pydicom.tag import Tag

# =============================================================================
# Transfer Syntaxes
# =============================================================================

IMPLICIT_VR_LITTLE_ENDIAN: Final[str] = "1.2.840.10008.1.2"
EXPLICIT_VR_LITTLE_ENDIAN: Final[str] = "1.2.840.10008.1.2.1"

# =============================================================================
# Part 10 Framing
# =============================================================================

PREAMBLE_LENGTH: Final[int] = 128
DICM_MAGIC: Final[bytes] = b"DICM"

# Explicit VRs encoded with 2 reserved bytes and a 4-byte length
LONG_LENGTH_VRS: Final[frozenset[str]] = frozenset(
    {"OB", "OD", "OF", "OL", "OV", "OW", "SQ", "SV", "UC", "UR", "UT", "UN", "UV"}
)

PIXEL_DATA_TAG = Tag(0x7FE0, 0x0010)

# =============================================================================
# Manifest Content Sequence Codes (IHE MADO)
# =============================================================================

CODE_SERIES_DESCRIPTION: Final[str] = "ddd002"
CODE_SERIES_DATE: Final[str] = "ddd003"
CODE_SERIES_TIME: Final[str] = "ddd004"
CODE_SERIES_NUMBER: Final[str] = "ddd005"
CODE_SERIES_INSTANCE_UID: Final[str] = "ddd006"
CODE_NUMBER_OF_SERIES_RELATED_INSTANCES: Final[str] = "ddd007"
CODE_INSTANCE_NUMBER: Final[str] = "ddd008"
CODE_MODALITY: Final[str] = "121139"

DEFAULT_SERIES_DESCRIPTION: Final[str] = "MADO Series"

# =============================================================================
# WADO-RS Content Negotiation
# =============================================================================

#: Accept headers tried in order until one succeeds
ACCEPT_LADDER: Final[tuple[str, ...]] = (
    'multipart/related; type="application/octet-stream"; transfer-syntax=*',
    'multipart/related; type="application/dicom"',
    "application/dicom",
)

# =============================================================================
# Image Identifier Schemes
# =============================================================================

WADORS_SCHEME: Final[str] = "wadors:"
WADOURI_SCHEME: Final[str] = "wadouri:"
FALLBACK_SCHEME: Final[str] = "mado:"
VALID_IMAGE_ID_SCHEMES: Final[tuple[str, ...]] = (WADORS_SCHEME, WADOURI_SCHEME)

# =============================================================================
# Synthesis Defaults
# =============================================================================

DEFAULT_FRAME_TIME_MS: Final[float] = 33.33
FRAME_TIME_POINTER: Final[str] = "(0018,1063)"
PALETTE_COLOR: Final[str] = "PALETTE COLOR"
