"""Default physics registry.

Clinically sane pixel, VOI and rescale defaults used when neither the
manifest nor the sampled image supplies a value. Profiles are keyed by
modality; a second registry keyed by SOP class covers manifests that carry
no modality and supplies one.

References:
- DICOM PS3.3 C.7.6.3 (Image Pixel Module)
- DICOM PS3.3 C.11.2 (VOI LUT Module)
- DICOM PS3.4 B.5 (Standard SOP Classes)

"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

# Storage SOP class UIDs (PS3.4 B.5)
CT_IMAGE_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.2"
ENHANCED_CT_IMAGE_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.2.1"
MR_IMAGE_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.4"
ENHANCED_MR_IMAGE_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.4.1"
PET_IMAGE_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.128"
NM_IMAGE_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.20"
DX_IMAGE_STORAGE_FOR_PRESENTATION: Final[str] = "1.2.840.10008.5.1.4.1.1.1.1"
VL_ENDOSCOPIC_IMAGE_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.77.1.1"
VIDEO_ENDOSCOPIC_IMAGE_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.77.1.1.1"
SC_MULTIFRAME_TRUE_COLOR_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.7.4"
SECONDARY_CAPTURE_IMAGE_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.7"
RT_IMAGE_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.481.1"
ENCAPSULATED_PDF_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.104.1"


@dataclass(frozen=True)
class PhysicsProfile:
    """Defaults for one modality or SOP class; None means no opinion."""

    modality: str | None = None
    pixel_representation: int | None = None
    rescale_intercept: float | None = None
    rescale_slope: float | None = None
    rescale_type: str | None = None
    window_center: float | None = None
    window_width: float | None = None
    bits_allocated: int | None = None
    bits_stored: int | None = None
    high_bit: int | None = None
    samples_per_pixel: int | None = None
    photometric_interpretation: str | None = None
    planar_configuration: int | None = None
    rows: int | None = None
    columns: int | None = None
    pixel_spacing: tuple[float, float] | None = None
    presentation_intent_type: str | None = None
    is_document: bool = False


GENERIC_PROFILE: Final = PhysicsProfile()

_CT = PhysicsProfile(
    modality="CT",
    pixel_representation=1,  # signed Hounsfield units
    rescale_intercept=-1024.0,
    rescale_slope=1.0,
    window_center=40.0,
    window_width=400.0,
)
_MR = PhysicsProfile(modality="MR", window_center=600.0, window_width=1200.0)
_PT = PhysicsProfile(
    modality="PT",
    rescale_type="BQML",
    rows=128,
    columns=128,
    window_center=20.0,
    window_width=40.0,
)

MODALITY_PROFILES: Final[dict[str, PhysicsProfile]] = {
    "CT": _CT,
    "MR": _MR,
    "PT": _PT,
    "US": PhysicsProfile(
        modality="US",
        samples_per_pixel=3,
        photometric_interpretation="YBR_FULL_422",
        bits_allocated=8,
    ),
    "XA": PhysicsProfile(modality="XA", bits_allocated=8, bits_stored=8, high_bit=7),
    # Slide microscopy / whole slide imaging
    "SM": PhysicsProfile(
        modality="SM",
        samples_per_pixel=3,
        photometric_interpretation="YBR_FULL",
        planar_configuration=0,
    ),
    "OT": PhysicsProfile(modality="OT"),
}

_ENDOSCOPY = PhysicsProfile(
    modality="ES",
    samples_per_pixel=3,
    photometric_interpretation="RGB",
    bits_allocated=8,
    bits_stored=8,
    high_bit=7,
)

SOP_CLASS_PROFILES: Final[dict[str, PhysicsProfile]] = {
    CT_IMAGE_STORAGE: _CT,
    ENHANCED_CT_IMAGE_STORAGE: _CT,
    MR_IMAGE_STORAGE: _MR,
    ENHANCED_MR_IMAGE_STORAGE: _MR,
    PET_IMAGE_STORAGE: _PT,
    NM_IMAGE_STORAGE: _PT,
    DX_IMAGE_STORAGE_FOR_PRESENTATION: PhysicsProfile(
        modality="DX",
        bits_stored=12,
        high_bit=11,
        pixel_spacing=(0.15, 0.15),
        presentation_intent_type="FOR PRESENTATION",
    ),
    VL_ENDOSCOPIC_IMAGE_STORAGE: _ENDOSCOPY,
    VIDEO_ENDOSCOPIC_IMAGE_STORAGE: _ENDOSCOPY,
    SC_MULTIFRAME_TRUE_COLOR_STORAGE: _ENDOSCOPY,
    RT_IMAGE_STORAGE: PhysicsProfile(
        modality="RTIMG", window_center=2048.0, window_width=4096.0
    ),
    ENCAPSULATED_PDF_STORAGE: PhysicsProfile(modality="DOC", is_document=True),
}

DEFAULT_SOP_CLASS_UID: Final[str] = SECONDARY_CAPTURE_IMAGE_STORAGE


def modality_for_sop_class(sop_class_uid: str | None) -> str | None:
    """Modality implied by a SOP class, if the registry knows it."""
    profile = SOP_CLASS_PROFILES.get(sop_class_uid or "")
    return profile.modality if profile else None


def profile_for(modality: str | None, sop_class_uid: str | None) -> PhysicsProfile:
    """Modality profile, else SOP class profile, else the empty generic one."""
    if modality:
        profile = MODALITY_PROFILES.get(modality.upper())
        if profile is not None and profile is not MODALITY_PROFILES["OT"]:
            return profile
    return SOP_CLASS_PROFILES.get(sop_class_uid or "", GENERIC_PROFILE)
