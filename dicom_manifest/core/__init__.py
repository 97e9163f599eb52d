"""Core manifest loading functionality.

Manifest parsing, sample extraction, WADO-RS prefetching, metadata
synthesis and the store bridge, plus the shared record types, exceptions
and configuration they use.
"""

from .exceptions import (
    DicomManifestError,
    ManifestError,
    ManifestFetchError,
    ManifestParseError,
    ManifestValidationError,
    MissingStudyUIDError,
    RetrievalError,
    UnparsableBufferError,
)
from .types import (
    ExtractedSampleMetadata,
    ImageUIDs,
    InstanceReference,
    SeriesDescriptor,
    SeriesRecord,
    SynthesizedInstanceRecord,
)

__all__ = [
    # Exceptions
    "DicomManifestError",
    "ManifestError",
    "ManifestFetchError",
    "ManifestParseError",
    "ManifestValidationError",
    "MissingStudyUIDError",
    "RetrievalError",
    "UnparsableBufferError",
    # Records
    "ExtractedSampleMetadata",
    "ImageUIDs",
    "InstanceReference",
    "SeriesDescriptor",
    "SeriesRecord",
    "SynthesizedInstanceRecord",
]
