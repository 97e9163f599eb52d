"""Custom exceptions for manifest loading operations.

This module defines the exception hierarchy for the manifest loader,
providing detailed error information and categorization.

Fatal conditions (the whole manifest load must be abandoned) derive from
ManifestError. Per-series conditions (RetrievalError, UnparsableBufferError)
are caught by the prefetcher and only cause that series to be skipped.
"""

from typing import Any


class DicomManifestError(Exception):
    """Base exception for manifest loading operations.

    Attributes:
        message: Human-readable error description
        error_code: Optional error code for categorization
        context: Additional context information

    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}


class ManifestError(DicomManifestError):
    """Raised when a manifest cannot be loaded at all."""

    pass


class ManifestFetchError(ManifestError):
    """Raised when the manifest retrieval returns a non-success status."""

    pass


class ManifestParseError(ManifestError):
    """Raised when the manifest bytes cannot be read as a DICOM file."""

    pass


class MissingStudyUIDError(ManifestError):
    """Raised when the manifest lacks the top-level StudyInstanceUID."""

    pass


class ManifestValidationError(ManifestError):
    """Raised when a parsed manifest has no renderable series."""

    pass


class RetrievalError(DicomManifestError):
    """Raised by a retriever when the transport itself fails."""

    pass


class UnparsableBufferError(DicomManifestError):
    """Raised when every extraction strategy missed on a sample buffer."""

    pass
