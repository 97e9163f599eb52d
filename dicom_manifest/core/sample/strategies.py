"""Parsing strategies for sample image buffers.

Each strategy declares whether it can plausibly handle a buffer and returns
a uniform hit/miss result. Strategies do not raise to hand control to the
next one; the extractor simply moves on after a miss.
"""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from typing import Protocol, runtime_checkable

import pydicom
from pydicom.errors import InvalidDicomError

from dicom_manifest.core.constants import (
    EXPLICIT_VR_LITTLE_ENDIAN,
    IMPLICIT_VR_LITTLE_ENDIAN,
)
from dicom_manifest.core.sample.mapping import dataset_to_metadata
from dicom_manifest.core.sample.p10 import has_p10_preamble, wrap_dataset_in_p10
from dicom_manifest.core.sample.scanner import scan_common_tags
from dicom_manifest.core.types import ExtractedSampleMetadata
from dicom_manifest.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class StrategyResult:
    """Outcome of one strategy: metadata on a hit, a reason on a miss."""

    strategy: str
    metadata: ExtractedSampleMetadata | None = None
    reason: str | None = None

    @property
    def hit(self) -> bool:
        return self.metadata is not None

    @classmethod
    def success(cls, strategy: str, metadata: ExtractedSampleMetadata) -> StrategyResult:
        return cls(strategy=strategy, metadata=metadata)

    @classmethod
    def miss(cls, strategy: str, reason: str) -> StrategyResult:
        return cls(strategy=strategy, reason=reason)


@runtime_checkable
class ParseStrategy(Protocol):
    """Capability check plus parse for one buffer shape."""

    name: str

    def can_parse(self, data: bytes) -> bool: ...

    def parse(self, data: bytes) -> StrategyResult: ...


def _read_structured(name: str, framed: bytes) -> StrategyResult:
    try:
        ds = pydicom.dcmread(BytesIO(framed), stop_before_pixels=True)
        metadata = dataset_to_metadata(ds)
    except InvalidDicomError as e:
        return StrategyResult.miss(name, f"invalid dicom: {e}")
    except Exception as e:
        # pydicom surfaces malformed input as a wide range of exception types
        return StrategyResult.miss(name, f"{type(e).__name__}: {e}")

    if not metadata.has_geometry_signal():
        return StrategyResult.miss(name, "no rows, columns or pixel spacing")
    return StrategyResult.success(name, metadata)


class Part10Strategy:
    """Buffers that already carry the preamble and ``DICM`` marker."""

    name = "p10"

    def can_parse(self, data: bytes) -> bool:
        return has_p10_preamble(data)

    def parse(self, data: bytes) -> StrategyResult:
        return _read_structured(self.name, data)


class WrappedDatasetStrategy:
    """Bare datasets, given a synthetic file meta header before parsing."""

    def __init__(self, name: str, transfer_syntax_uid: str):
        self.name = name
        self.transfer_syntax_uid = transfer_syntax_uid

    def can_parse(self, data: bytes) -> bool:
        return len(data) >= 8 and not has_p10_preamble(data)

    def parse(self, data: bytes) -> StrategyResult:
        return _read_structured(
            self.name, wrap_dataset_in_p10(data, self.transfer_syntax_uid)
        )


class ByteScanStrategy:
    """Heuristic tag walk; hits when anything at all was recovered."""

    name = "byte-scan"

    def can_parse(self, data: bytes) -> bool:
        return len(data) >= 8

    def parse(self, data: bytes) -> StrategyResult:
        metadata = scan_common_tags(data)
        if metadata.is_empty():
            return StrategyResult.miss(self.name, "no whitelisted tags found")
        return StrategyResult.success(self.name, metadata)


def default_strategies() -> list[ParseStrategy]:
    """The standard order: Part 10, implicit wrap, explicit wrap, byte scan."""
    return [
        Part10Strategy(),
        WrappedDatasetStrategy("wrapped-implicit", IMPLICIT_VR_LITTLE_ENDIAN),
        WrappedDatasetStrategy("wrapped-explicit", EXPLICIT_VR_LITTLE_ENDIAN),
        ByteScanStrategy(),
    ]
