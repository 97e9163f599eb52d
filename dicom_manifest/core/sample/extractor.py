"""Sample metadata extraction from fetched image bytes."""

from __future__ import annotations

from collections.abc import Iterable

from dicom_manifest.core.exceptions import UnparsableBufferError
from dicom_manifest.core.sample.strategies import (
    ParseStrategy,
    StrategyResult,
    default_strategies,
)
from dicom_manifest.core.types import ExtractedSampleMetadata
from dicom_manifest.utils.logger import get_logger

logger = get_logger(__name__)


class SampleMetadataExtractor:
    """Runs parse strategies in order and returns the first hit.

    Example:
        >>> extractor = SampleMetadataExtractor()
        >>> metadata = extractor.extract(response_body)
        >>> metadata.rows, metadata.columns
        (512, 512)

    """

    def __init__(self, strategies: Iterable[ParseStrategy] | None = None):
        self.strategies: list[ParseStrategy] = (
            list(strategies) if strategies is not None else default_strategies()
        )

    def run(self, data: bytes) -> list[StrategyResult]:
        """Attempt strategies until one hits; returns every attempt made."""
        attempts: list[StrategyResult] = []
        for strategy in self.strategies:
            if not strategy.can_parse(data):
                continue
            result = strategy.parse(data)
            attempts.append(result)
            if result.hit:
                break
            logger.debug(
                "sample_strategy_missed", strategy=strategy.name, reason=result.reason
            )
        return attempts

    def extract(self, data: bytes) -> ExtractedSampleMetadata:
        """Extract sample metadata from ``data``.

        Raises:
            UnparsableBufferError: If no strategy produced a result

        """
        attempts = self.run(data)
        if attempts and attempts[-1].hit:
            result = attempts[-1]
            logger.debug(
                "sample_extracted",
                strategy=result.strategy,
                fields=len(result.metadata.present_fields()),
            )
            return result.metadata

        raise UnparsableBufferError(
            "No strategy could parse sample buffer",
            error_code="unparsable_buffer",
            context={
                "size": len(data),
                "attempts": {a.strategy: a.reason for a in attempts},
            },
        )


_default_extractor = SampleMetadataExtractor()


def extract(data: bytes) -> ExtractedSampleMetadata:
    """Extract with the default strategy order."""
    return _default_extractor.extract(data)
