"""Sample image metadata extraction."""

from .extractor import SampleMetadataExtractor, extract
from .mapping import dataset_to_metadata
from .multipart import extract_first_part_from_multipart
from .p10 import wrap_dataset_in_p10
from .scanner import scan_common_tags
from .strategies import ParseStrategy, StrategyResult, default_strategies

__all__ = [
    "ParseStrategy",
    "SampleMetadataExtractor",
    "StrategyResult",
    "dataset_to_metadata",
    "default_strategies",
    "extract",
    "extract_first_part_from_multipart",
    "scan_common_tags",
    "wrap_dataset_in_p10",
]
