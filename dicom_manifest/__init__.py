"""
dicom-manifest - metadata synthesis from MADO manifests.

Turns a UID-only Key Object Selection manifest into fully populated
per-instance metadata by sampling one image per series over WADO-RS.
"""

__version__ = "1.0.0"
__license__ = "MIT"

from dicom_manifest.core.manifest.parser import ManifestParser
from dicom_manifest.core.pipeline import LoadResult, ManifestLoader
from dicom_manifest.core.retrieval.byte_cache import ImageByteCache
from dicom_manifest.core.retrieval.client import HttpxRetriever
from dicom_manifest.core.retrieval.prefetcher import SeriesSamplePrefetcher
from dicom_manifest.core.sample.extractor import SampleMetadataExtractor
from dicom_manifest.core.store.bridge import InMemoryMetadataStore, StoreBridge
from dicom_manifest.core.synthesis.synthesizer import MetadataSynthesizer

__all__ = [
    "__version__",
    "__license__",
    "HttpxRetriever",
    "ImageByteCache",
    "InMemoryMetadataStore",
    "LoadResult",
    "ManifestLoader",
    "ManifestParser",
    "MetadataSynthesizer",
    "SampleMetadataExtractor",
    "SeriesSamplePrefetcher",
    "StoreBridge",
]
