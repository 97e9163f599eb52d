"""WADO-RS retrieval: transport, image ids, byte cache and prefetching."""

from .byte_cache import EvictionPolicy, ImageByteCache
from .client import BinaryRetriever, HttpxRetriever, RetrievalResponse
from .prefetcher import PrefetchOutcome, SeriesSamplePrefetcher

__all__ = [
    "BinaryRetriever",
    "EvictionPolicy",
    "HttpxRetriever",
    "ImageByteCache",
    "PrefetchOutcome",
    "RetrievalResponse",
    "SeriesSamplePrefetcher",
]
