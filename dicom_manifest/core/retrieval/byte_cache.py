"""Prefetched Image Byte Cache

Holds the raw bytes of images fetched while sampling series, keyed by the
image identifier they will later be requested under, so the first image of
every series does not have to be downloaded twice.

CACHE STRATEGY:
- Owned by the caller and injected into the prefetcher and the store bridge
- Append-only during a load: ``put`` never replaces an existing key
- LRU eviction when entry or byte limits are exceeded (or no eviction at all)
- Cache statistics tracking (hits, misses, evictions)

USAGE:
    cache = ImageByteCache(max_entries=256, max_size_mb=512)

    cache.put("wadors:https://pacs/studies/1/series/2/instances/3", data)
    data = cache.get("wadors:https://pacs/studies/1/series/2/instances/3")

    stats = cache.get_statistics()
    print(f"Hit rate: {stats['hit_rate']:.1%}")
"""

import time
from collections import OrderedDict
from collections.abc import Hashable
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from dicom_manifest.utils.logger import get_logger

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)


class EvictionPolicy(str, Enum):
    """How the cache makes room once a limit is reached."""

    LRU = "lru"
    NONE = "none"


@dataclass
class CacheEntry:
    """Single cache entry with access bookkeeping."""

    data: bytes
    size_bytes: int
    access_count: int = 0
    last_access: float = field(default_factory=time.time)

    def update_access(self) -> None:
        """Update access statistics."""
        self.access_count += 1
        self.last_access = time.time()


class ImageByteCache(Generic[K]):
    """Bounded byte cache parameterized by key type and eviction policy."""

    def __init__(
        self,
        max_entries: int = 256,
        max_size_mb: int = 512,
        eviction_policy: EvictionPolicy = EvictionPolicy.LRU,
    ):
        """Initialize the cache.

        Args:
            max_entries: Maximum number of cached images
            max_size_mb: Maximum total cached bytes in megabytes
            eviction_policy: LRU evicts the least recently used entries to
                make room; NONE refuses new entries once full

        """
        self.max_entries = max_entries
        self.max_size_bytes = max_size_mb * 1024 * 1024
        self.eviction_policy = eviction_policy

        # OrderedDict for LRU (oldest entries at start)
        self._cache: OrderedDict[K, CacheEntry] = OrderedDict()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._rejections = 0
        self._total_size_bytes = 0

        logger.debug(
            "image_cache_initialized",
            max_entries=max_entries,
            max_size_mb=max_size_mb,
            eviction_policy=eviction_policy.value,
        )

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: object) -> bool:
        return key in self._cache

    def contains(self, key: K) -> bool:
        """Check for a key without touching hit/miss statistics or LRU order."""
        return key in self._cache

    def get(self, key: K) -> bytes | None:
        """Return cached bytes for ``key`` or None."""
        entry = self._cache.get(key)
        if entry is None:
            self._misses += 1
            return None

        self._hits += 1
        entry.update_access()
        if self.eviction_policy is EvictionPolicy.LRU:
            self._cache.move_to_end(key)
        return entry.data

    def put(self, key: K, data: bytes) -> bool:
        """Store bytes under ``key`` unless the key is already present.

        Returns:
            True if the entry was added, False if the key already existed or
            the cache is full and its policy does not evict

        """
        if key in self._cache:
            logger.debug("image_cache_put_skipped", key=str(key), reason="exists")
            return False

        size_bytes = len(data)
        if size_bytes > self.max_size_bytes:
            self._rejections += 1
            logger.warning(
                "image_cache_entry_too_large", key=str(key), size_bytes=size_bytes
            )
            return False

        while self._is_full(size_bytes):
            if self.eviction_policy is EvictionPolicy.NONE or not self._cache:
                self._rejections += 1
                logger.debug("image_cache_put_rejected", key=str(key), reason="full")
                return False
            self._evict_lru()

        self._cache[key] = CacheEntry(data=data, size_bytes=size_bytes)
        self._total_size_bytes += size_bytes
        logger.debug(
            "image_cache_put",
            key=str(key),
            size_bytes=size_bytes,
            entries=len(self._cache),
        )
        return True

    def discard(self, key: K) -> None:
        """Remove ``key`` if present."""
        entry = self._cache.pop(key, None)
        if entry is not None:
            self._total_size_bytes -= entry.size_bytes

    def clear(self) -> None:
        """Clear entire cache."""
        self._cache.clear()
        self._total_size_bytes = 0
        logger.debug("image_cache_cleared")

    def get_statistics(self) -> dict:
        """Get cache statistics.

        Returns:
            Dict with cache performance metrics

        """
        total_requests = self._hits + self._misses
        hit_rate = self._hits / total_requests if total_requests > 0 else 0.0

        return {
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "rejections": self._rejections,
            "total_requests": total_requests,
            "hit_rate": hit_rate,
            "current_entries": len(self._cache),
            "max_entries": self.max_entries,
            "current_size_mb": self._total_size_bytes / 1024 / 1024,
            "max_size_mb": self.max_size_bytes / 1024 / 1024,
            "eviction_policy": self.eviction_policy.value,
        }

    def _is_full(self, incoming_bytes: int) -> bool:
        return (
            len(self._cache) >= self.max_entries
            or self._total_size_bytes + incoming_bytes > self.max_size_bytes
        )

    def _evict_lru(self) -> None:
        """Evict least recently used entry."""
        key, entry = self._cache.popitem(last=False)
        self._total_size_bytes -= entry.size_bytes
        self._evictions += 1

        logger.debug(
            "image_cache_evicted",
            key=str(key),
            accesses=entry.access_count,
            age_seconds=round(time.time() - entry.last_access, 1),
        )
