"""Series Sample Prefetching

Fetches the first instance of every series over WADO-RS and extracts the
pixel and geometry facts used to synthesize the rest of the series.

PER SERIES (strictly sequential):
    resolve root -> GET with Accept ladder -> unwrap multipart -> extract -> cache

ACROSS SERIES:
    concurrent, bounded by an asyncio.Semaphore

A series whose root cannot be resolved, whose fetch fails on every Accept
variant, or whose bytes no strategy can parse yields no sample. That is
reported on the outcome and never raised.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from dicom_manifest.core.constants import ACCEPT_LADDER
from dicom_manifest.core.exceptions import RetrievalError, UnparsableBufferError
from dicom_manifest.core.retrieval.byte_cache import ImageByteCache
from dicom_manifest.core.retrieval.client import BinaryRetriever, RetrievalResponse
from dicom_manifest.core.retrieval.image_ids import (
    build_instance_url,
    retrieval_root_from_url,
    wadors_image_id,
)
from dicom_manifest.core.sample.extractor import SampleMetadataExtractor
from dicom_manifest.core.sample.multipart import (
    extract_first_part_from_multipart,
    is_multipart,
)
from dicom_manifest.core.types import ExtractedSampleMetadata, SeriesDescriptor
from dicom_manifest.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PrefetchOutcome:
    """Result of sampling one series."""

    series_instance_uid: str
    retrieval_root: str | None = None
    metadata: ExtractedSampleMetadata | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.metadata is not None


class SeriesSamplePrefetcher:
    """Samples one image per series with bounded concurrency."""

    def __init__(
        self,
        retriever: BinaryRetriever,
        cache: ImageByteCache[str] | None = None,
        extractor: SampleMetadataExtractor | None = None,
        concurrency_limit: int = 4,
    ):
        """Initialize prefetcher.

        Args:
            retriever: Transport used for WADO-RS requests
            cache: Receives the fetched bytes under their wadors image ids
            extractor: Sample extractor (default strategy order if omitted)
            concurrency_limit: Maximum series fetched at the same time

        """
        self.retriever = retriever
        self.cache = cache
        self.extractor = extractor or SampleMetadataExtractor()
        self.concurrency_limit = concurrency_limit

    def resolve_root(
        self, descriptor: SeriesDescriptor, default_root: str | None
    ) -> str | None:
        """First instance's root, else the series RetrieveURL root, else the default."""
        first = descriptor.instances[0] if descriptor.instances else None
        root = (
            (first.retrieval_root if first else None)
            or retrieval_root_from_url(descriptor.retrieve_url)
            or default_root
        )
        return root.rstrip("/") if root else None

    async def prefetch_first(
        self,
        descriptors: Sequence[SeriesDescriptor],
        retrieval_root: str | None,
        headers: Mapping[str, str] | None = None,
    ) -> dict[str, ExtractedSampleMetadata]:
        """Sample every series; series without a sample are absent from the result."""
        outcomes = await self.prefetch_all(descriptors, retrieval_root, headers)
        return {o.series_instance_uid: o.metadata for o in outcomes if o.ok}

    async def prefetch_all(
        self,
        descriptors: Sequence[SeriesDescriptor],
        retrieval_root: str | None,
        headers: Mapping[str, str] | None = None,
    ) -> list[PrefetchOutcome]:
        """Sample every series and report per-series outcomes in input order."""
        semaphore = asyncio.Semaphore(self.concurrency_limit)

        async def bounded(descriptor: SeriesDescriptor) -> PrefetchOutcome:
            async with semaphore:
                return await self.prefetch_series(descriptor, retrieval_root, headers)

        outcomes = await asyncio.gather(*(bounded(d) for d in descriptors))

        sampled = sum(1 for o in outcomes if o.ok)
        logger.info(
            "prefetch_completed",
            series_count=len(outcomes),
            sampled=sampled,
            skipped=len(outcomes) - sampled,
        )
        return list(outcomes)

    async def prefetch_series(
        self,
        descriptor: SeriesDescriptor,
        retrieval_root: str | None,
        headers: Mapping[str, str] | None = None,
    ) -> PrefetchOutcome:
        series_uid = descriptor.series_instance_uid

        if not descriptor.instances:
            return self._skip(series_uid, None, "series has no instances")

        root = self.resolve_root(descriptor, retrieval_root)
        if root is None:
            return self._skip(series_uid, None, "no retrieval root")

        first = descriptor.instances[0]
        url = build_instance_url(
            root, descriptor.study_instance_uid, series_uid, first.sop_instance_uid
        )

        response = await self.fetch_instance(url, headers)
        if response is None:
            return self._skip(series_uid, root, "sample fetch failed")

        body = response.content
        if is_multipart(response.content_type):
            body = extract_first_part_from_multipart(body, response.content_type) or body

        try:
            metadata = self.extractor.extract(body)
        except UnparsableBufferError as e:
            return self._skip(series_uid, root, e.message)

        self._cache_bytes(root, descriptor, first.sop_instance_uid, body)

        logger.info(
            "series_sampled",
            series_uid=series_uid,
            rows=metadata.rows,
            columns=metadata.columns,
            photometric=metadata.photometric_interpretation,
        )
        return PrefetchOutcome(
            series_instance_uid=series_uid, retrieval_root=root, metadata=metadata
        )

    async def fetch_instance(
        self, url: str, headers: Mapping[str, str] | None = None
    ) -> RetrievalResponse | None:
        """GET ``url`` trying each Accept variant until one returns 2xx."""
        for accept in ACCEPT_LADDER:
            request_headers = {**(headers or {}), "Accept": accept}
            try:
                response = await self.retriever.get(url, request_headers)
            except RetrievalError as e:
                logger.debug("sample_fetch_attempt_failed", accept=accept, error=e.message)
                continue

            if response.ok:
                return response
            logger.debug(
                "sample_fetch_attempt_failed", accept=accept, status=response.status_code
            )

        logger.warning("sample_fetch_exhausted", url=url, attempts=len(ACCEPT_LADDER))
        return None

    def _cache_bytes(
        self, root: str, descriptor: SeriesDescriptor, sop_uid: str, body: bytes
    ) -> None:
        if self.cache is None:
            return
        for frame_number in (None, 1):
            image_id = wadors_image_id(
                root,
                descriptor.study_instance_uid,
                descriptor.series_instance_uid,
                sop_uid,
                frame_number=frame_number,
            )
            if image_id:
                self.cache.put(image_id, body)

    def _skip(self, series_uid: str, root: str | None, reason: str) -> PrefetchOutcome:
        logger.warning("series_sample_skipped", series_uid=series_uid, reason=reason)
        return PrefetchOutcome(
            series_instance_uid=series_uid, retrieval_root=root, reason=reason
        )
