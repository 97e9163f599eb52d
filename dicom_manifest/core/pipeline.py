"""Manifest Loading Pipeline

Orchestrates the full load of one MADO manifest:

    parse -> validate -> prefetch samples -> synthesize -> store

Fatal problems with the manifest itself (unreadable, missing study UID, no
renderable series) raise before anything is written to the store. Problems
with individual series only remove those series from the result.

USAGE:
    async with HttpxRetriever() as retriever:
        loader = ManifestLoader(retriever, store=InMemoryMetadataStore())
        result = await loader.load_from_url("https://pacs/manifests/1.dcm")
        print(result.to_dict())
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from dicom_manifest.core.config import Settings, get_settings
from dicom_manifest.core.exceptions import ManifestValidationError
from dicom_manifest.core.manifest.parser import ManifestParser
from dicom_manifest.core.retrieval.byte_cache import ImageByteCache
from dicom_manifest.core.retrieval.client import BinaryRetriever
from dicom_manifest.core.retrieval.image_ids import (
    fallback_image_id,
    wadors_image_id,
    wadouri_image_id,
)
from dicom_manifest.core.retrieval.prefetcher import (
    PrefetchOutcome,
    SeriesSamplePrefetcher,
)
from dicom_manifest.core.serialization import SerializableMixin
from dicom_manifest.core.store.bridge import InMemoryMetadataStore, MetadataStore, StoreBridge
from dicom_manifest.core.synthesis.synthesizer import MetadataSynthesizer, SynthesisContext
from dicom_manifest.core.types import (
    InstanceReference,
    SeriesDescriptor,
    SeriesRecord,
    SynthesizedInstanceRecord,
)
from dicom_manifest.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SkippedSeries(SerializableMixin):
    """A series left out of the load and why."""

    series_instance_uid: str
    reason: str


@dataclass
class LoadResult(SerializableMixin):
    """Everything a manifest load produced."""

    study_instance_uid: str
    series: list[SeriesRecord] = field(default_factory=list)
    instances: dict[str, list[SynthesizedInstanceRecord]] = field(default_factory=dict)
    skipped: list[SkippedSeries] = field(default_factory=list)
    cache_statistics: dict[str, Any] = field(default_factory=dict)

    @property
    def instance_count(self) -> int:
        return sum(len(records) for records in self.instances.values())

    def get_summary(self) -> dict[str, Any]:
        return {
            "study_instance_uid": self.study_instance_uid,
            "series": len(self.series),
            "instances": self.instance_count,
            "skipped": len(self.skipped),
        }


def build_image_id(
    root: str | None,
    wado_uri: str | None,
    descriptor: SeriesDescriptor,
    instance: InstanceReference,
) -> str:
    """WADO-RS id when a root is known, else WADO-URI, else the ``mado:`` fallback."""
    study_uid = descriptor.study_instance_uid
    series_uid = descriptor.series_instance_uid
    return (
        wadors_image_id(root, study_uid, series_uid, instance.sop_instance_uid)
        or wadouri_image_id(wado_uri, study_uid, series_uid, instance.sop_instance_uid)
        or fallback_image_id(study_uid, series_uid, instance.sop_instance_uid)
    )


class ManifestLoader:
    """Loads MADO manifests into a metadata store."""

    def __init__(
        self,
        retriever: BinaryRetriever,
        store: MetadataStore | None = None,
        cache: ImageByteCache[str] | None = None,
        settings: Settings | None = None,
    ):
        """Initialize loader.

        Args:
            retriever: Transport for the manifest and sample images
            store: Destination of synthesized metadata (in-memory if omitted)
            cache: Prefetched byte cache (built from settings if omitted)
            settings: Configuration (global settings if omitted)

        """
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else ImageByteCache(
            max_entries=self.settings.cache.max_entries,
            max_size_mb=self.settings.cache.max_size_mb,
            eviction_policy=self.settings.cache.eviction_policy,
        )
        self.store = store if store is not None else InMemoryMetadataStore()

        self.parser = ManifestParser(retriever)
        self.prefetcher = SeriesSamplePrefetcher(
            retriever,
            cache=self.cache,
            concurrency_limit=self.settings.retrieval.concurrency_limit,
        )
        self.synthesizer = MetadataSynthesizer(
            specific_character_set=self.settings.synthesis.specific_character_set
        )
        self.bridge = StoreBridge(self.store, self.cache)

    async def load_from_url(
        self, url: str, headers: Mapping[str, str] | None = None
    ) -> LoadResult:
        """Fetch a manifest and load it."""
        data = await self.parser.fetch_manifest(url, headers)
        return await self.load(data, headers)

    async def load(
        self, data: bytes, headers: Mapping[str, str] | None = None
    ) -> LoadResult:
        """Load manifest bytes.

        Raises:
            ManifestParseError: If the manifest cannot be read
            MissingStudyUIDError: If the manifest has no StudyInstanceUID
            ManifestValidationError: If no series is renderable

        """
        descriptors = self.parser.parse(data)
        if not self.parser.validate(descriptors):
            raise ManifestValidationError(
                "Manifest contains no renderable series",
                error_code="manifest_invalid",
                context={"series_count": len(descriptors)},
            )

        study_uid = descriptors[0].study_instance_uid
        retrieval = self.settings.retrieval
        outcomes = await self.prefetcher.prefetch_all(
            descriptors, retrieval.wado_root, headers
        )

        result = LoadResult(study_instance_uid=study_uid)
        series_records: list[SeriesRecord] = []
        instance_records: list[SynthesizedInstanceRecord] = []

        for descriptor, outcome in zip(descriptors, outcomes):
            if not outcome.ok and not self.settings.synthesis.synthesize_without_sample:
                result.skipped.append(
                    SkippedSeries(descriptor.series_instance_uid, outcome.reason or "")
                )
                continue

            series_records.append(self.synthesizer.synthesize_series(descriptor))
            instance_records.extend(self._synthesize_instances(descriptor, outcome))

        written = self.bridge.register(series_records, instance_records)

        for record in written:
            result.instances.setdefault(record.series_instance_uid, []).append(record)
        for series_record in series_records:
            if series_record.series_instance_uid in result.instances:
                result.series.append(series_record)
            else:
                result.skipped.append(
                    SkippedSeries(series_record.series_instance_uid, "no valid image ids")
                )
        result.cache_statistics = self.cache.get_statistics()

        logger.info("manifest_loaded", **result.get_summary())
        return result

    def _synthesize_instances(
        self, descriptor: SeriesDescriptor, outcome: PrefetchOutcome
    ) -> list[SynthesizedInstanceRecord]:
        retrieval = self.settings.retrieval
        root = outcome.retrieval_root or self.prefetcher.resolve_root(
            descriptor, retrieval.wado_root
        )

        records = []
        for index, instance in enumerate(descriptor.instances):
            instance_root = (
                instance.retrieval_root.rstrip("/") if instance.retrieval_root else root
            )
            context = SynthesisContext(
                wado_root=instance_root,
                wado_uri=retrieval.wado_uri,
                image_id=build_image_id(
                    instance_root, retrieval.wado_uri, descriptor, instance
                ),
                index=index,
            )
            records.append(
                self.synthesizer.synthesize_instance(
                    descriptor, instance, outcome.metadata, context
                )
            )
        return records
