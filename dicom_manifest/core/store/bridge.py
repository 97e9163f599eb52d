"""Bridge between synthesized records and the external metadata store.

Only records whose image id uses a resolvable transport scheme (``wadors:``
or ``wadouri:``) are handed to the store. Every frame of a multi-frame
instance gets its own image id registration.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from dicom_manifest.core.retrieval.byte_cache import ImageByteCache
from dicom_manifest.core.retrieval.image_ids import is_valid_image_id, with_frame_number
from dicom_manifest.core.types import ImageUIDs, SeriesRecord, SynthesizedInstanceRecord
from dicom_manifest.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class MetadataStore(Protocol):
    """Write contract of the metadata store consumed by the viewer."""

    def add_series_summary(self, records: Sequence[SeriesRecord]) -> None: ...

    def add_instances(self, records: Sequence[SynthesizedInstanceRecord]) -> None: ...

    def add_image_id_to_uids(self, image_id: str, uids: ImageUIDs) -> None: ...


class InMemoryMetadataStore:
    """Dictionary-backed MetadataStore."""

    def __init__(self) -> None:
        self.series: dict[str, SeriesRecord] = {}
        self.instances: dict[str, SynthesizedInstanceRecord] = {}
        self.image_ids: dict[str, ImageUIDs] = {}

    def add_series_summary(self, records: Sequence[SeriesRecord]) -> None:
        for record in records:
            self.series[record.series_instance_uid] = record

    def add_instances(self, records: Sequence[SynthesizedInstanceRecord]) -> None:
        for record in records:
            self.instances[record.sop_instance_uid] = record

    def add_image_id_to_uids(self, image_id: str, uids: ImageUIDs) -> None:
        self.image_ids[image_id] = uids

    def get_uids(self, image_id: str) -> ImageUIDs | None:
        return self.image_ids.get(image_id)

    def instances_for_series(self, series_uid: str) -> list[SynthesizedInstanceRecord]:
        return [r for r in self.instances.values() if r.series_instance_uid == series_uid]


class StoreBridge:
    """Writes synthesized metadata and exposes prefetched image bytes."""

    def __init__(self, store: MetadataStore, cache: ImageByteCache[str] | None = None):
        self.store = store
        self.cache = cache

    def register(
        self,
        series_records: Sequence[SeriesRecord],
        instance_records: Sequence[SynthesizedInstanceRecord],
    ) -> list[SynthesizedInstanceRecord]:
        """Write summaries, register image ids and add valid instances.

        Returns:
            The instance records that were written

        """
        valid = [r for r in instance_records if is_valid_image_id(r.image_id)]
        dropped = len(instance_records) - len(valid)
        if dropped:
            logger.warning("instances_filtered", reason="invalid image id", count=dropped)

        for record in valid:
            self.register_image_ids(record)

        # A series summary is only written when some instance survived
        populated = {r.series_instance_uid for r in valid}
        summaries = [s for s in series_records if s.series_instance_uid in populated]

        self.store.add_series_summary(summaries)
        self.store.add_instances(valid)

        logger.info(
            "store_updated", series_count=len(summaries), instance_count=len(valid)
        )
        return valid

    def register_image_ids(self, record: SynthesizedInstanceRecord) -> list[str]:
        """Associate each frame's image id with the record's UIDs."""
        frames = record.number_of_frames or 1
        if frames <= 1:
            self.store.add_image_id_to_uids(record.image_id, record.image_uids())
            return [record.image_id]

        image_ids = []
        for frame_number in range(1, frames + 1):
            image_id = with_frame_number(record.image_id, frame_number)
            self.store.add_image_id_to_uids(image_id, record.image_uids(frame_number))
            image_ids.append(image_id)
        return image_ids

    def get_prefetched_image(self, image_id: str) -> bytes | None:
        if self.cache is None:
            return None
        return self.cache.get(image_id)

    def has_prefetched_image(self, image_id: str) -> bool:
        return self.cache is not None and self.cache.contains(image_id)
