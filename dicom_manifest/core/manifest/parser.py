"""MADO Manifest Parser

Reads a Key Object Selection document (IHE MADO manifest) and turns it into
one SeriesDescriptor per referenced series.

STRUCTURE:
    (0020,000D) StudyInstanceUID                            required
    (0040,A375) CurrentRequestedProcedureEvidenceSequence
      > (0008,1115) ReferencedSeriesSequence
        > (0020,000E) SeriesInstanceUID                     series skipped if absent
        > (0008,1190) RetrieveURL                           optional
        > (0008,1199) ReferencedSOPSequence
          > (0008,1150) ReferencedSOPClassUID               instance dropped if absent
          > (0008,1155) ReferencedSOPInstanceUID            instance dropped if absent
    (0040,A730) ContentSequence                             optional series/instance facts

USAGE:
    parser = ManifestParser()
    descriptors = parser.parse(manifest_bytes)
    if not parser.validate(descriptors):
        ...
"""

from __future__ import annotations

from collections.abc import Mapping
from io import BytesIO

import pydicom
from pydicom.dataset import Dataset
from pydicom.errors import InvalidDicomError

from dicom_manifest.core.constants import DEFAULT_SERIES_DESCRIPTION
from dicom_manifest.core.exceptions import (
    ManifestFetchError,
    ManifestParseError,
    MissingStudyUIDError,
    RetrievalError,
)
from dicom_manifest.core.manifest.content_sequence import (
    SeriesContent,
    find_document_modality,
    index_content_sequence,
)
from dicom_manifest.core.retrieval.client import BinaryRetriever
from dicom_manifest.core.retrieval.image_ids import retrieval_root_from_url
from dicom_manifest.core.sample.mapping import dataset_to_metadata
from dicom_manifest.core.types import (
    InstanceReference,
    SeriesDescriptor,
    instance_sort_key,
)
from dicom_manifest.core.values import first_present, to_float, to_int, to_str
from dicom_manifest.utils.logger import get_logger

logger = get_logger(__name__)


class ManifestParser:
    """Parses MADO manifests into series descriptors."""

    def __init__(self, retriever: BinaryRetriever | None = None):
        self.retriever = retriever

    def parse(self, data: bytes) -> list[SeriesDescriptor]:
        """Parse manifest bytes.

        Args:
            data: Part 10 encoded Key Object Selection document

        Returns:
            One descriptor per series with at least one valid instance, in
            manifest order

        Raises:
            ManifestParseError: If the bytes cannot be read as DICOM
            MissingStudyUIDError: If (0020,000D) is absent

        """
        ds = self._read(data)

        study_uid = to_str(ds.get("StudyInstanceUID"))
        if not study_uid:
            raise MissingStudyUIDError(
                "Manifest is missing required StudyInstanceUID (0020,000D)",
                error_code="missing_study_uid",
            )

        context = self._study_context(ds)
        evidence = list(ds.get("CurrentRequestedProcedureEvidenceSequence") or [])
        if not evidence:
            logger.warning("manifest_no_evidence", study_uid=study_uid)

        content = list(ds.get("ContentSequence") or [])
        content_index = index_content_sequence(content)
        document_modality = find_document_modality(content)

        descriptors: list[SeriesDescriptor] = []
        for study_item in evidence:
            for series_item in study_item.get("ReferencedSeriesSequence") or []:
                descriptor = self._parse_series(
                    series_item,
                    study_uid=study_uid,
                    context=context,
                    content_index=content_index,
                    document_modality=document_modality,
                )
                if descriptor is not None:
                    descriptors.append(descriptor)

        logger.info(
            "manifest_parsed",
            study_uid=study_uid,
            series_count=len(descriptors),
            instance_count=sum(len(d.instances) for d in descriptors),
        )
        return descriptors

    def validate(self, descriptors: list[SeriesDescriptor]) -> bool:
        """True when there is at least one series and each is complete."""
        if not descriptors:
            logger.error("manifest_validation_failed", reason="no series")
            return False

        for descriptor in descriptors:
            if not descriptor.study_instance_uid or not descriptor.series_instance_uid:
                logger.error(
                    "manifest_validation_failed",
                    reason="missing uid",
                    series_uid=descriptor.series_instance_uid,
                )
                return False
            if not descriptor.instances:
                logger.error(
                    "manifest_validation_failed",
                    reason="series has no instances",
                    series_uid=descriptor.series_instance_uid,
                )
                return False
        return True

    async def fetch_manifest(
        self, url: str, headers: Mapping[str, str] | None = None
    ) -> bytes:
        """Retrieve manifest bytes through the configured retriever.

        Raises:
            ManifestFetchError: On a transport failure or non-2xx status

        """
        if self.retriever is None:
            raise ManifestFetchError(
                "No retriever configured for manifest fetch",
                error_code="no_retriever",
                context={"url": url},
            )

        try:
            response = await self.retriever.get(url, headers)
        except RetrievalError as e:
            raise ManifestFetchError(
                f"Failed to fetch manifest: {e.message}",
                error_code="manifest_fetch_failed",
                context={"url": url, **e.context},
            ) from e

        if not response.ok:
            raise ManifestFetchError(
                f"Failed to fetch manifest: HTTP {response.status_code}",
                error_code="manifest_fetch_failed",
                context={"url": url, "status": response.status_code},
            )

        logger.info("manifest_fetched", url=url, size=len(response.content))
        return response.content

    def _read(self, data: bytes) -> Dataset:
        try:
            return pydicom.dcmread(BytesIO(data), force=True)
        except InvalidDicomError as e:
            raise ManifestParseError(
                f"Manifest is not a DICOM file: {e}",
                error_code="invalid_dicom",
                context={"size": len(data)},
            ) from e
        except Exception as e:
            raise ManifestParseError(
                f"Failed to read manifest: {e}",
                error_code="unreadable_manifest",
                context={"size": len(data), "exception": type(e).__name__},
            ) from e

    def _study_context(self, ds: Dataset) -> dict:
        return {
            "patient_id": to_str(ds.get("PatientID")),
            "patient_name": to_str(ds.get("PatientName")),
            "patient_birth_date": to_str(ds.get("PatientBirthDate")),
            "patient_sex": to_str(ds.get("PatientSex")),
            "patient_age": to_str(ds.get("PatientAge")),
            "patient_size": to_float(ds.get("PatientSize")),
            "patient_weight": to_float(ds.get("PatientWeight")),
            "study_description": to_str(ds.get("StudyDescription")),
            "study_date": to_str(ds.get("StudyDate")),
            "study_time": to_str(ds.get("StudyTime")),
            "accession_number": to_str(ds.get("AccessionNumber")),
            "study_id": to_str(ds.get("StudyID")),
        }

    def _parse_series(
        self,
        series_item: Dataset,
        *,
        study_uid: str,
        context: dict,
        content_index: dict[str, SeriesContent],
        document_modality: str | None,
    ) -> SeriesDescriptor | None:
        series_uid = to_str(series_item.get("SeriesInstanceUID"))
        if not series_uid:
            logger.warning("series_skipped", reason="missing SeriesInstanceUID")
            return None

        retrieve_url = to_str(series_item.get("RetrieveURL"))
        content = content_index.get(series_uid, SeriesContent())

        instances = self._parse_instances(series_item, retrieve_url, content)
        if not instances:
            logger.warning(
                "series_skipped", series_uid=series_uid, reason="no valid instances"
            )
            return None

        return SeriesDescriptor(
            study_instance_uid=study_uid,
            series_instance_uid=series_uid,
            series_description=first_present(
                content.series_description,
                to_str(series_item.get("SeriesDescription")),
                DEFAULT_SERIES_DESCRIPTION,
            ),
            instances=tuple(instances),
            series_date=first_present(
                content.series_date,
                to_str(series_item.get("SeriesDate")),
                context["study_date"],
            ),
            series_time=first_present(
                content.series_time,
                to_str(series_item.get("SeriesTime")),
                context["study_time"],
            ),
            series_number=first_present(
                content.series_number, to_str(series_item.get("SeriesNumber"))
            ),
            retrieve_url=retrieve_url,
            modality=first_present(
                to_str(series_item.get("Modality")),
                content.modality,
                document_modality,
            ),
            number_of_series_related_instances=first_present(
                content.number_of_series_related_instances, len(instances)
            ),
            **context,
        )

    def _parse_instances(
        self,
        series_item: Dataset,
        retrieve_url: str | None,
        content: SeriesContent,
    ) -> list[InstanceReference]:
        series_root = retrieval_root_from_url(retrieve_url)
        instances: list[InstanceReference] = []
        dropped = 0

        for sop_item in series_item.get("ReferencedSOPSequence") or []:
            sop_class_uid = to_str(sop_item.get("ReferencedSOPClassUID"))
            sop_instance_uid = to_str(sop_item.get("ReferencedSOPInstanceUID"))
            if not sop_class_uid or not sop_instance_uid:
                dropped += 1
                continue

            attributes = dataset_to_metadata(sop_item)
            instance_root = retrieval_root_from_url(to_str(sop_item.get("RetrieveURL")))

            instances.append(
                InstanceReference(
                    sop_class_uid=sop_class_uid,
                    sop_instance_uid=sop_instance_uid,
                    instance_number=first_present(
                        content.instance_numbers.get(sop_instance_uid),
                        to_int(sop_item.get("InstanceNumber")),
                    ),
                    number_of_frames=attributes.number_of_frames,
                    rows=attributes.rows,
                    columns=attributes.columns,
                    retrieval_root=instance_root or series_root,
                    attributes=attributes,
                )
            )

        if dropped:
            logger.warning(
                "instances_dropped", reason="missing SOP class or instance UID", count=dropped
            )

        instances.sort(key=instance_sort_key)
        return instances
