"""
Pytest configuration and shared fixtures for dicom-manifest tests.

Manifests and sample images are built with pydicom; bare dataset buffers
are assembled element by element so their exact encoding is known.
"""

import logging
import struct
from collections.abc import Callable
from io import BytesIO

import pytest
import structlog
from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.uid import ExplicitVRLittleEndian, generate_uid

from dicom_manifest.core.config import Settings
from dicom_manifest.core.exceptions import RetrievalError
from dicom_manifest.core.retrieval.client import RetrievalResponse

KOS_SOP_CLASS_UID = "1.2.840.10008.5.1.4.1.1.88.59"
CT_SOP_CLASS_UID = "1.2.840.10008.5.1.4.1.1.2"
MR_SOP_CLASS_UID = "1.2.840.10008.5.1.4.1.1.4"

STUDY_UID = "1.2.826.0.1.3680043.8.498.1"
WADO_ROOT = "https://pacs.example.com/dicomweb"

LONG_VRS = {"OB", "OD", "OF", "OL", "OW", "SQ", "UN", "UT", "UC", "UR"}


# =============================================================================
# Raw element encoding
# =============================================================================


def implicit_element(tag: int, value: bytes, pad: bytes = b" ") -> bytes:
    """Implicit VR little endian element."""
    if len(value) % 2:
        value += pad
    return struct.pack("<HHL", tag >> 16, tag & 0xFFFF, len(value)) + value


def explicit_element(tag: int, vr: str, value: bytes, pad: bytes = b" ") -> bytes:
    """Explicit VR little endian element."""
    if len(value) % 2:
        value += pad
    if vr in LONG_VRS:
        header = struct.pack("<HH2s2xL", tag >> 16, tag & 0xFFFF, vr.encode(), len(value))
    else:
        header = struct.pack("<HH2sH", tag >> 16, tag & 0xFFFF, vr.encode(), len(value))
    return header + value


def us(value: int) -> bytes:
    return struct.pack("<H", value)


# =============================================================================
# pydicom builders
# =============================================================================


def encode_part10(ds: Dataset) -> bytes:
    """Serialize a dataset as a Part 10 file in explicit VR little endian."""
    ds.file_meta = FileMetaDataset()
    ds.file_meta.MediaStorageSOPClassUID = ds.SOPClassUID
    ds.file_meta.MediaStorageSOPInstanceUID = ds.SOPInstanceUID
    ds.file_meta.TransferSyntaxUID = ExplicitVRLittleEndian
    buffer = BytesIO()
    ds.save_as(buffer, enforce_file_format=True)
    return buffer.getvalue()


def code(value: str, scheme: str = "DCM", meaning: str | None = None) -> Dataset:
    item = Dataset()
    item.CodeValue = value
    item.CodingSchemeDesignator = scheme
    item.CodeMeaning = meaning or value
    return item


def content_item(value_type: str, concept: str, **attributes) -> Dataset:
    """Structured report content item named by ``concept``."""
    item = Dataset()
    item.RelationshipType = "CONTAINS"
    item.ValueType = value_type
    item.ConceptNameCodeSequence = [code(concept)]
    for keyword, value in attributes.items():
        setattr(item, keyword, value)
    return item


def numeric_item(concept: str, value: str) -> Dataset:
    measured = Dataset()
    measured.NumericValue = value
    measured.MeasurementUnitsCodeSequence = [code("{ea}", "UCUM", "no units")]
    return content_item("NUM", concept, MeasuredValueSequence=[measured])


def image_item(sop_uid: str, instance_number: str, sop_class_uid=CT_SOP_CLASS_UID) -> Dataset:
    ref = Dataset()
    ref.ReferencedSOPClassUID = sop_class_uid
    ref.ReferencedSOPInstanceUID = sop_uid
    item = content_item("IMAGE", "ddd001", ReferencedSOPSequence=[ref])
    item.ContentSequence = [content_item("TEXT", "ddd008", TextValue=instance_number)]
    return item


def series_group(series_uid: str, *items: Dataset) -> Dataset:
    """Image library group for one series."""
    group = content_item("CONTAINER", "126200", ContinuityOfContent="SEPARATE")
    group.ContentSequence = [content_item("UIDREF", "ddd006", UID=series_uid), *items]
    return group


def content_root(*groups: Dataset) -> Dataset:
    root = content_item("CONTAINER", "111028", ContinuityOfContent="SEPARATE")
    root.ContentSequence = list(groups)
    return root


def sop_item(sop_uid: str, sop_class_uid: str | None = CT_SOP_CLASS_UID, **attributes) -> Dataset:
    item = Dataset()
    if sop_class_uid is not None:
        item.ReferencedSOPClassUID = sop_class_uid
    if sop_uid is not None:
        item.ReferencedSOPInstanceUID = sop_uid
    for keyword, value in attributes.items():
        setattr(item, keyword, value)
    return item


def series_item(series_uid: str | None, sop_items, retrieve_url=None, **attributes) -> Dataset:
    item = Dataset()
    if series_uid is not None:
        item.SeriesInstanceUID = series_uid
    if retrieve_url is not None:
        item.RetrieveURL = retrieve_url
    item.ReferencedSOPSequence = list(sop_items)
    for keyword, value in attributes.items():
        setattr(item, keyword, value)
    return item


def build_manifest(series_items, study_uid=STUDY_UID, content=None, **attributes) -> Dataset:
    """Key Object Selection document referencing ``series_items``."""
    ds = Dataset()
    ds.SOPClassUID = KOS_SOP_CLASS_UID
    ds.SOPInstanceUID = generate_uid()
    ds.Modality = "KO"
    ds.PatientName = "Doe^Jane"
    ds.PatientID = "PAT001"
    ds.PatientBirthDate = "19700101"
    ds.PatientSex = "F"
    ds.StudyDate = "20240102"
    ds.StudyTime = "101500"
    ds.StudyDescription = "CT CHEST"
    ds.AccessionNumber = "ACC42"
    if study_uid is not None:
        ds.StudyInstanceUID = study_uid

    evidence = Dataset()
    if study_uid is not None:
        evidence.StudyInstanceUID = study_uid
    evidence.ReferencedSeriesSequence = list(series_items)
    ds.CurrentRequestedProcedureEvidenceSequence = [evidence]

    if content is not None:
        ds.ContentSequence = list(content)
    for keyword, value in attributes.items():
        setattr(ds, keyword, value)
    return ds


def build_sample(**overrides) -> Dataset:
    """CT image dataset with complete plane and pixel modules (no pixel data)."""
    ds = Dataset()
    ds.SOPClassUID = CT_SOP_CLASS_UID
    ds.SOPInstanceUID = generate_uid()
    ds.Modality = "CT"
    ds.Rows = 512
    ds.Columns = 512
    ds.BitsAllocated = 16
    ds.BitsStored = 12
    ds.HighBit = 11
    ds.PixelRepresentation = 1
    ds.SamplesPerPixel = 1
    ds.PhotometricInterpretation = "MONOCHROME2"
    ds.PixelSpacing = [0.7, 0.7]
    ds.ImageOrientationPatient = [1, 0, 0, 0, 1, 0]
    ds.ImagePositionPatient = [-100, -100, 50]
    ds.SliceThickness = 2.5
    ds.WindowCenter = 40
    ds.WindowWidth = 400
    ds.RescaleIntercept = -1024
    ds.RescaleSlope = 1
    ds.FrameOfReferenceUID = "1.2.826.0.1.3680043.8.498.99"
    for keyword, value in overrides.items():
        if value is None:
            delattr(ds, keyword)
        else:
            setattr(ds, keyword, value)
    return ds


# =============================================================================
# Fake transport
# =============================================================================


class FakeRetriever:
    """BinaryRetriever serving canned responses per URL.

    Unknown URLs answer 404. A route may be a response, an exception to
    raise, or a callable receiving the request headers.
    """

    def __init__(self, routes: dict | None = None):
        self.routes = dict(routes or {})
        self.calls: list[tuple[str, dict]] = []

    async def get(self, url, headers=None):
        request_headers = dict(headers or {})
        self.calls.append((url, request_headers))
        route = self.routes.get(url)
        if route is None:
            return RetrievalResponse(status_code=404, content=b"")
        if callable(route):
            route = route(request_headers)
        if isinstance(route, Exception):
            raise route
        return route

    def urls(self) -> list[str]:
        return [url for url, _ in self.calls]


def instance_url(series_uid: str, sop_uid: str, root: str = WADO_ROOT) -> str:
    return f"{root}/studies/{STUDY_UID}/series/{series_uid}/instances/{sop_uid}"


def dicom_response(body: bytes) -> RetrievalResponse:
    return RetrievalResponse(status_code=200, content=body, content_type="application/dicom")


def transport_failure(url: str = "") -> RetrievalError:
    return RetrievalError("connection refused", error_code="transport_error", context={"url": url})


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def manifest_builder():
    """Namespace of manifest building helpers."""

    class Builder:
        build = staticmethod(build_manifest)
        series = staticmethod(series_item)
        sop = staticmethod(sop_item)
        content_item = staticmethod(content_item)
        numeric_item = staticmethod(numeric_item)
        image_item = staticmethod(image_item)
        group = staticmethod(series_group)
        root = staticmethod(content_root)
        code = staticmethod(code)
        encode = staticmethod(encode_part10)

    return Builder


@pytest.fixture
def raw_elements():
    """Namespace of raw element encoders."""

    class Raw:
        implicit = staticmethod(implicit_element)
        explicit = staticmethod(explicit_element)
        us = staticmethod(us)

    return Raw


@pytest.fixture
def sample_dataset() -> Dataset:
    return build_sample()


@pytest.fixture
def sample_bytes(sample_dataset) -> bytes:
    """Part 10 encoded CT sample image."""
    return encode_part10(sample_dataset)


@pytest.fixture
def make_sample() -> Callable[..., Dataset]:
    return build_sample


@pytest.fixture
def encode() -> Callable[[Dataset], bytes]:
    return encode_part10


@pytest.fixture
def fake_retriever() -> Callable[..., FakeRetriever]:
    return FakeRetriever


@pytest.fixture
def ct_manifest_bytes() -> bytes:
    """One CT series of three instances whose RetrieveURL names the PACS root."""
    series_uid = "1.2.826.0.1.3680043.8.498.2"
    items = [sop_item(f"{series_uid}.{n}") for n in (1, 2, 3)]
    series = series_item(
        series_uid,
        items,
        retrieve_url=f"{WADO_ROOT}/studies/{STUDY_UID}/series/{series_uid}",
        Modality="CT",
    )
    return encode_part10(build_manifest([series]))


@pytest.fixture
def settings() -> Settings:
    """Settings independent of the environment."""
    return Settings(_env_file=None)


@pytest.fixture
def reset_structlog():
    """Reset structlog configuration after each test."""
    yield
    structlog.reset_defaults()
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)


@pytest.fixture
def wado():
    """WADO-RS endpoint details and canned responses used across tests."""

    class Wado:
        root = WADO_ROOT
        study_uid = STUDY_UID
        instance_url = staticmethod(instance_url)
        dicom_response = staticmethod(dicom_response)
        transport_failure = staticmethod(transport_failure)

    return Wado
