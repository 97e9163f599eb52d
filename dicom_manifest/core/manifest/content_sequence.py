"""Structured-report content sequence lookups for MADO manifests.

The optional (0040,A730) content sequence of a manifest is a tree of content
items, each naming a concept code (0040,A043) and a value type (0040,A040).
Image library groups are CONTAINER items nested inside a top-level
CONTAINER; each group identifies its series with a ``ddd006`` UIDREF and
carries series-level TEXT/NUM items plus one IMAGE item per instance.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from pydicom.dataset import Dataset

from dicom_manifest.core.constants import (
    CODE_INSTANCE_NUMBER,
    CODE_MODALITY,
    CODE_NUMBER_OF_SERIES_RELATED_INSTANCES,
    CODE_SERIES_DATE,
    CODE_SERIES_DESCRIPTION,
    CODE_SERIES_INSTANCE_UID,
    CODE_SERIES_NUMBER,
    CODE_SERIES_TIME,
)
from dicom_manifest.core.values import to_int, to_str


def _items(ds: Dataset, keyword: str) -> list[Dataset]:
    return list(ds.get(keyword) or [])


def value_type(item: Dataset) -> str | None:
    return to_str(item.get("ValueType"))


def concept_code(item: Dataset) -> str | None:
    names = _items(item, "ConceptNameCodeSequence")
    return to_str(names[0].get("CodeValue")) if names else None


def _find(items: Iterable[Dataset], code: str, kind: str) -> Dataset | None:
    for item in items:
        if concept_code(item) == code and value_type(item) == kind:
            return item
    return None


def find_text(items: Iterable[Dataset], code: str) -> str | None:
    item = _find(items, code, "TEXT")
    return to_str(item.get("TextValue")) if item is not None else None


def find_uidref(items: Iterable[Dataset], code: str) -> str | None:
    item = _find(items, code, "UIDREF")
    return to_str(item.get("UID")) if item is not None else None


def find_numeric(items: Iterable[Dataset], code: str) -> int | None:
    item = _find(items, code, "NUM")
    if item is None:
        return None
    measured = _items(item, "MeasuredValueSequence")
    return to_int(measured[0].get("NumericValue")) if measured else None


def find_code_value(items: Iterable[Dataset], code: str) -> str | None:
    item = _find(items, code, "CODE")
    if item is None:
        return None
    concepts = _items(item, "ConceptCodeSequence")
    return to_str(concepts[0].get("CodeValue")) if concepts else None


@dataclass
class SeriesContent:
    """Series facts recovered from one image library group."""

    series_description: str | None = None
    series_date: str | None = None
    series_time: str | None = None
    series_number: str | None = None
    modality: str | None = None
    number_of_series_related_instances: int | None = None
    instance_numbers: dict[str, int] = field(default_factory=dict)


def iter_series_groups(content: Iterable[Dataset]) -> Iterator[tuple[str, list[Dataset]]]:
    """Yield ``(series_uid, group_items)`` for every image library group."""
    for container in content:
        if value_type(container) != "CONTAINER":
            continue
        for group in _items(container, "ContentSequence"):
            if value_type(group) != "CONTAINER":
                continue
            group_items = _items(group, "ContentSequence")
            series_uid = find_uidref(group_items, CODE_SERIES_INSTANCE_UID)
            if series_uid:
                yield series_uid, group_items


def _instance_numbers(group_items: Iterable[Dataset]) -> dict[str, int]:
    numbers: dict[str, int] = {}
    for image in group_items:
        if value_type(image) != "IMAGE":
            continue
        refs = _items(image, "ReferencedSOPSequence")
        if not refs:
            continue
        sop_uid = to_str(refs[0].get("ReferencedSOPInstanceUID"))
        number = to_int(find_text(_items(image, "ContentSequence"), CODE_INSTANCE_NUMBER))
        if sop_uid and number is not None:
            numbers[sop_uid] = number
    return numbers


def index_content_sequence(content: Iterable[Dataset]) -> dict[str, SeriesContent]:
    """Map series UID to the facts its image library group provides.

    When several groups name the same series the first one wins.
    """
    index: dict[str, SeriesContent] = {}
    for series_uid, group_items in iter_series_groups(content):
        if series_uid in index:
            continue
        index[series_uid] = SeriesContent(
            series_description=find_text(group_items, CODE_SERIES_DESCRIPTION),
            series_date=find_text(group_items, CODE_SERIES_DATE),
            series_time=find_text(group_items, CODE_SERIES_TIME),
            series_number=find_text(group_items, CODE_SERIES_NUMBER),
            modality=find_code_value(group_items, CODE_MODALITY),
            number_of_series_related_instances=find_numeric(
                group_items, CODE_NUMBER_OF_SERIES_RELATED_INSTANCES
            ),
            instance_numbers=_instance_numbers(group_items),
        )
    return index


def find_document_modality(content: Iterable[Dataset]) -> str | None:
    """Modality coded (121139) directly on the top level of the content tree."""
    return find_code_value(content, CODE_MODALITY)
