"""Canonical record types shared by every pipeline stage.

One immutable schema per entity. DICOM keywords are normalized into these
snake_case fields exactly once, at ingestion (manifest parsing and sample
mapping); nothing downstream looks at DICOM keyword spellings again.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any

from pydicom.dataset import Dataset

from dicom_manifest.core.serialization import SerializableMixin

NumberTuple = tuple[float, ...]
IntTuple = tuple[int, ...]
WindowValue = float | tuple[float, ...]


@dataclass(frozen=True, kw_only=True)
class ExtractedSampleMetadata(SerializableMixin):
    """Sparse bag of imaging attributes taken from one representative image.

    Every attribute is optional. Instances of this class are also used to
    carry explicit attributes found on a manifest SOP reference item.
    """

    # Image pixel module
    rows: int | None = None
    columns: int | None = None
    bits_allocated: int | None = None
    bits_stored: int | None = None
    high_bit: int | None = None
    pixel_representation: int | None = None
    samples_per_pixel: int | None = None
    photometric_interpretation: str | None = None
    planar_configuration: int | None = None
    pixel_aspect_ratio: IntTuple | None = None
    smallest_pixel_value: int | None = None
    largest_pixel_value: int | None = None

    # Image plane module
    pixel_spacing: NumberTuple | None = None
    imager_pixel_spacing: NumberTuple | None = None
    image_orientation_patient: NumberTuple | None = None
    image_position_patient: NumberTuple | None = None
    slice_thickness: float | None = None
    spacing_between_slices: float | None = None
    slice_location: float | None = None

    # VOI LUT / modality LUT
    window_center: WindowValue | None = None
    window_width: WindowValue | None = None
    rescale_intercept: float | None = None
    rescale_slope: float | None = None
    rescale_type: str | None = None
    voi_lut_function: str | None = None

    frame_of_reference_uid: str | None = None
    transfer_syntax_uid: str | None = None

    # Multi-frame
    number_of_frames: int | None = None
    frame_time: float | None = None
    frame_increment_pointer: str | None = None
    per_frame_functional_groups: tuple[Dataset, ...] | None = None
    shared_functional_groups: tuple[Dataset, ...] | None = None

    # Image identification
    image_type: tuple[str, ...] | None = None
    acquisition_number: int | None = None
    acquisition_date: str | None = None
    acquisition_time: str | None = None
    instance_number: int | None = None

    # Lossy compression
    lossy_image_compression: str | None = None
    lossy_image_compression_ratio: NumberTuple | None = None
    lossy_image_compression_method: tuple[str, ...] | None = None

    # Palette color lookup tables (0028,1101-1103 / 1201-1203 / 1199)
    red_palette_color_lookup_table_descriptor: IntTuple | None = None
    green_palette_color_lookup_table_descriptor: IntTuple | None = None
    blue_palette_color_lookup_table_descriptor: IntTuple | None = None
    red_palette_color_lookup_table_data: IntTuple | None = None
    green_palette_color_lookup_table_data: IntTuple | None = None
    blue_palette_color_lookup_table_data: IntTuple | None = None
    palette_color_lookup_table_uid: str | None = None

    # Segmented palette color lookup tables (0028,1221-1223)
    segmented_red_palette_color_lookup_table_data: IntTuple | None = None
    segmented_green_palette_color_lookup_table_data: IntTuple | None = None
    segmented_blue_palette_color_lookup_table_data: IntTuple | None = None

    # Ultrasound calibration
    sequence_of_ultrasound_regions: tuple[Dataset, ...] | None = None

    # PET
    corrected_image: tuple[str, ...] | None = None
    units: str | None = None
    decay_correction: str | None = None
    radiopharmaceutical_information: tuple[Dataset, ...] | None = None
    frame_reference_time: float | None = None
    actual_frame_duration: float | None = None

    def has_geometry_signal(self) -> bool:
        """True when rows, columns or pixel spacing were found."""
        return (
            self.rows is not None
            or self.columns is not None
            or self.pixel_spacing is not None
        )

    def has_palette(self) -> bool:
        """True when any palette color descriptor is present and non-empty."""
        return any(
            bool(descriptor)
            for descriptor in (
                self.red_palette_color_lookup_table_descriptor,
                self.green_palette_color_lookup_table_descriptor,
                self.blue_palette_color_lookup_table_descriptor,
            )
        )

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def present_fields(self) -> dict[str, Any]:
        """Attributes that carry a value, keyed by field name."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(ExtractedSampleMetadata)
            if getattr(self, f.name) is not None
        }


@dataclass(frozen=True)
class InstanceReference(SerializableMixin):
    """A single SOP instance listed in the manifest."""

    sop_class_uid: str
    sop_instance_uid: str
    instance_number: int | None = None
    number_of_frames: int | None = None
    rows: int | None = None
    columns: int | None = None
    retrieval_root: str | None = None
    attributes: ExtractedSampleMetadata = field(default_factory=ExtractedSampleMetadata)


def instance_sort_key(instance: InstanceReference) -> tuple[bool, int, str]:
    """Ascending instance number, unnumbered last, ties by SOP instance UID."""
    return (
        instance.instance_number is None,
        instance.instance_number if instance.instance_number is not None else 0,
        instance.sop_instance_uid,
    )


@dataclass(frozen=True)
class SeriesDescriptor(SerializableMixin):
    """One series of the manifest with its study and patient context."""

    study_instance_uid: str
    series_instance_uid: str
    series_description: str
    instances: tuple[InstanceReference, ...] = ()
    series_date: str | None = None
    series_time: str | None = None
    series_number: str | None = None
    retrieve_url: str | None = None
    modality: str | None = None
    number_of_series_related_instances: int | None = None

    # Patient module
    patient_id: str | None = None
    patient_name: str | None = None
    patient_birth_date: str | None = None
    patient_sex: str | None = None

    # Patient study module
    patient_age: str | None = None
    patient_size: float | None = None
    patient_weight: float | None = None

    # Study module
    study_description: str | None = None
    study_date: str | None = None
    study_time: str | None = None
    accession_number: str | None = None
    study_id: str | None = None

    def uid_triples(self) -> list[tuple[str, str, str]]:
        """(study, series, instance) UIDs in instance order."""
        return [
            (self.study_instance_uid, self.series_instance_uid, i.sop_instance_uid)
            for i in self.instances
        ]


@dataclass(frozen=True)
class ImageUIDs(SerializableMixin):
    """UIDs an image identifier resolves to."""

    study_instance_uid: str
    series_instance_uid: str
    sop_instance_uid: str
    frame_number: int | None = None


@dataclass(frozen=True)
class SeriesRecord(SerializableMixin):
    """Series-level summary written to the metadata store."""

    study_instance_uid: str
    series_instance_uid: str
    series_description: str
    series_number: int
    series_date: str
    series_time: str
    modality: str
    number_of_series_related_instances: int
    patient_name: str
    patient_id: str
    patient_birth_date: str
    patient_sex: str
    study_description: str
    study_date: str
    study_time: str
    accession_number: str
    is_synthesized: bool = True


@dataclass(frozen=True, kw_only=True)
class SynthesizedInstanceRecord(ExtractedSampleMetadata):
    """Complete metadata projection for one instance.

    ``geometry_consistent`` is True only when rows, columns, a 3-element
    position, a 6-element orientation and a 2-element pixel spacing all come
    from real data. When it is False the geometry fields hold placeholders
    and ``placeholder_geometry`` is set.
    """

    sop_class_uid: str
    sop_instance_uid: str
    study_instance_uid: str
    series_instance_uid: str
    modality: str
    series_number: int = 1
    specific_character_set: str = "ISO_IR 192"

    patient_name: str = "Anonymous"
    patient_id: str = "UNKNOWN"
    patient_birth_date: str = ""
    patient_sex: str = "O"
    study_description: str = ""
    study_date: str = ""
    study_time: str = ""
    accession_number: str = ""
    series_description: str = ""
    series_date: str = ""
    series_time: str = ""

    presentation_intent_type: str | None = None
    is_document: bool = False

    image_id: str = ""
    wado_root: str | None = None
    wado_uri: str | None = None

    is_synthesized: bool = True
    has_sample_pixel_facts: bool = False
    geometry_consistent: bool = False
    placeholder_geometry: bool = True

    def image_uids(self, frame_number: int | None = None) -> ImageUIDs:
        return ImageUIDs(
            study_instance_uid=self.study_instance_uid,
            series_instance_uid=self.series_instance_uid,
            sop_instance_uid=self.sop_instance_uid,
            frame_number=frame_number,
        )
