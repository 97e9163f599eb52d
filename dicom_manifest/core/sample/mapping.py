"""Normalize a pydicom Dataset into ExtractedSampleMetadata.

This is the single point where DICOM keywords of a sample image are turned
into the snake_case record schema. Each attribute is read independently;
an element pydicom cannot decode is left unset rather than failing the
whole mapping.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydicom.dataset import Dataset
from pydicom.sequence import Sequence

from dicom_manifest.core.types import ExtractedSampleMetadata
from dicom_manifest.core.values import (
    to_float,
    to_float_tuple,
    to_int,
    to_int_tuple,
    to_str,
    to_str_tuple,
    to_tag_string,
    to_window,
)
from dicom_manifest.utils.logger import get_logger

logger = get_logger(__name__)


def _to_datasets(value: Any) -> tuple[Dataset, ...] | None:
    if isinstance(value, Sequence) and len(value) > 0:
        return tuple(value)
    return None


# field name -> (DICOM keyword, converter)
FIELD_MAP: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "rows": ("Rows", to_int),
    "columns": ("Columns", to_int),
    "bits_allocated": ("BitsAllocated", to_int),
    "bits_stored": ("BitsStored", to_int),
    "high_bit": ("HighBit", to_int),
    "pixel_representation": ("PixelRepresentation", to_int),
    "samples_per_pixel": ("SamplesPerPixel", to_int),
    "photometric_interpretation": ("PhotometricInterpretation", to_str),
    "planar_configuration": ("PlanarConfiguration", to_int),
    "pixel_aspect_ratio": ("PixelAspectRatio", to_int_tuple),
    "smallest_pixel_value": ("SmallestImagePixelValue", to_int),
    "largest_pixel_value": ("LargestImagePixelValue", to_int),
    "pixel_spacing": ("PixelSpacing", to_float_tuple),
    "imager_pixel_spacing": ("ImagerPixelSpacing", to_float_tuple),
    "image_orientation_patient": ("ImageOrientationPatient", to_float_tuple),
    "image_position_patient": ("ImagePositionPatient", to_float_tuple),
    "slice_thickness": ("SliceThickness", to_float),
    "spacing_between_slices": ("SpacingBetweenSlices", to_float),
    "slice_location": ("SliceLocation", to_float),
    "window_center": ("WindowCenter", to_window),
    "window_width": ("WindowWidth", to_window),
    "rescale_intercept": ("RescaleIntercept", to_float),
    "rescale_slope": ("RescaleSlope", to_float),
    "rescale_type": ("RescaleType", to_str),
    "voi_lut_function": ("VOILUTFunction", to_str),
    "frame_of_reference_uid": ("FrameOfReferenceUID", to_str),
    "number_of_frames": ("NumberOfFrames", to_int),
    "frame_time": ("FrameTime", to_float),
    "frame_increment_pointer": ("FrameIncrementPointer", to_tag_string),
    "per_frame_functional_groups": ("PerFrameFunctionalGroupsSequence", _to_datasets),
    "shared_functional_groups": ("SharedFunctionalGroupsSequence", _to_datasets),
    "image_type": ("ImageType", to_str_tuple),
    "acquisition_number": ("AcquisitionNumber", to_int),
    "acquisition_date": ("AcquisitionDate", to_str),
    "acquisition_time": ("AcquisitionTime", to_str),
    "instance_number": ("InstanceNumber", to_int),
    "lossy_image_compression": ("LossyImageCompression", to_str),
    "lossy_image_compression_ratio": ("LossyImageCompressionRatio", to_float_tuple),
    "lossy_image_compression_method": ("LossyImageCompressionMethod", to_str_tuple),
    "red_palette_color_lookup_table_descriptor": (
        "RedPaletteColorLookupTableDescriptor",
        to_int_tuple,
    ),
    "green_palette_color_lookup_table_descriptor": (
        "GreenPaletteColorLookupTableDescriptor",
        to_int_tuple,
    ),
    "blue_palette_color_lookup_table_descriptor": (
        "BluePaletteColorLookupTableDescriptor",
        to_int_tuple,
    ),
    "red_palette_color_lookup_table_data": ("RedPaletteColorLookupTableData", to_int_tuple),
    "green_palette_color_lookup_table_data": (
        "GreenPaletteColorLookupTableData",
        to_int_tuple,
    ),
    "blue_palette_color_lookup_table_data": (
        "BluePaletteColorLookupTableData",
        to_int_tuple,
    ),
    "palette_color_lookup_table_uid": ("PaletteColorLookupTableUID", to_str),
    "segmented_red_palette_color_lookup_table_data": (
        "SegmentedRedPaletteColorLookupTableData",
        to_int_tuple,
    ),
    "segmented_green_palette_color_lookup_table_data": (
        "SegmentedGreenPaletteColorLookupTableData",
        to_int_tuple,
    ),
    "segmented_blue_palette_color_lookup_table_data": (
        "SegmentedBluePaletteColorLookupTableData",
        to_int_tuple,
    ),
    "sequence_of_ultrasound_regions": ("SequenceOfUltrasoundRegions", _to_datasets),
    "corrected_image": ("CorrectedImage", to_str_tuple),
    "units": ("Units", to_str),
    "decay_correction": ("DecayCorrection", to_str),
    "radiopharmaceutical_information": (
        "RadiopharmaceuticalInformationSequence",
        _to_datasets,
    ),
    "frame_reference_time": ("FrameReferenceTime", to_float),
    "actual_frame_duration": ("ActualFrameDuration", to_float),
}


def read_field(ds: Dataset, keyword: str, converter: Callable[[Any], Any]) -> Any:
    """Read and convert one element; undecodable elements read as None."""
    try:
        value = ds.get(keyword)
    except Exception as e:
        logger.debug("sample_element_unreadable", keyword=keyword, error=str(e))
        return None
    if value is None:
        return None
    try:
        return converter(value)
    except (TypeError, ValueError, OverflowError) as e:
        logger.debug("sample_element_unconvertible", keyword=keyword, error=str(e))
        return None


def _first_item(ds: Dataset | None, keyword: str) -> Dataset | None:
    if ds is None:
        return None
    try:
        seq = ds.get(keyword)
    except Exception as e:
        logger.debug("sample_sequence_unreadable", keyword=keyword, error=str(e))
        return None
    if isinstance(seq, Sequence) and len(seq) > 0:
        return seq[0]
    return None


def functional_group_geometry(
    shared: tuple[Dataset, ...] | None, per_frame: tuple[Dataset, ...] | None
) -> dict[str, Any]:
    """Plane geometry from enhanced multi-frame functional groups.

    The shared group takes precedence; the first per-frame group fills what
    the shared group does not define (frame 1 position in particular).
    """
    candidates = ((shared or (None,))[0], (per_frame or (None,))[0])
    groups = [g for g in candidates if g is not None]
    found: dict[str, Any] = {}

    for group in groups:
        position = _first_item(group, "PlanePositionSequence")
        if position is not None and "image_position_patient" not in found:
            value = read_field(position, "ImagePositionPatient", to_float_tuple)
            if value is not None:
                found["image_position_patient"] = value

        orientation = _first_item(group, "PlaneOrientationSequence")
        if orientation is not None and "image_orientation_patient" not in found:
            value = read_field(orientation, "ImageOrientationPatient", to_float_tuple)
            if value is not None:
                found["image_orientation_patient"] = value

        measures = _first_item(group, "PixelMeasuresSequence")
        if measures is not None:
            for name, keyword, converter in (
                ("pixel_spacing", "PixelSpacing", to_float_tuple),
                ("slice_thickness", "SliceThickness", to_float),
                ("spacing_between_slices", "SpacingBetweenSlices", to_float),
            ):
                if name not in found:
                    value = read_field(measures, keyword, converter)
                    if value is not None:
                        found[name] = value

        voi = _first_item(group, "FrameVOILUTSequence")
        if voi is not None:
            for name, keyword in (
                ("window_center", "WindowCenter"),
                ("window_width", "WindowWidth"),
            ):
                if name not in found:
                    value = read_field(voi, keyword, to_window)
                    if value is not None:
                        found[name] = value

        transform = _first_item(group, "PixelValueTransformationSequence")
        if transform is not None:
            for name, keyword in (
                ("rescale_intercept", "RescaleIntercept"),
                ("rescale_slope", "RescaleSlope"),
            ):
                if name not in found:
                    value = read_field(transform, keyword, to_float)
                    if value is not None:
                        found[name] = value

    return found


def dataset_to_metadata(ds: Dataset) -> ExtractedSampleMetadata:
    """Map every recognized attribute of ``ds`` into the sample schema.

    Args:
        ds: Dataset read from a sample image (pixel data need not be loaded)

    Returns:
        Metadata bag with whatever attributes were present and decodable

    """
    values: dict[str, Any] = {}
    for name, (keyword, converter) in FIELD_MAP.items():
        value = read_field(ds, keyword, converter)
        if value is not None:
            values[name] = value

    if "per_frame_functional_groups" in values or "shared_functional_groups" in values:
        for name, value in functional_group_geometry(
            values.get("shared_functional_groups"),
            values.get("per_frame_functional_groups"),
        ).items():
            values.setdefault(name, value)

    file_meta = getattr(ds, "file_meta", None)
    if file_meta is not None:
        transfer_syntax = read_field(file_meta, "TransferSyntaxUID", to_str)
        if transfer_syntax is not None:
            values["transfer_syntax_uid"] = transfer_syntax

    return ExtractedSampleMetadata(**values)
