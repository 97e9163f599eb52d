"""Metadata Synthesis

Combines manifest references, the facts sampled from one image per series
and the physics registry into complete per-instance records.

PRIORITY (highest first, per attribute):
    1. explicit attribute on the manifest's SOP reference item
    2. sampled first image of the series
    3. modality (or SOP class) physics profile
    4. generic default

Missing data is never an error here; it is reflected in the provenance
flags of the produced record instead.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

from dicom_manifest.core.constants import (
    DEFAULT_FRAME_TIME_MS,
    EXPLICIT_VR_LITTLE_ENDIAN,
    FRAME_TIME_POINTER,
    PALETTE_COLOR,
)
from dicom_manifest.core.synthesis import geometry
from dicom_manifest.core.synthesis.physics import (
    DEFAULT_SOP_CLASS_UID,
    PhysicsProfile,
    modality_for_sop_class,
    profile_for,
)
from dicom_manifest.core.types import (
    ExtractedSampleMetadata,
    InstanceReference,
    SeriesDescriptor,
    SeriesRecord,
    SynthesizedInstanceRecord,
)
from dicom_manifest.core.values import first_present, to_int
from dicom_manifest.utils.logger import get_logger

logger = get_logger(__name__)

COLOR_PREFIXES = ("RGB", "YBR")

# Attributes that describe one particular image and must not be copied from
# the sampled image onto its siblings
INSTANCE_SPECIFIC_FIELDS = frozenset(
    {
        "instance_number",
        "image_position_patient",
        "slice_location",
        "smallest_pixel_value",
        "largest_pixel_value",
        "acquisition_time",
        "per_frame_functional_groups",
    }
)

_EMPTY = ExtractedSampleMetadata()


def is_color_photometric(photometric: str | None) -> bool:
    return bool(photometric) and photometric.upper().startswith(COLOR_PREFIXES)


@dataclass(frozen=True)
class SynthesisContext:
    """Per-instance transport details and position within the series."""

    wado_root: str | None
    wado_uri: str | None
    image_id: str
    index: int


class MetadataSynthesizer:
    """Builds series and instance records from sparse references."""

    def __init__(self, specific_character_set: str = "ISO_IR 192"):
        self.specific_character_set = specific_character_set

    def synthesize_series(self, descriptor: SeriesDescriptor) -> SeriesRecord:
        """Series summary with generic fallbacks for absent values."""
        return SeriesRecord(
            study_instance_uid=descriptor.study_instance_uid,
            series_instance_uid=descriptor.series_instance_uid,
            series_description=descriptor.series_description or "",
            series_number=to_int(descriptor.series_number) or 1,
            series_date=descriptor.series_date or "",
            series_time=descriptor.series_time or "",
            modality=self._modality(
                descriptor,
                descriptor.instances[0].sop_class_uid if descriptor.instances else None,
            ),
            number_of_series_related_instances=(
                descriptor.number_of_series_related_instances
                or len(descriptor.instances)
                or 1
            ),
            patient_name=descriptor.patient_name or "Anonymous",
            patient_id=descriptor.patient_id or "UNKNOWN",
            patient_birth_date=descriptor.patient_birth_date or "",
            patient_sex=descriptor.patient_sex or "O",
            study_description=descriptor.study_description or "",
            study_date=descriptor.study_date or "",
            study_time=descriptor.study_time or "",
            accession_number=descriptor.accession_number or "",
        )

    def synthesize_instance(
        self,
        descriptor: SeriesDescriptor,
        instance: InstanceReference,
        sample: ExtractedSampleMetadata | None,
        context: SynthesisContext,
    ) -> SynthesizedInstanceRecord:
        """Complete metadata for one instance.

        Args:
            descriptor: Series the instance belongs to
            instance: The manifest reference being synthesized
            sample: Facts sampled from the series' first image, if any
            context: Image id, endpoints and sort position of the instance

        Returns:
            Record whose pixel module is internally consistent and whose
            geometry is either real or flagged as placeholder

        """
        attrs = instance.attributes
        sampled = sample if sample is not None else _EMPTY
        sop_class_uid = instance.sop_class_uid or DEFAULT_SOP_CLASS_UID
        modality = self._modality(descriptor, sop_class_uid)
        profile = profile_for(modality, sop_class_uid)

        values = self._passthrough(attrs, sampled)
        values.update(self._pixel_module(instance, attrs, sampled, profile, modality))
        values.update(self._geometry(instance, attrs, sampled, profile, context.index))
        values.update(self._lut_module(attrs, sampled, profile))

        number_of_frames = first_present(
            instance.number_of_frames, attrs.number_of_frames, sampled.number_of_frames
        )
        values["number_of_frames"] = number_of_frames
        if number_of_frames is not None and number_of_frames > 1:
            values["frame_increment_pointer"] = FRAME_TIME_POINTER
            values["frame_time"] = first_present(
                attrs.frame_time, sampled.frame_time, DEFAULT_FRAME_TIME_MS
            )

        values["frame_of_reference_uid"] = first_present(
            attrs.frame_of_reference_uid,
            sampled.frame_of_reference_uid,
            f"{descriptor.series_instance_uid}.1",
        )
        values["transfer_syntax_uid"] = first_present(
            attrs.transfer_syntax_uid,
            sampled.transfer_syntax_uid,
            EXPLICIT_VR_LITTLE_ENDIAN,
        )
        values["instance_number"] = first_present(
            instance.instance_number, attrs.instance_number, context.index + 1
        )

        record = SynthesizedInstanceRecord(
            **values,
            sop_class_uid=sop_class_uid,
            sop_instance_uid=instance.sop_instance_uid,
            study_instance_uid=descriptor.study_instance_uid,
            series_instance_uid=descriptor.series_instance_uid,
            modality=modality,
            series_number=to_int(descriptor.series_number) or 1,
            specific_character_set=self.specific_character_set,
            patient_name=descriptor.patient_name or "Anonymous",
            patient_id=descriptor.patient_id or "UNKNOWN",
            patient_birth_date=descriptor.patient_birth_date or "",
            patient_sex=descriptor.patient_sex or "O",
            study_description=descriptor.study_description or "",
            study_date=descriptor.study_date or "",
            study_time=descriptor.study_time or "",
            accession_number=descriptor.accession_number or "",
            series_description=descriptor.series_description or "",
            series_date=descriptor.series_date or "",
            series_time=descriptor.series_time or "",
            presentation_intent_type=profile.presentation_intent_type,
            is_document=profile.is_document,
            image_id=context.image_id,
            wado_root=context.wado_root,
            wado_uri=context.wado_uri,
            has_sample_pixel_facts=sample is not None and not sample.is_empty(),
        )

        logger.debug(
            "instance_synthesized",
            sop_instance_uid=instance.sop_instance_uid,
            index=context.index,
            geometry_consistent=record.geometry_consistent,
        )
        return record

    def _modality(self, descriptor: SeriesDescriptor, sop_class_uid: str | None) -> str:
        modality = descriptor.modality or modality_for_sop_class(sop_class_uid)
        return (modality or "OT").upper()

    def _passthrough(
        self, attrs: ExtractedSampleMetadata, sampled: ExtractedSampleMetadata
    ) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for f in fields(ExtractedSampleMetadata):
            if f.name in INSTANCE_SPECIFIC_FIELDS:
                values[f.name] = getattr(attrs, f.name)
            else:
                values[f.name] = first_present(
                    getattr(attrs, f.name), getattr(sampled, f.name)
                )
        return values

    def _pixel_module(
        self,
        instance: InstanceReference,
        attrs: ExtractedSampleMetadata,
        sampled: ExtractedSampleMetadata,
        profile: PhysicsProfile,
        modality: str,
    ) -> dict[str, Any]:
        has_palette = attrs.has_palette() or sampled.has_palette()
        explicit_photometric = attrs.photometric_interpretation

        samples_per_pixel = first_present(
            attrs.samples_per_pixel,
            sampled.samples_per_pixel,
            profile.samples_per_pixel,
            1,
        )
        photometric = first_present(
            explicit_photometric, sampled.photometric_interpretation
        )
        if photometric is None:
            if samples_per_pixel == 3:
                photometric = (
                    profile.photometric_interpretation
                    if is_color_photometric(profile.photometric_interpretation)
                    else "RGB"
                )
            elif has_palette:
                photometric = PALETTE_COLOR
            else:
                photometric = profile.photometric_interpretation or "MONOCHROME2"

        if has_palette and explicit_photometric is None:
            photometric = PALETTE_COLOR
            samples_per_pixel = 1
        elif has_palette and photometric == PALETTE_COLOR:
            samples_per_pixel = 1

        if samples_per_pixel == 3 and not is_color_photometric(photometric):
            photometric = "RGB"
        elif is_color_photometric(photometric):
            samples_per_pixel = 3

        number_of_frames = first_present(
            instance.number_of_frames, attrs.number_of_frames, sampled.number_of_frames
        )
        if (
            modality == "MR"
            and number_of_frames is not None
            and number_of_frames > 1
            and not has_palette
            and (samples_per_pixel == 3 or is_color_photometric(photometric))
        ):
            samples_per_pixel = 3
            photometric = "RGB"
            logger.debug(
                "color_mr_override", sop_instance_uid=instance.sop_instance_uid
            )

        bits_from_data = first_present(attrs.bits_allocated, sampled.bits_allocated)
        color_default = 8 if samples_per_pixel == 3 else 16
        bits_allocated = first_present(
            bits_from_data, profile.bits_allocated, color_default
        )
        profile_bits = bits_from_data is None
        bits_stored = first_present(
            attrs.bits_stored,
            sampled.bits_stored,
            profile.bits_stored if profile_bits else None,
            bits_allocated,
        )
        high_bit = first_present(
            attrs.high_bit,
            sampled.high_bit,
            profile.high_bit if profile_bits else None,
            bits_stored - 1,
        )

        return {
            "samples_per_pixel": samples_per_pixel,
            "photometric_interpretation": photometric,
            "bits_allocated": bits_allocated,
            "bits_stored": bits_stored,
            "high_bit": high_bit,
            "pixel_representation": first_present(
                attrs.pixel_representation,
                sampled.pixel_representation,
                profile.pixel_representation,
                0,
            ),
            "planar_configuration": first_present(
                attrs.planar_configuration,
                sampled.planar_configuration,
                profile.planar_configuration,
                0 if samples_per_pixel == 3 else None,
            ),
        }

    def _lut_module(
        self,
        attrs: ExtractedSampleMetadata,
        sampled: ExtractedSampleMetadata,
        profile: PhysicsProfile,
    ) -> dict[str, Any]:
        return {
            "window_center": first_present(
                attrs.window_center, sampled.window_center, profile.window_center, 128.0
            ),
            "window_width": first_present(
                attrs.window_width, sampled.window_width, profile.window_width, 256.0
            ),
            "rescale_intercept": first_present(
                attrs.rescale_intercept,
                sampled.rescale_intercept,
                profile.rescale_intercept,
                0.0,
            ),
            "rescale_slope": first_present(
                attrs.rescale_slope, sampled.rescale_slope, profile.rescale_slope, 1.0
            ),
            "rescale_type": first_present(
                attrs.rescale_type, sampled.rescale_type, profile.rescale_type
            ),
        }

    def _geometry(
        self,
        instance: InstanceReference,
        attrs: ExtractedSampleMetadata,
        sampled: ExtractedSampleMetadata,
        profile: PhysicsProfile,
        index: int,
    ) -> dict[str, Any]:
        rows = first_present(instance.rows, attrs.rows, sampled.rows)
        columns = first_present(instance.columns, attrs.columns, sampled.columns)

        pixel_spacing = next(
            (
                s
                for s in (
                    attrs.pixel_spacing,
                    sampled.pixel_spacing,
                    attrs.imager_pixel_spacing,
                    sampled.imager_pixel_spacing,
                )
                if geometry.is_valid_spacing(s)
            ),
            None,
        )
        orientation = next(
            (
                o
                for o in (attrs.image_orientation_patient, sampled.image_orientation_patient)
                if geometry.is_valid_orientation(o)
            ),
            None,
        )
        slice_thickness = first_present(attrs.slice_thickness, sampled.slice_thickness)
        spacing_between_slices = first_present(
            attrs.spacing_between_slices, sampled.spacing_between_slices
        )

        position = None
        if geometry.is_valid_position(attrs.image_position_patient):
            position = attrs.image_position_patient
        elif geometry.is_valid_position(
            sampled.image_position_patient
        ) and geometry.is_valid_orientation(sampled.image_orientation_patient):
            position = geometry.interpolate_position(
                sampled.image_position_patient,
                sampled.image_orientation_patient,
                index,
                geometry.slice_spacing(spacing_between_slices, slice_thickness),
            )

        consistent = geometry.geometry_is_consistent(
            rows, columns, position, orientation, pixel_spacing
        )

        thickness = slice_thickness if slice_thickness is not None else 1.0
        if not geometry.is_valid_dimension(rows):
            rows = first_present(profile.rows, geometry.PLACEHOLDER_DIMENSION)
        if not geometry.is_valid_dimension(columns):
            columns = first_present(profile.columns, geometry.PLACEHOLDER_DIMENSION)
        if orientation is None:
            orientation = geometry.PLACEHOLDER_ORIENTATION
        if position is None:
            position = geometry.placeholder_position(index, thickness)
        if pixel_spacing is None:
            pixel_spacing = profile.pixel_spacing or geometry.PLACEHOLDER_PIXEL_SPACING

        return {
            "rows": rows,
            "columns": columns,
            "pixel_spacing": tuple(float(v) for v in pixel_spacing),
            "image_orientation_patient": tuple(float(v) for v in orientation),
            "image_position_patient": tuple(float(v) for v in position),
            "slice_thickness": thickness,
            "spacing_between_slices": spacing_between_slices,
            "geometry_consistent": consistent,
            "placeholder_geometry": not consistent,
        }
