"""Tests for metadata synthesis.

Tests cover:
- Position interpolation along the slice normal
- Pixel module inference (palette, color, color MR, bit depths)
- Priority of instance attributes over sample over physics defaults
- Placeholder geometry and the consistency flag
- Series summaries
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydicom.dataset import Dataset

from dicom_manifest.core.synthesis.physics import (
    CT_IMAGE_STORAGE,
    DX_IMAGE_STORAGE_FOR_PRESENTATION,
    ENCAPSULATED_PDF_STORAGE,
    MR_IMAGE_STORAGE,
)
from dicom_manifest.core.synthesis.synthesizer import (
    MetadataSynthesizer,
    SynthesisContext,
    is_color_photometric,
)
from dicom_manifest.core.types import (
    ExtractedSampleMetadata,
    InstanceReference,
    SeriesDescriptor,
)

STUDY = "1.2.826.0.1.3680043.8.498.1"
SERIES = "1.2.826.0.1.3680043.8.498.2"
ROOT = "https://pacs.example.com/dicomweb"

AXIAL = (1.0, 0.0, 0.0, 0.0, 1.0, 0.0)

SCENARIO_SAMPLE = ExtractedSampleMetadata(
    rows=512,
    columns=512,
    image_orientation_patient=AXIAL,
    image_position_patient=(0.0, 0.0, 0.0),
    pixel_spacing=(1.0, 1.0),
    slice_thickness=2.0,
)


def make_instance(n, sop_class_uid=CT_IMAGE_STORAGE, **attributes):
    number_of_frames = attributes.pop("number_of_frames", None)
    return InstanceReference(
        sop_class_uid=sop_class_uid,
        sop_instance_uid=f"{SERIES}.{n}",
        instance_number=n,
        number_of_frames=number_of_frames,
        attributes=ExtractedSampleMetadata(**attributes),
    )


def make_descriptor(instances, modality="CT", **kwargs):
    return SeriesDescriptor(
        study_instance_uid=STUDY,
        series_instance_uid=SERIES,
        series_description="AXIAL",
        instances=tuple(instances),
        modality=modality,
        **kwargs,
    )


def context(index):
    return SynthesisContext(
        wado_root=ROOT,
        wado_uri=None,
        image_id=f"wadors:{ROOT}/studies/{STUDY}/series/{SERIES}/instances/{index}/frames/1",
        index=index,
    )


@pytest.fixture
def synthesizer():
    return MetadataSynthesizer()


def synthesize_all(synthesizer, descriptor, sample):
    return [
        synthesizer.synthesize_instance(descriptor, instance, sample, context(index))
        for index, instance in enumerate(descriptor.instances)
    ]


class TestPositionInterpolation:
    """Tests for positions of instances that were not sampled."""

    def test_positions_follow_slice_normal(self, synthesizer):
        """Test positions [0,0,0], [0,0,2], [0,0,4] for a 2 mm axial stack."""
        descriptor = make_descriptor([make_instance(n) for n in (1, 2, 3)])

        records = synthesize_all(synthesizer, descriptor, SCENARIO_SAMPLE)

        assert [r.image_position_patient for r in records] == [
            (0.0, 0.0, 0.0),
            (0.0, 0.0, 2.0),
            (0.0, 0.0, 4.0),
        ]
        assert all(r.geometry_consistent for r in records)
        assert not any(r.placeholder_geometry for r in records)

    def test_spacing_between_slices_preferred(self, synthesizer):
        """Test that SpacingBetweenSlices wins over SliceThickness."""
        sample = ExtractedSampleMetadata(
            **{**SCENARIO_SAMPLE.present_fields(), "spacing_between_slices": 3.0}
        )
        descriptor = make_descriptor([make_instance(n) for n in (1, 2)])

        records = synthesize_all(synthesizer, descriptor, sample)

        assert records[1].image_position_patient == (0.0, 0.0, 3.0)

    def test_sagittal_normal(self, synthesizer):
        """Test interpolation along x for a sagittal orientation."""
        sample = ExtractedSampleMetadata(
            **{
                **SCENARIO_SAMPLE.present_fields(),
                "image_orientation_patient": (0.0, 1.0, 0.0, 0.0, 0.0, -1.0),
                "image_position_patient": (10.0, 0.0, 0.0),
            }
        )
        descriptor = make_descriptor([make_instance(n) for n in (1, 2)])

        records = synthesize_all(synthesizer, descriptor, sample)

        assert records[1].image_position_patient == (8.0, 0.0, 0.0)

    def test_instance_position_wins(self, synthesizer):
        """Test that an explicit position on the reference is kept."""
        instance = make_instance(2, image_position_patient=(5.0, 5.0, 5.0))
        descriptor = make_descriptor([make_instance(1), instance])

        record = synthesizer.synthesize_instance(
            descriptor, instance, SCENARIO_SAMPLE, context(1)
        )

        assert record.image_position_patient == (5.0, 5.0, 5.0)


class TestPixelModule:
    """Tests for photometric, samples per pixel and bit depth inference."""

    def test_palette_descriptor_forces_palette_color(self, synthesizer):
        """Test PALETTE COLOR and one sample per pixel from a palette descriptor."""
        instance = make_instance(1, red_palette_color_lookup_table_descriptor=(256, 0, 16))
        descriptor = make_descriptor([instance])

        record = synthesizer.synthesize_instance(descriptor, instance, None, context(0))

        assert record.photometric_interpretation == "PALETTE COLOR"
        assert record.samples_per_pixel == 1

    def test_palette_in_sample_overrides_sampled_photometric(self, synthesizer):
        """Test that a sampled palette beats a sampled monochrome photometric."""
        sample = ExtractedSampleMetadata(
            photometric_interpretation="MONOCHROME2",
            samples_per_pixel=3,
            green_palette_color_lookup_table_descriptor=(256, 0, 8),
        )
        descriptor = make_descriptor([make_instance(1)])

        record = synthesizer.synthesize_instance(
            descriptor, descriptor.instances[0], sample, context(0)
        )

        assert record.photometric_interpretation == "PALETTE COLOR"
        assert record.samples_per_pixel == 1

    def test_explicit_photometric_beats_palette(self, synthesizer):
        """Test that an explicit instance photometric is not overridden."""
        instance = make_instance(
            1,
            photometric_interpretation="MONOCHROME2",
            red_palette_color_lookup_table_descriptor=(256, 0, 16),
        )

        record = synthesizer.synthesize_instance(
            make_descriptor([instance]), instance, None, context(0)
        )

        assert record.photometric_interpretation == "MONOCHROME2"

    def test_explicit_palette_color_ignores_sampled_samples(self, synthesizer):
        """Test that explicit PALETTE COLOR with a palette keeps one sample per pixel."""
        instance = make_instance(
            1,
            photometric_interpretation="PALETTE COLOR",
            red_palette_color_lookup_table_descriptor=(256, 0, 16),
        )
        sample = ExtractedSampleMetadata(samples_per_pixel=3)

        record = synthesizer.synthesize_instance(
            make_descriptor([instance]), instance, sample, context(0)
        )

        assert record.photometric_interpretation == "PALETTE COLOR"
        assert record.samples_per_pixel == 1

    def test_three_samples_become_rgb(self, synthesizer):
        """Test that three samples with a grayscale photometric become RGB."""
        sample = ExtractedSampleMetadata(
            samples_per_pixel=3, photometric_interpretation="MONOCHROME2"
        )
        descriptor = make_descriptor([make_instance(1)], modality="OT")

        record = synthesizer.synthesize_instance(
            descriptor, descriptor.instances[0], sample, context(0)
        )

        assert record.photometric_interpretation == "RGB"
        assert record.samples_per_pixel == 3
        assert record.planar_configuration == 0

    def test_color_photometric_sets_three_samples(self, synthesizer):
        """Test that a YBR photometric implies three samples."""
        sample = ExtractedSampleMetadata(
            samples_per_pixel=1, photometric_interpretation="YBR_FULL_422"
        )
        descriptor = make_descriptor([make_instance(1)], modality="OT")

        record = synthesizer.synthesize_instance(
            descriptor, descriptor.instances[0], sample, context(0)
        )

        assert record.samples_per_pixel == 3

    def test_color_mr_multiframe_override(self, synthesizer):
        """Test that color multi-frame MR is forced to RGB."""
        instance = make_instance(1, sop_class_uid=MR_IMAGE_STORAGE, number_of_frames=5)
        sample = ExtractedSampleMetadata(
            samples_per_pixel=3, photometric_interpretation="YBR_FULL"
        )

        record = synthesizer.synthesize_instance(
            make_descriptor([instance], modality="MR"), instance, sample, context(0)
        )

        assert record.photometric_interpretation == "RGB"
        assert record.samples_per_pixel == 3

    def test_default_bits(self, synthesizer):
        """Test 16/16/15 for grayscale without data or profile opinion."""
        descriptor = make_descriptor([make_instance(1)], modality="MR")

        record = synthesizer.synthesize_instance(
            descriptor, descriptor.instances[0], None, context(0)
        )

        assert (record.bits_allocated, record.bits_stored, record.high_bit) == (16, 16, 15)

    def test_profile_bits_without_sample(self, synthesizer):
        """Test that the DX profile supplies 12 stored bits when nothing was sampled."""
        instance = make_instance(1, sop_class_uid=DX_IMAGE_STORAGE_FOR_PRESENTATION)

        record = synthesizer.synthesize_instance(
            make_descriptor([instance], modality=None), instance, None, context(0)
        )

        assert (record.bits_allocated, record.bits_stored, record.high_bit) == (16, 12, 11)
        assert record.modality == "DX"
        assert record.presentation_intent_type == "FOR PRESENTATION"

    def test_sampled_bits_allocated_disables_profile_bits(self, synthesizer):
        """Test that profile stored bits are ignored once allocation is known."""
        instance = make_instance(1, sop_class_uid=DX_IMAGE_STORAGE_FOR_PRESENTATION)
        sample = ExtractedSampleMetadata(bits_allocated=8)

        record = synthesizer.synthesize_instance(
            make_descriptor([instance], modality=None), instance, sample, context(0)
        )

        assert (record.bits_allocated, record.bits_stored, record.high_bit) == (8, 8, 7)

    @given(
        photometric=st.sampled_from(
            [None, "MONOCHROME1", "MONOCHROME2", "RGB", "YBR_FULL", "YBR_FULL_422", "PALETTE COLOR"]
        ),
        samples_per_pixel=st.sampled_from([None, 1, 3]),
        palette=st.booleans(),
        modality=st.sampled_from(["CT", "MR", "US", "OT", None]),
        frames=st.sampled_from([None, 1, 4]),
    )
    def test_color_invariant(self, photometric, samples_per_pixel, palette, modality, frames):
        """Property test: three samples per pixel exactly when photometric is color."""
        sample = ExtractedSampleMetadata(
            photometric_interpretation=photometric,
            samples_per_pixel=samples_per_pixel,
            red_palette_color_lookup_table_descriptor=(256, 0, 16) if palette else None,
            number_of_frames=frames,
        )
        descriptor = make_descriptor([make_instance(1)], modality=modality)

        record = MetadataSynthesizer().synthesize_instance(
            descriptor, descriptor.instances[0], sample, context(0)
        )

        assert (record.samples_per_pixel == 3) == is_color_photometric(
            record.photometric_interpretation
        )
        if palette:
            assert record.photometric_interpretation == "PALETTE COLOR"
        assert record.high_bit == record.bits_stored - 1


class TestPriority:
    """Tests for attribute priority and physics defaults."""

    def test_ct_profile_without_sample(self, synthesizer):
        """Test CT defaults when the series was not sampled."""
        descriptor = make_descriptor([make_instance(1)])

        record = synthesizer.synthesize_instance(
            descriptor, descriptor.instances[0], None, context(0)
        )

        assert record.pixel_representation == 1
        assert record.rescale_intercept == -1024.0
        assert record.rescale_slope == 1.0
        assert (record.window_center, record.window_width) == (40.0, 400.0)
        assert record.has_sample_pixel_facts is False

    def test_sample_beats_profile(self, synthesizer):
        """Test that sampled window values replace CT defaults."""
        sample = ExtractedSampleMetadata(window_center=(50.0, 500.0), window_width=(350.0, 2000.0))
        descriptor = make_descriptor([make_instance(1)])

        record = synthesizer.synthesize_instance(
            descriptor, descriptor.instances[0], sample, context(0)
        )

        assert record.window_center == (50.0, 500.0)
        assert record.has_sample_pixel_facts is True

    def test_per_frame_groups_not_copied_to_siblings(self, synthesizer):
        """Test that the sample's per-frame groups stay with the sampled image."""
        frame = Dataset()
        frame.PlanePositionSequence = [Dataset()]
        frame.PlanePositionSequence[0].ImagePositionPatient = [0.0, 0.0, 0.0]
        sample = ExtractedSampleMetadata(
            **{**SCENARIO_SAMPLE.present_fields(), "per_frame_functional_groups": (frame,)}
        )
        descriptor = make_descriptor([make_instance(n) for n in (1, 2)])

        records = synthesize_all(synthesizer, descriptor, sample)

        assert records[1].per_frame_functional_groups is None
        assert records[1].image_position_patient == (0.0, 0.0, 2.0)

    def test_instance_attribute_beats_sample(self, synthesizer):
        """Test that an explicit reference attribute outranks the sample."""
        instance = make_instance(1, rows=1024, window_center=60.0)
        sample = ExtractedSampleMetadata(rows=512, window_center=40.0)

        record = synthesizer.synthesize_instance(
            make_descriptor([instance]), instance, sample, context(0)
        )

        assert record.rows == 1024
        assert record.window_center == 60.0

    def test_pet_profile_dimensions(self, synthesizer):
        """Test 128x128 PET placeholder dimensions."""
        descriptor = make_descriptor([make_instance(1)], modality="PT")

        record = synthesizer.synthesize_instance(
            descriptor, descriptor.instances[0], None, context(0)
        )

        assert (record.rows, record.columns) == (128, 128)
        assert record.rescale_type == "BQML"

    def test_us_profile_is_color(self, synthesizer):
        """Test ultrasound color defaults."""
        descriptor = make_descriptor([make_instance(1)], modality="US")

        record = synthesizer.synthesize_instance(
            descriptor, descriptor.instances[0], None, context(0)
        )

        assert record.samples_per_pixel == 3
        assert record.photometric_interpretation == "YBR_FULL_422"
        assert record.bits_allocated == 8

    def test_instance_specific_fields_not_copied(self, synthesizer):
        """Test that per-image values of the sample stay with the sample."""
        sample = ExtractedSampleMetadata(
            instance_number=1, slice_location=-50.0, largest_pixel_value=4000, rows=512
        )
        descriptor = make_descriptor([make_instance(1), make_instance(2)])

        record = synthesizer.synthesize_instance(
            descriptor, descriptor.instances[1], sample, context(1)
        )

        assert record.instance_number == 2
        assert record.slice_location is None
        assert record.largest_pixel_value is None

    def test_instance_number_falls_back_to_index(self, synthesizer):
        """Test a 1-based index for unnumbered instances."""
        instance = InstanceReference(sop_class_uid=CT_IMAGE_STORAGE, sop_instance_uid="1.2.3")

        record = synthesizer.synthesize_instance(
            make_descriptor([instance]), instance, None, context(4)
        )

        assert record.instance_number == 5

    def test_multiframe_timing(self, synthesizer):
        """Test frame pointer and default frame time for multi-frame instances."""
        instance = make_instance(1, number_of_frames=12)

        record = synthesizer.synthesize_instance(
            make_descriptor([instance]), instance, None, context(0)
        )

        assert record.number_of_frames == 12
        assert record.frame_increment_pointer == "(0018,1063)"
        assert record.frame_time == pytest.approx(33.33)

    def test_identity_fallbacks(self, synthesizer):
        """Test frame of reference, transfer syntax and character set defaults."""
        descriptor = make_descriptor([make_instance(1)])

        record = synthesizer.synthesize_instance(
            descriptor, descriptor.instances[0], None, context(0)
        )

        assert record.frame_of_reference_uid == f"{SERIES}.1"
        assert record.transfer_syntax_uid == "1.2.840.10008.1.2.1"
        assert record.specific_character_set == "ISO_IR 192"
        assert record.patient_name == "Anonymous"
        assert record.is_synthesized is True

    def test_document_sop_class(self, synthesizer):
        """Test that an encapsulated PDF is flagged as a document."""
        instance = make_instance(1, sop_class_uid=ENCAPSULATED_PDF_STORAGE)

        record = synthesizer.synthesize_instance(
            make_descriptor([instance], modality=None), instance, None, context(0)
        )

        assert record.is_document is True
        assert record.modality == "DOC"


class TestGeometryFlags:
    """Tests for placeholder geometry."""

    def test_no_geometry_uses_placeholders(self, synthesizer):
        """Test placeholders and a false consistency flag without real data."""
        descriptor = make_descriptor([make_instance(1), make_instance(2)])

        records = synthesize_all(synthesizer, descriptor, None)

        assert all(not r.geometry_consistent for r in records)
        assert all(r.placeholder_geometry for r in records)
        assert records[0].image_orientation_patient == AXIAL
        assert records[0].pixel_spacing == (1.0, 1.0)
        assert (records[0].rows, records[0].columns) == (512, 512)
        assert records[1].image_position_patient == (0.0, 0.0, 1.0)

    def test_partial_geometry_keeps_real_values(self, synthesizer):
        """Test that real dimensions survive while the flag stays false."""
        sample = ExtractedSampleMetadata(rows=300, columns=200, pixel_spacing=(0.4, 0.4))
        descriptor = make_descriptor([make_instance(1)])

        record = synthesizer.synthesize_instance(
            descriptor, descriptor.instances[0], sample, context(0)
        )

        assert (record.rows, record.columns) == (300, 200)
        assert record.pixel_spacing == (0.4, 0.4)
        assert record.geometry_consistent is False

    def test_degenerate_orientation_rejected(self, synthesizer):
        """Test that an all-zero orientation does not count as real."""
        sample = ExtractedSampleMetadata(
            **{**SCENARIO_SAMPLE.present_fields(), "image_orientation_patient": (0.0,) * 6}
        )
        descriptor = make_descriptor([make_instance(1)])

        record = synthesizer.synthesize_instance(
            descriptor, descriptor.instances[0], sample, context(0)
        )

        assert record.geometry_consistent is False
        assert record.image_orientation_patient == AXIAL

    def test_imager_pixel_spacing_fallback(self, synthesizer):
        """Test that imager pixel spacing stands in for pixel spacing."""
        sample = ExtractedSampleMetadata(
            **{
                **SCENARIO_SAMPLE.present_fields(),
                "pixel_spacing": None,
                "imager_pixel_spacing": (0.2, 0.2),
            }
        )
        descriptor = make_descriptor([make_instance(1)])

        record = synthesizer.synthesize_instance(
            descriptor, descriptor.instances[0], sample, context(0)
        )

        assert record.pixel_spacing == (0.2, 0.2)
        assert record.geometry_consistent is True


class TestSeriesSummary:
    """Tests for synthesize_series."""

    def test_summary_fields(self, synthesizer):
        """Test values and fallbacks of the series summary."""
        descriptor = make_descriptor(
            [make_instance(1), make_instance(2)],
            series_number="7",
            patient_id="PAT001",
        )

        record = synthesizer.synthesize_series(descriptor)

        assert record.series_number == 7
        assert record.modality == "CT"
        assert record.number_of_series_related_instances == 2
        assert record.patient_id == "PAT001"
        assert record.patient_sex == "O"

    def test_modality_from_sop_class(self, synthesizer):
        """Test the modality fallback through the first instance's SOP class."""
        descriptor = make_descriptor(
            [make_instance(1, sop_class_uid=MR_IMAGE_STORAGE)], modality=None
        )

        record = synthesizer.synthesize_instance(
            descriptor, descriptor.instances[0], None, context(0)
        )
        summary = synthesizer.synthesize_series(descriptor)

        assert record.modality == "MR"
        assert summary.modality == "MR"

    def test_unparsable_series_number(self, synthesizer):
        """Test that a non-numeric series number falls back to 1."""
        descriptor = make_descriptor([make_instance(1)], series_number="A1")

        assert synthesizer.synthesize_series(descriptor).series_number == 1
