"""Last-resort byte-level tag scanner.

Walks little-endian element headers without a DICOM parser and keeps only a
whitelist of geometry, pixel and palette attributes. VR encoding is guessed
per element: if the two bytes after the tag are ASCII letters the element is
treated as explicit VR, otherwise as implicit VR. That guess is inherently
ambiguous (implicit length bytes can happen to spell two letters), so every
computed length is bounds-checked and a length that runs past the end of the
buffer ends the scan with whatever was collected so far.

Undefined-length sequences and items are stepped into rather than skipped
so the walk can continue past them; only elements at the top level of the
dataset are recorded.
"""

import struct
from collections.abc import Callable
from typing import Any

from dicom_manifest.core.constants import DICM_MAGIC, LONG_LENGTH_VRS, PREAMBLE_LENGTH
from dicom_manifest.core.types import ExtractedSampleMetadata
from dicom_manifest.core.values import (
    to_float,
    to_float_tuple,
    to_int,
    to_str,
    to_window,
    words_from_bytes,
)
from dicom_manifest.utils.logger import get_logger

logger = get_logger(__name__)

UNDEFINED_LENGTH = 0xFFFFFFFF
ITEM_GROUP = 0xFFFE
ITEM = 0xE000
SEQUENCE_DELIMITER = 0xE0DD

_BINARY_VRS = frozenset({"US", "SS", "OW", "OB", "UL", "SL", "FL", "FD", "AT"})


def _decode_text(raw: bytes) -> str:
    return raw.split(b"\x00", 1)[0].decode("ascii", errors="replace").strip()


def _as_int(raw: bytes, vr: str) -> int | None:
    if vr in ("US", "SS", "OW"):
        if len(raw) < 2:
            return None
        return struct.unpack_from("<h" if vr == "SS" else "<H", raw)[0]
    if vr in ("UL", "SL"):
        if len(raw) < 4:
            return None
        return struct.unpack_from("<l" if vr == "SL" else "<L", raw)[0]
    return to_int(_decode_text(raw))


def _as_words(raw: bytes, vr: str) -> tuple[int, ...] | None:
    if vr in _BINARY_VRS:
        return words_from_bytes(raw) or None
    return None


def _as_float(raw: bytes, vr: str) -> float | None:
    return to_float(_decode_text(raw))


def _as_floats(raw: bytes, vr: str) -> tuple[float, ...] | None:
    return to_float_tuple(_decode_text(raw))


def _as_window(raw: bytes, vr: str) -> Any:
    return to_window(_decode_text(raw))


def _as_text(raw: bytes, vr: str) -> str | None:
    return to_str(_decode_text(raw))


# tag -> (field name, VR assumed when the encoding is implicit, decoder)
SCAN_FIELDS: dict[int, tuple[str, str, Callable[[bytes, str], Any]]] = {
    0x00280002: ("samples_per_pixel", "US", _as_int),
    0x00280004: ("photometric_interpretation", "CS", _as_text),
    0x00280008: ("number_of_frames", "IS", _as_int),
    0x00280010: ("rows", "US", _as_int),
    0x00280011: ("columns", "US", _as_int),
    0x00280030: ("pixel_spacing", "DS", _as_floats),
    0x00180050: ("slice_thickness", "DS", _as_float),
    0x00180088: ("spacing_between_slices", "DS", _as_float),
    0x00200032: ("image_position_patient", "DS", _as_floats),
    0x00200037: ("image_orientation_patient", "DS", _as_floats),
    0x00200052: ("frame_of_reference_uid", "UI", _as_text),
    0x00281050: ("window_center", "DS", _as_window),
    0x00281051: ("window_width", "DS", _as_window),
    0x00281052: ("rescale_intercept", "DS", _as_float),
    0x00281053: ("rescale_slope", "DS", _as_float),
    0x00281101: ("red_palette_color_lookup_table_descriptor", "US", _as_words),
    0x00281102: ("green_palette_color_lookup_table_descriptor", "US", _as_words),
    0x00281103: ("blue_palette_color_lookup_table_descriptor", "US", _as_words),
    0x00281199: ("palette_color_lookup_table_uid", "UI", _as_text),
    0x00281201: ("red_palette_color_lookup_table_data", "OW", _as_words),
    0x00281202: ("green_palette_color_lookup_table_data", "OW", _as_words),
    0x00281203: ("blue_palette_color_lookup_table_data", "OW", _as_words),
    0x00281221: ("segmented_red_palette_color_lookup_table_data", "OW", _as_words),
    0x00281222: ("segmented_green_palette_color_lookup_table_data", "OW", _as_words),
    0x00281223: ("segmented_blue_palette_color_lookup_table_data", "OW", _as_words),
}


def _is_ascii_letter(byte: int) -> bool:
    return 0x41 <= byte <= 0x5A or 0x61 <= byte <= 0x7A


def _scan_start(data: bytes) -> int:
    marker_end = PREAMBLE_LENGTH + len(DICM_MAGIC)
    if data[PREAMBLE_LENGTH:marker_end] == DICM_MAGIC:
        return marker_end
    return 0


def scan_common_tags(data: bytes) -> ExtractedSampleMetadata:
    """Collect whitelisted attributes from a raw buffer.

    Args:
        data: Any byte buffer, with or without Part 10 framing

    Returns:
        The attributes found before the walk ended; possibly empty

    """
    found: dict[str, Any] = {}
    offset = _scan_start(data)
    size = len(data)
    depth = 0

    while offset + 8 <= size:
        group, element = struct.unpack_from("<HH", data, offset)
        tag = (group << 16) | element

        if group == ITEM_GROUP:
            (length,) = struct.unpack_from("<L", data, offset + 4)
            offset += 8
            if element == SEQUENCE_DELIMITER:
                depth = max(depth - 1, 0)
            elif element == ITEM and length != UNDEFINED_LENGTH:
                if offset + length > size:
                    logger.debug("scan_aborted", offset=offset, length=length)
                    break
                offset += length
            continue

        if _is_ascii_letter(data[offset + 4]) and _is_ascii_letter(data[offset + 5]):
            vr = data[offset + 4 : offset + 6].decode("ascii")
            if vr.upper() in LONG_LENGTH_VRS:
                if offset + 12 > size:
                    break
                (length,) = struct.unpack_from("<L", data, offset + 8)
                value_offset = offset + 12
            else:
                (length,) = struct.unpack_from("<H", data, offset + 6)
                value_offset = offset + 8
        else:
            vr = ""
            (length,) = struct.unpack_from("<L", data, offset + 4)
            value_offset = offset + 8

        if length == UNDEFINED_LENGTH:
            # Sequence (or encapsulated pixel data) of undefined length
            depth += 1
            offset = value_offset
            continue

        if value_offset + length > size:
            logger.debug("scan_aborted", offset=offset, length=length, tag=f"{tag:08X}")
            break

        entry = SCAN_FIELDS.get(tag)
        if entry is not None and depth == 0:
            name, implicit_vr, decode = entry
            raw = data[value_offset : value_offset + length]
            try:
                value = decode(raw, vr.upper() or implicit_vr)
            except struct.error:
                value = None
            if value is not None:
                found[name] = value

        offset = value_offset + length

    if found:
        logger.debug("scan_completed", fields=sorted(found))
    return ExtractedSampleMetadata(**found)
