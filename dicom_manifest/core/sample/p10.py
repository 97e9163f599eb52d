"""Part 10 framing helpers.

WADO-RS servers frequently return a bare dataset (no preamble, no file meta
group). pydicom reads such buffers most reliably when they are given a
minimal file meta header, which ``wrap_dataset_in_p10`` constructs.
"""

import struct

from dicom_manifest.core.constants import (
    DICM_MAGIC,
    IMPLICIT_VR_LITTLE_ENDIAN,
    PREAMBLE_LENGTH,
)


def has_p10_preamble(data: bytes) -> bool:
    """True when ``DICM`` sits right after a 128-byte preamble."""
    return (
        len(data) > PREAMBLE_LENGTH + len(DICM_MAGIC)
        and data[PREAMBLE_LENGTH : PREAMBLE_LENGTH + len(DICM_MAGIC)] == DICM_MAGIC
    )


def _explicit_short_element(group: int, element: int, vr: bytes, value: bytes) -> bytes:
    return struct.pack("<HH2sH", group, element, vr, len(value)) + value


def build_file_meta(transfer_syntax_uid: str) -> bytes:
    """Group length (0002,0000) + Transfer Syntax UID (0002,0010), explicit VR LE."""
    uid = transfer_syntax_uid.encode("ascii")
    if len(uid) % 2:
        uid += b"\x00"
    ts_element = _explicit_short_element(0x0002, 0x0010, b"UI", uid)
    group_length = _explicit_short_element(
        0x0002, 0x0000, b"UL", struct.pack("<I", len(ts_element))
    )
    return group_length + ts_element


def wrap_dataset_in_p10(
    data: bytes, transfer_syntax_uid: str = IMPLICIT_VR_LITTLE_ENDIAN
) -> bytes:
    """Prepend preamble, ``DICM`` and a minimal file meta group to a bare dataset.

    Args:
        data: Dataset bytes without any Part 10 framing
        transfer_syntax_uid: Transfer syntax to declare for the dataset

    Returns:
        Bytes readable as a Part 10 file

    """
    return (
        b"\x00" * PREAMBLE_LENGTH
        + DICM_MAGIC
        + build_file_meta(transfer_syntax_uid)
        + data
    )
