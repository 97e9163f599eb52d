"""Conversions from pydicom element values to plain Python values.

pydicom hands back IS/DS subclasses, MultiValue containers, PersonName
objects and raw bytes depending on VR and on how the element was read. These
helpers collapse all of that into ints, floats, strings and tuples, returning
None for anything absent, empty or unparsable.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Any

import numpy as np
from pydicom.multival import MultiValue
from pydicom.tag import Tag

_CONTAINERS = (MultiValue, list, tuple)


def _scalar(value: Any) -> Any:
    if isinstance(value, _CONTAINERS):
        return value[0] if len(value) > 0 else None
    return value


def _items(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, _CONTAINERS):
        return list(value)
    if isinstance(value, str) and "\\" in value:
        return [part.strip() for part in value.split("\\")]
    return [value]


def to_int(value: Any) -> int | None:
    value = _scalar(value)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return int(number) if math.isfinite(number) else None


def to_float(value: Any) -> float | None:
    value = _scalar(value)
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def to_str(value: Any) -> str | None:
    value = _scalar(value)
    if value is None:
        return None
    alphabetic = getattr(value, "alphabetic", None)
    if alphabetic:
        value = alphabetic
    if isinstance(value, bytes):
        value = value.split(b"\x00", 1)[0].decode("ascii", errors="replace")
    text = str(value).strip()
    return text or None


def to_float_tuple(value: Any) -> tuple[float, ...] | None:
    """Numbers from a multi-valued element; unparsable members are dropped."""
    numbers = [n for n in (to_float(item) for item in _items(value)) if n is not None]
    return tuple(numbers) if numbers else None


def to_str_tuple(value: Any) -> tuple[str, ...] | None:
    strings = [s for s in (to_str(item) for item in _items(value)) if s is not None]
    return tuple(strings) if strings else None


def words_from_bytes(raw: bytes) -> tuple[int, ...]:
    """Little-endian unsigned 16-bit words; a trailing odd byte is ignored."""
    usable = len(raw) - (len(raw) % 2)
    return tuple(int(w) for w in np.frombuffer(raw[:usable], dtype="<u2"))


def to_int_tuple(value: Any) -> tuple[int, ...] | None:
    """Integers from US/SS/OW style values, including raw OW bytes."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        words = words_from_bytes(bytes(value))
        return words or None
    if isinstance(value, np.ndarray):
        return tuple(int(v) for v in value.ravel()) or None
    ints = [i for i in (to_int(item) for item in _items(value)) if i is not None]
    return tuple(ints) if ints else None


def to_window(value: Any) -> float | tuple[float, ...] | None:
    """Window center/width: a scalar when single-valued, else a tuple."""
    numbers = to_float_tuple(value)
    if numbers is None:
        return None
    return numbers[0] if len(numbers) == 1 else numbers


def to_tag_string(value: Any) -> str | None:
    """Render an AT value as ``(gggg,eeee)``."""
    value = _scalar(value)
    if value is None:
        return None
    try:
        tag = Tag(value)
    except (TypeError, ValueError, OverflowError):
        return to_str(value)
    return f"({tag.group:04X},{tag.element:04X})"


def first_present(*values: Any) -> Any:
    """The first argument that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def is_number_sequence(value: Any, length: int) -> bool:
    """True for a sequence of exactly ``length`` finite numbers."""
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        return False
    if len(value) != length:
        return False
    try:
        return all(math.isfinite(float(v)) for v in value)
    except (TypeError, ValueError):
        return False
