"""Serialization utilities for dataclasses.

Provides a mixin for converting record dataclasses to JSON-serializable
dictionaries. Tuples become lists and embedded pydicom sequences
(functional groups, ultrasound regions, radiopharmaceuticals) become DICOM
JSON.
"""

from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any

from pydicom.dataset import Dataset


class SerializableMixin:
    """Mixin for dataclasses with JSON serialization support.

    Records carry numbers, strings, tuples, enums and the occasional
    pydicom Dataset (functional group items). to_dict() flattens them into
    plain JSON types; a _custom_serialization() hook may add computed fields.

    Usage:
        @dataclass(frozen=True)
        class MyRecord(SerializableMixin):
            series_uid: str
            position: tuple[float, ...]

        MyRecord("1.2.3", (0.0, 0.0, 2.0)).to_dict()
    """

    def to_dict(self) -> dict[str, Any]:
        """Convert dataclass to JSON-serializable dictionary.

        Returns:
            Dictionary with tuples as lists, datasets as DICOM JSON and
            nested dataclasses recursively serialized.

        """
        if not is_dataclass(self):
            raise TypeError(
                f"SerializableMixin can only be used with dataclasses, "
                f"got {type(self).__name__}"
            )

        data: dict[str, Any] = asdict(self)  # type: ignore[arg-type]
        serialized: dict[str, Any] = self._serialize_value(data)

        custom_method = getattr(self, "_custom_serialization", None)
        if custom_method is not None:
            serialized = custom_method(serialized)

        return serialized

    def _serialize_value(self, value: Any) -> Any:
        """Recursively serialize a value to JSON-compatible format."""
        if isinstance(value, Enum):
            return value.value

        if isinstance(value, Dataset):
            return value.to_json_dict(suppress_invalid_tags=True)

        if isinstance(value, dict):
            return {k: self._serialize_value(v) for k, v in value.items()}

        if isinstance(value, (list, tuple)):
            return [self._serialize_value(item) for item in value]

        return value
