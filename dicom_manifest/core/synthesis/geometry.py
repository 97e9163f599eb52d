"""Patient-space geometry helpers.

Positions of instances that were not sampled are extrapolated from the
first image along the slice normal, assuming uniform slice spacing. Series
with genuinely non-uniform spacing get approximate positions.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

PLACEHOLDER_ORIENTATION: tuple[float, ...] = (1.0, 0.0, 0.0, 0.0, 1.0, 0.0)
PLACEHOLDER_PIXEL_SPACING: tuple[float, float] = (1.0, 1.0)
PLACEHOLDER_DIMENSION = 512


def _finite_vector(value: Sequence[float] | None, length: int) -> np.ndarray | None:
    if value is None or len(value) != length:
        return None
    try:
        vector = np.asarray(value, dtype=float)
    except (TypeError, ValueError):
        return None
    return vector if np.all(np.isfinite(vector)) else None


def is_valid_position(position: Sequence[float] | None) -> bool:
    return _finite_vector(position, 3) is not None


def is_valid_orientation(orientation: Sequence[float] | None) -> bool:
    """Six finite values whose row and column direction vectors are non-zero."""
    vector = _finite_vector(orientation, 6)
    if vector is None:
        return False
    return bool(np.linalg.norm(vector[:3]) > 0 and np.linalg.norm(vector[3:]) > 0)


def is_valid_spacing(spacing: Sequence[float] | None) -> bool:
    vector = _finite_vector(spacing, 2)
    return vector is not None and bool(np.all(vector > 0))


def is_valid_dimension(value: int | None) -> bool:
    return value is not None and value > 0


def geometry_is_consistent(
    rows: int | None,
    columns: int | None,
    position: Sequence[float] | None,
    orientation: Sequence[float] | None,
    pixel_spacing: Sequence[float] | None,
) -> bool:
    """True only when all five geometry attributes are present and well formed."""
    return (
        is_valid_dimension(rows)
        and is_valid_dimension(columns)
        and is_valid_position(position)
        and is_valid_orientation(orientation)
        and is_valid_spacing(pixel_spacing)
    )


def slice_normal(orientation: Sequence[float]) -> np.ndarray:
    """Cross product of the row and column direction cosines."""
    vector = np.asarray(orientation, dtype=float)
    return np.cross(vector[:3], vector[3:])


def slice_spacing(
    spacing_between_slices: float | None, slice_thickness: float | None
) -> float:
    """Spacing between slices, else slice thickness, else 1.0."""
    for candidate in (spacing_between_slices, slice_thickness):
        if candidate is not None and np.isfinite(candidate) and candidate != 0:
            return float(candidate)
    return 1.0


def interpolate_position(
    first_position: Sequence[float],
    orientation: Sequence[float],
    index: int,
    spacing: float,
) -> tuple[float, float, float]:
    """Position of the ``index``-th slice of a uniformly spaced stack.

    Args:
        first_position: ImagePositionPatient of slice 0
        orientation: ImageOrientationPatient shared by the stack
        index: Zero-based slice index
        spacing: Distance between adjacent slices in mm

    Returns:
        ``first_position + normal * index * spacing``

    """
    position = np.asarray(first_position, dtype=float) + slice_normal(
        orientation
    ) * (index * spacing)
    return tuple(float(v) for v in position)


def placeholder_position(index: int, slice_thickness: float) -> tuple[float, float, float]:
    """Axial stack position used when no real position is available."""
    return (0.0, 0.0, float(index * slice_thickness))
