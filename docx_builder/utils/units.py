"""Unit conversion helpers for WordprocessingML measurements."""
from __future__ import annotations

EMU_PER_INCH = 914400
HALF_POINTS_PER_POINT = 2


def points_to_half_points(value: float) -> int:
    """Font sizes are stored in half-points (``w:sz``)."""
    return int(round(value * HALF_POINTS_PER_POINT))


def half_points_to_points(value: int) -> float:
    return value / HALF_POINTS_PER_POINT
