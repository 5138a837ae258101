"""
Coordinate conversion between absolute pixel space and image-relative space.

Relative coordinates are fractions of the image width/height in [0, 1].
Point lists are flat: [x1, y1, x2, y2, ...].
"""

from decimal import Decimal, ROUND_HALF_EVEN

import numpy as np

from annotation_io.config import DOUBLE_EQUAL_TOLERANCE
from annotation_io.errors import InvalidAnnotationFormatError


def almost_equal(a: float, b: float, tolerance: float = DOUBLE_EQUAL_TOLERANCE) -> bool:
    """Absolute-tolerance float comparison."""
    return abs(a - b) <= tolerance


def is_within(value: float, lo: float, hi: float) -> bool:
    """Inclusive range check."""
    return lo <= value <= hi


def to_relative(x: float, y: float, width: float, height: float) -> tuple[float, float]:
    """Convert an absolute pixel point to relative coordinates."""
    return x / width, y / height


def to_absolute(x: float, y: float, width: float, height: float) -> tuple[float, float]:
    """Convert a relative point to absolute pixel coordinates."""
    return x * width, y * height


def _as_pairs(points: list[float]) -> np.ndarray:
    if len(points) % 2 != 0:
        raise ValueError(f"Point list must have an even length, got {len(points)}")
    return np.asarray(points, dtype=np.float64).reshape(-1, 2)


def points_to_relative(points: list[float], width: float, height: float) -> list[float]:
    """
    Convert a flat absolute point list to relative coordinates.

    Args:
        points: Flat list [x1, y1, x2, y2, ...] in pixels
        width: Image width
        height: Image height

    Returns:
        Flat list of relative coordinates
    """
    return (_as_pairs(points) / np.array([width, height], dtype=np.float64)).flatten().tolist()


def points_to_absolute(points: list[float], width: float, height: float) -> list[float]:
    """Convert a flat relative point list to absolute pixel coordinates."""
    return (_as_pairs(points) * np.array([width, height], dtype=np.float64)).flatten().tolist()


def all_within(values: list[float], lo: float = 0.0, hi: float = 1.0) -> bool:
    """True if every value lies in [lo, hi]."""
    if not values:
        return True
    arr = np.asarray(values, dtype=np.float64)
    return bool(np.all((arr >= lo) & (arr <= hi)))


def check_points_within(points: list[float], width: float, height: float, message: str) -> None:
    """
    Validate absolute points against the image size.

    Raises:
        InvalidAnnotationFormatError: if any x is outside [0, width] or y outside [0, height]
    """
    arr = _as_pairs(points)
    xs, ys = arr[:, 0], arr[:, 1]
    if not (np.all((xs >= 0) & (xs <= width)) and np.all((ys >= 0) & (ys <= height))):
        raise InvalidAnnotationFormatError(message)


def format_decimal(value: float, digits: int) -> str:
    """
    Format a number with at most ``digits`` fractional digits.

    Rounds half-even, strips trailing zeros and the decimal point when nothing
    remains after it. Independent of the current locale.

    >>> format_decimal(0.25, 1)
    '0.2'
    >>> format_decimal(100.0, 2)
    '100'
    """
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_EVEN)
    if rounded == 0:
        return "0"
    text = format(rounded, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
