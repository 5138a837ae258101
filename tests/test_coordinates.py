"""
Tests for coordinate conversion and decimal formatting.
"""

import pytest

from annotation_io.coordinates import (
    almost_equal,
    all_within,
    check_points_within,
    format_decimal,
    is_within,
    points_to_absolute,
    points_to_relative,
    to_absolute,
    to_relative,
)
from annotation_io.errors import InvalidAnnotationFormatError


class TestConversion:
    """Tests for absolute/relative conversion."""

    def test_point(self):
        assert to_relative(50, 25, 100, 50) == (0.5, 0.5)
        assert to_absolute(0.5, 0.5, 100, 50) == (50, 25)

    def test_point_list(self):
        relative = points_to_relative([10, 20, 100, 200], 100, 200)

        assert relative == pytest.approx([0.1, 0.1, 1.0, 1.0])
        assert points_to_absolute(relative, 100, 200) == pytest.approx([10, 20, 100, 200])

    def test_odd_point_list(self):
        with pytest.raises(ValueError):
            points_to_relative([1, 2, 3], 10, 10)

    def test_check_points_within(self):
        check_points_within([0, 0, 100, 50], 100, 50, "out")

        with pytest.raises(InvalidAnnotationFormatError, match="out"):
            check_points_within([0, 0, 101, 50], 100, 50, "out")

    def test_ranges(self):
        assert is_within(0.0, 0.0, 1.0)
        assert is_within(1.0, 0.0, 1.0)
        assert not is_within(1.01, 0.0, 1.0)
        assert all_within([])
        assert not all_within([0.5, -0.1])

    def test_almost_equal(self):
        assert almost_equal(0.1, 0.1 + 1e-8)
        assert not almost_equal(0.1, 0.1001)


class TestFormatDecimal:
    """Tests for format_decimal."""

    @pytest.mark.parametrize("value,digits,expected", [
        (10.0, 2, "10"),
        (10.5, 2, "10.5"),
        (10.126, 2, "10.13"),
        (0.125, 2, "0.12"),
        (0.135, 2, "0.14"),
        (0.1234567, 6, "0.123457"),
        (0.5, 6, "0.5"),
        (0.0, 6, "0"),
        (-0.0000001, 6, "0"),
        (1e-7, 6, "0"),
        (123.0, 0, "123"),
    ])
    def test_values(self, value, digits, expected):
        assert format_decimal(value, digits) == expected

    def test_parses_back(self):
        assert float(format_decimal(0.333333333, 6)) == pytest.approx(0.333333, abs=1e-9)
