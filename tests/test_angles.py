"""Tests for heading normalisation, signed differences and cardinal labels."""

import math
import sys
from pathlib import Path

import pytest

# Ensure the src package is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from angles import CARDINALS_16, normalize, shortest_signed_diff, to_cardinal16


class TestNormalize:
    """normalize() maps any input into [0, 360)."""

    @pytest.mark.parametrize("value, expected", [
        (0, 0.0),
        (359.5, 359.5),
        (360, 0.0),
        (370, 10.0),
        (-10, 350.0),
        (-370, 350.0),
        (720.25, 0.25),
    ])
    def test_wraps_into_range(self, value, expected):
        assert normalize(value) == pytest.approx(expected)

    def test_tiny_negative_does_not_return_360(self):
        result = normalize(-1e-14)
        assert 0.0 <= result < 360.0

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf, None, "north"])
    def test_non_finite_and_garbage_become_zero(self, value):
        assert normalize(value) == 0.0

    def test_numeric_strings_are_accepted(self):
        assert normalize("405") == 45.0

    def test_idempotent(self):
        for value in [-725.5, -360.0, -0.25, 0.0, 12.75, 359.999, 360.0, 1234.5, 1e6 + 0.5]:
            once = normalize(value)
            assert normalize(once) == once


class TestShortestSignedDiff:
    """shortest_signed_diff() picks the shorter arc."""

    def test_crosses_north_clockwise(self):
        assert shortest_signed_diff(350, 10) == pytest.approx(20.0)

    def test_crosses_north_counter_clockwise(self):
        assert shortest_signed_diff(10, 350) == pytest.approx(-20.0)

    def test_zero_for_equal_headings(self):
        assert shortest_signed_diff(123.0, 123.0) == 0.0

    def test_opposite_headings_report_positive_180(self):
        assert shortest_signed_diff(0, 180) == 180.0
        assert shortest_signed_diff(180, 0) == 180.0

    def test_result_always_in_half_open_range(self):
        for a in range(0, 360, 17):
            for b in range(0, 360, 23):
                diff = shortest_signed_diff(a, b)
                assert -180.0 < diff <= 180.0

    def test_adding_diff_lands_on_target(self):
        """normalize(a + diff(a, b)) is b up to wrap-around."""
        samples = [-540.0, -90.5, 0.0, 0.1, 45.25, 179.9, 180.0, 270.0, 359.99, 725.0]
        for a in samples:
            for b in samples:
                landed = normalize(a + shortest_signed_diff(a, b))
                assert abs(shortest_signed_diff(landed, normalize(b))) < 1e-9


class TestCardinal16:
    """to_cardinal16() labels 22.5° sectors centred on the compass points."""

    @pytest.mark.parametrize("heading, label", [
        (0, "N"),
        (11.24, "N"),
        (11.25, "NNE"),
        (45, "NE"),
        (90, "E"),
        (225, "SW"),
        (348.74, "NNW"),
        (348.75, "N"),
        (359.9, "N"),
        (-90, "W"),
    ])
    def test_labels(self, heading, label):
        assert to_cardinal16(heading) == label

    def test_every_sector_centre_maps_to_its_label(self):
        for index, label in enumerate(CARDINALS_16):
            assert to_cardinal16(index * 22.5) == label
