"""
Tests for dimension and weight normalization.
"""

import math

import pytest

from coatquote.core.exceptions import ValidationError
from coatquote.pricing.inputs import Dimensions, normalize, normalize_dimensions, parse_number


@pytest.mark.parametrize("raw,expected", [
    (1500, 1500.0),
    (12.5, 12.5),
    ("1500", 1500.0),
    ("1234,5", 1234.5),
    ("1.234,5", 1234.5),
    ("1.234.567,25", 1234567.25),
    ("12.5", 12.5),
    (" 2 000 ", 2000.0),
])
def test_parse_number(raw, expected):
    assert parse_number(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "", "12,5,3", True])
def test_parse_number_unreadable_is_nan(raw):
    assert math.isnan(parse_number(raw))


@pytest.mark.parametrize("raw", [0, -5, "0", "-1,5", "abc", math.inf, math.nan])
def test_normalize_rejects_non_positive(raw):
    with pytest.raises(ValidationError) as exc_info:
        normalize(raw, "weight")
    assert str(exc_info.value) == "Gewicht moet een geldig positief getal zijn"
    assert exc_info.value.field == "weight"


def test_normalize_dimensions():
    dims = normalize_dimensions("1.200,5", 800, "600", 45.25)
    assert dims == Dimensions(length=1200.5, width=800.0, height=600.0, weight=45.25)
    assert list(dims.as_dict()) == ["length", "width", "height", "weight"]


def test_normalize_dimensions_reports_first_invalid_field():
    with pytest.raises(ValidationError, match="^Breedte moet"):
        normalize_dimensions(100, 0, -1, 10)
