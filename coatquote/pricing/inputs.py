"""
Normalization of user-entered part dimensions and weight.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Union

from coatquote.core.exceptions import ValidationError

RawNumber = Union[int, float, str]

# Dutch labels shown to the user, keyed by field name
FIELD_LABELS = {
    "length": "Lengte",
    "width": "Breedte",
    "height": "Hoogte",
    "weight": "Gewicht",
}

_DOT_THOUSANDS_WITH_COMMA_DECIMAL = re.compile(r"^[+-]?\d{1,3}(\.\d{3})+,\d*$")


@dataclass(frozen=True)
class Dimensions:
    """Validated inputs: millimetres for sizes, kilograms for weight."""

    length: float
    width: float
    height: float
    weight: float

    def as_dict(self) -> dict[str, float]:
        return {
            "length": self.length,
            "width": self.width,
            "height": self.height,
            "weight": self.weight,
        }


def parse_number(raw: RawNumber) -> float:
    """
    Convert a number or a Dutch-formatted string to float.

    ``"1234,5"`` and ``"1.234,5"`` both become ``1234.5``. Returns NaN for
    text that cannot be read as a number.
    """
    if isinstance(raw, bool):
        return math.nan
    if isinstance(raw, (int, float)):
        return float(raw)

    text = str(raw).strip().replace(" ", "")
    if _DOT_THOUSANDS_WITH_COMMA_DECIMAL.match(text):
        text = text.replace(".", "")
    text = text.replace(",", ".")
    try:
        return float(text)
    except ValueError:
        return math.nan


def normalize(raw: RawNumber, field: str = "value") -> float:
    """
    Parse and validate a single positive input.

    Raises:
        ValidationError: If the value is not a finite number greater than zero
    """
    value = parse_number(raw)
    if not math.isfinite(value) or value <= 0:
        label = FIELD_LABELS.get(field, field)
        raise ValidationError(f"{label} moet een geldig positief getal zijn", field=field)
    return value


def normalize_dimensions(
    length: RawNumber,
    width: RawNumber,
    height: RawNumber,
    weight: RawNumber,
) -> Dimensions:
    """Validate all four inputs; the first invalid one is reported."""
    return Dimensions(
        length=normalize(length, "length"),
        width=normalize(width, "width"),
        height=normalize(height, "height"),
        weight=normalize(weight, "weight"),
    )
