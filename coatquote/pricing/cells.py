"""
In-memory workbook model and typed cell access.

A cell is one of three immutable variants: ``NumericCell``, ``FormulaCell``
or ``OtherCell``. Worksheets are sparse maps from address to cell; a
calculation always works on ``Worksheet.copy()`` so the cached workbook is
never written to.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from coatquote.core.exceptions import ConfigurationError

CELL_ADDRESS_RE = re.compile(r"^[A-Z]+[0-9]+$")


@dataclass(frozen=True)
class NumericCell:
    value: float


@dataclass(frozen=True)
class FormulaCell:
    formula: str
    cached: Optional[float] = None


@dataclass(frozen=True)
class OtherCell:
    """Text, booleans, dates and anything else the engine does not compute with."""

    raw: Any = None


Cell = Union[NumericCell, FormulaCell, OtherCell]


@dataclass
class Worksheet:
    name: str
    cells: Dict[str, Cell] = field(default_factory=dict)

    def get(self, address: str) -> Optional[Cell]:
        return self.cells.get(address)

    def copy(self) -> "Worksheet":
        # Cells are frozen, so copying the mapping is enough for isolation
        return Worksheet(name=self.name, cells=dict(self.cells))

    def __contains__(self, address: object) -> bool:
        return address in self.cells


@dataclass(frozen=True)
class Workbook:
    sheet_names: List[str]
    sheets: Dict[str, Worksheet]
    content_hash: str

    def sheet(self, name: str) -> Optional[Worksheet]:
        return self.sheets.get(name)

    def has_sheet(self, name: str) -> bool:
        return name in self.sheets


def is_cell_address(text: str) -> bool:
    return bool(CELL_ADDRESS_RE.match(text))


def normalize_address(text: str) -> str:
    """Upper-case and validate a single cell address such as ``d67``."""
    address = (text or "").strip().upper()
    if not is_cell_address(address):
        raise ConfigurationError(
            f"Invalid cell reference: {text!r}. Use format like A1, B2, etc."
        )
    return address


def make_cell(value: Any, cached: Any = None) -> Cell:
    """
    Build a cell from raw openpyxl values.

    Args:
        value: Value read with formulas kept (``data_only=False``)
        cached: Value read from the last saved calculation (``data_only=True``)

    Returns:
        The matching cell variant
    """
    if isinstance(value, str) and value.startswith("="):
        return FormulaCell(formula=value, cached=_finite_or_none(cached))
    if isinstance(value, bool):
        return OtherCell(raw=value)
    if isinstance(value, (int, float)):
        number = _finite_or_none(value)
        if number is None:
            return OtherCell(raw=value)
        return NumericCell(value=number)
    return OtherCell(raw=value)


def get_numeric(sheet: Worksheet, address: str) -> Optional[float]:
    """
    Read a cell as a finite number.

    Returns None when the cell is absent, blank or not coercible.
    """
    cell = sheet.get(address)
    if cell is None:
        return None
    if isinstance(cell, NumericCell):
        return cell.value
    if isinstance(cell, FormulaCell):
        return cell.cached
    if isinstance(cell, OtherCell):
        return _coerce_text(cell.raw)
    raise TypeError(f"Unknown cell type: {type(cell).__name__}")


def set_numeric(sheet: Worksheet, address: str, value: float) -> None:
    """Overwrite (or create) ``address`` on this worksheet copy as a numeric cell."""
    sheet.cells[address] = NumericCell(value=float(value))


def _finite_or_none(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


def _coerce_text(raw: Any) -> Optional[float]:
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None
