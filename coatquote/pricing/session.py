"""
Pricing orchestration.

A ``PricingSession`` owns the single mutable slot holding the active
config/workbook pair. Calculations read one snapshot of that slot, clone the
configured worksheet and never write to the cached workbook, so concurrent
calls with different inputs cannot see each other's writes.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import List, Optional, Protocol

from coatquote.core.exceptions import EvaluationFailure, LoadError, ValidationError
from coatquote.core.logging import get_logger
from coatquote.pricing.cells import FormulaCell, Workbook, Worksheet, get_numeric, set_numeric
from coatquote.pricing.formula import evaluate_formula, round_half_away
from coatquote.pricing.inputs import FIELD_LABELS, RawNumber, normalize_dimensions
from coatquote.schemas.pricing import CalculationDebugInfo, OutputCell, PriceResult, PricingConfig

logger = get_logger(__name__)

NOT_LOADED = "Excel configuration not loaded"


class ConfigSource(Protocol):
    """Anything that can supply the active config and its workbook."""

    def get(self) -> Optional[PricingConfig]:
        ...

    def load_workbook(self, config: PricingConfig) -> Workbook:
        ...


@dataclass(frozen=True)
class LoadedTemplate:
    config: PricingConfig
    workbook: Workbook


class PricingSession:
    """
    Explicit context for price calculations of one owner.

    Args:
        source: Default config source used when nothing is loaded yet
    """

    def __init__(self, source: Optional[ConfigSource] = None):
        self.source = source
        self._template: Optional[LoadedTemplate] = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def template(self) -> Optional[LoadedTemplate]:
        return self._template

    def replace(self, config: PricingConfig, workbook: Workbook) -> None:
        """Swap in a new active template."""
        with self._lock:
            self._template = LoadedTemplate(config=config, workbook=workbook)
            self._generation += 1
        logger.info(f"Pricing template replaced: sheet={config.sheet_name} hash={workbook.content_hash[:8]}")

    def invalidate(self) -> None:
        """Drop the active template; the next calculation reloads it."""
        with self._lock:
            self._template = None
            self._generation += 1

    def load(self, source: Optional[ConfigSource] = None) -> Optional[LoadedTemplate]:
        """
        Return the active template, loading it from ``source`` if needed.

        Raises:
            LoadError: If the configured workbook cannot be loaded
        """
        template = self._template
        if template is not None:
            return template

        source = source or self.source
        if source is None:
            return None

        with self._lock:
            generation = self._generation

        config = source.get()
        if config is None:
            return None
        workbook = source.load_workbook(config)
        template = LoadedTemplate(config=config, workbook=workbook)

        with self._lock:
            # An invalidate() or replace() during the load wins over this result
            if self._generation == generation and self._template is None:
                self._template = template
        return template

    def calculate_price(
        self,
        length: Optional[RawNumber],
        width: Optional[RawNumber],
        height: Optional[RawNumber],
        weight: Optional[RawNumber],
        source: Optional[ConfigSource] = None,
    ) -> PriceResult:
        """
        Compute the price for one part.

        Never raises for calculation problems: the price is None and the
        reason is appended to ``debug_info.errors``.
        """
        debug = CalculationDebugInfo()

        try:
            template = self.load(source)
        except LoadError as e:
            message = f"Cannot load pricing template: {e}"
            logger.error(message)
            debug.errors.append(message)
            return PriceResult(price=None, debug_info=debug)

        if template is None:
            logger.warning(NOT_LOADED)
            debug.errors.append(NOT_LOADED)
            return PriceResult(price=None, debug_info=debug)

        config, workbook = template.config, template.workbook
        debug.sheet_name = config.sheet_name
        debug.template_hash = workbook.content_hash
        debug.output_cell = OutputCell(ref=config.price_cell)

        raw_inputs = {"length": length, "width": width, "height": height, "weight": weight}
        missing = [FIELD_LABELS[name] for name, value in raw_inputs.items() if value is None]
        if missing:
            debug.errors.append(f"Missing inputs: {', '.join(missing)}")
            return PriceResult(price=None, debug_info=debug)

        try:
            dimensions = normalize_dimensions(length, width, height, weight)  # type: ignore[arg-type]
        except ValidationError as e:
            debug.errors.append(str(e))
            return PriceResult(price=None, debug_info=debug)

        sheet = workbook.sheet(config.sheet_name)
        if sheet is None:
            debug.errors.append(f'Sheet "{config.sheet_name}" not found in workbook')
            return PriceResult(price=None, debug_info=debug)

        work = sheet.copy()
        values = dimensions.as_dict()
        for name, address in config.input_cells().items():
            set_numeric(work, address, values[name])
            debug.input_cells[address] = values[name]

        raw_price = self._read_output(work, config.price_cell, debug)
        price = self._finalize(raw_price, debug.errors)
        debug.output_cell.value = price

        logger.info(
            f"Price calculation on {config.sheet_name}!{config.price_cell}: "
            f"inputs={debug.input_cells} price={price}"
        )
        return PriceResult(price=price, debug_info=debug)

    @staticmethod
    def _read_output(work: Worksheet, address: str, debug: CalculationDebugInfo) -> Optional[float]:
        cell = work.get(address)
        if isinstance(cell, FormulaCell):
            debug.formula = cell.formula
            return evaluate_formula(
                cell.formula, work, errors=debug.errors, references=debug.resolved_cells
            )

        value = get_numeric(work, address)
        if value is None:
            debug.errors.append(f"No formula or numeric value found in price cell {address}")
        return value

    @staticmethod
    def _finalize(value: Optional[float], errors: List[str]) -> Optional[float]:
        """Round to cents and reject negative prices."""
        if value is None:
            return None
        try:
            rounded = round_half_away(value, 2) + 0.0
        except EvaluationFailure as e:
            errors.append(str(e))
            return None
        if rounded < 0:
            errors.append(f"Calculated price {rounded} is negative")
            return None
        return rounded
