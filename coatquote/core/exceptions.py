"""
Error taxonomy for the pricing engine.

Only ``LoadError`` and ``ConfigurationError`` end a calculation early.
``EvaluationFailure`` is raised inside the formula engine and converted to a
``None`` price plus a debug entry before it reaches callers.
"""

from typing import Optional


class PricingError(Exception):
    """Base class for all pricing engine errors."""


class LoadError(PricingError):
    """The workbook source is unreachable, unreadable or not a spreadsheet."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class ValidationError(PricingError):
    """A dimension or weight input is malformed or not positive."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConfigurationError(PricingError):
    """No active pricing config, a missing sheet, or a bad cell mapping."""


class EvaluationFailure(PricingError):
    """A formula could not be resolved to a finite number."""

    def __init__(self, message: str, formula: Optional[str] = None):
        super().__init__(message)
        self.formula = formula
