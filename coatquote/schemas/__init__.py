"""Pydantic schemas for request/response validation."""

from coatquote.schemas.pricing import (
    CalculationDebugInfo,
    OutputCell,
    PriceRequest,
    PriceResult,
    PricingConfig,
    PricingConfigResponse,
    SheetListResponse,
)

__all__ = [
    "CalculationDebugInfo",
    "OutputCell",
    "PriceRequest",
    "PriceResult",
    "PricingConfig",
    "PricingConfigResponse",
    "SheetListResponse",
]
