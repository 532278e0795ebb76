"""
Pricing schemas: the stored cell mapping, the calculation trace and the
request/response bodies of the pricing API.
"""
from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from coatquote.core.exceptions import ConfigurationError
from coatquote.pricing.cells import normalize_address

RawInput = Union[float, str]

CELL_FIELDS = ("length_cell", "width_cell", "height_cell", "weight_cell", "price_cell")


class PricingConfig(BaseModel):
    """
    Mapping from semantic roles to concrete cells of one worksheet.

    ``workbook_ref`` is either an object-storage path or an http(s) URL.
    """

    model_config = ConfigDict(frozen=True)

    workbook_ref: str
    file_name: str = ""
    sheet_name: str
    length_cell: str = "A1"
    width_cell: str = "A2"
    height_cell: str = "A3"
    weight_cell: str = "A4"
    price_cell: str = "A5"
    workbook_hash: Optional[str] = None

    @field_validator(*CELL_FIELDS, mode="before")
    @classmethod
    def validate_cell(cls, v: str) -> str:
        """Upper-case and check the A1-style address."""
        try:
            return normalize_address(v)
        except ConfigurationError as e:
            raise ValueError(str(e)) from e

    @field_validator("sheet_name")
    @classmethod
    def validate_sheet_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Please select a worksheet")
        return v

    def input_cells(self) -> Dict[str, str]:
        """Input field name -> cell address, in write order."""
        return {
            "length": self.length_cell,
            "width": self.width_cell,
            "height": self.height_cell,
            "weight": self.weight_cell,
        }


class OutputCell(BaseModel):
    ref: str = ""
    value: Optional[float] = None


class CalculationDebugInfo(BaseModel):
    """Per-call trace returned next to the price."""

    sheet_name: str = ""
    input_cells: Dict[str, float] = Field(default_factory=dict)
    output_cell: OutputCell = Field(default_factory=OutputCell)
    formula: Optional[str] = None
    resolved_cells: Dict[str, float] = Field(default_factory=dict)
    template_hash: Optional[str] = None
    errors: List[str] = Field(default_factory=list)


class PriceResult(BaseModel):
    price: Optional[float] = None
    debug_info: CalculationDebugInfo = Field(default_factory=CalculationDebugInfo)


class PriceRequest(BaseModel):
    """Dimensions in millimetres and weight in kilograms; any may be omitted."""

    length: Optional[RawInput] = None
    width: Optional[RawInput] = None
    height: Optional[RawInput] = None
    weight: Optional[RawInput] = None


class PricingConfigResponse(BaseModel):
    """Stored configuration as exposed over the API."""

    file_name: str
    selected_sheet: str
    length_cell: str
    width_cell: str
    height_cell: str
    weight_cell: str
    price_cell: str
    workbook_hash: Optional[str] = None
    updated_at: Optional[datetime] = None


class SheetListResponse(BaseModel):
    file_name: str
    sheets: List[str]
    selected_sheet: str
