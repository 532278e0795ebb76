"""
Row model for the per-owner pricing configuration.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class PricingConfigRecord(SQLModel, table=True):
    """
    Stored pricing configuration. One row per owner.

    Attributes:
        owner_id: Tenant/user the configuration belongs to
        storage_path: Object-storage path (or URL) of the workbook
        file_name: Original name of the uploaded workbook
        selected_sheet: Worksheet the cells refer to
        workbook_hash: SHA-256 of the stored workbook bytes
    """

    __tablename__ = "excel_pricing_config"  # type: ignore

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: str = Field(unique=True, index=True, max_length=255)
    storage_path: str
    file_name: str = Field(max_length=255)
    selected_sheet: str = Field(max_length=255)
    length_cell: str = Field(max_length=16)
    width_cell: str = Field(max_length=16)
    height_cell: str = Field(max_length=16)
    weight_cell: str = Field(max_length=16)
    price_cell: str = Field(max_length=16)
    workbook_hash: Optional[str] = Field(default=None, max_length=64)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
