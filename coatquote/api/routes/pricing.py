"""
Pricing routes: template configuration and live price calculation.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status
from pydantic import ValidationError as PydanticValidationError

from coatquote.api.deps import (
    get_api_key,
    get_config_service,
    get_pricing_session,
    get_template_registry,
    get_workbook_loader,
    PricingSessionRegistry,
)
from coatquote.core.exceptions import ConfigurationError, LoadError
from coatquote.core.logging import get_logger
from coatquote.models.pricing_config import PricingConfigRecord
from coatquote.pricing.presets import CoatingSheet, TemplatePresetSource
from coatquote.pricing.session import PricingSession
from coatquote.pricing.workbook_loader import WorkbookLoader
from coatquote.schemas.pricing import (
    PriceRequest,
    PriceResult,
    PricingConfig,
    PricingConfigResponse,
    SheetListResponse,
)
from coatquote.services.pricing_config_service import PricingConfigService

logger = get_logger(__name__)

router = APIRouter(prefix="/pricing", tags=["pricing"])

ALLOWED_EXTENSIONS = (".xlsx", ".xlsm")


def _config_response(record: PricingConfigRecord) -> PricingConfigResponse:
    return PricingConfigResponse(
        file_name=record.file_name,
        selected_sheet=record.selected_sheet,
        length_cell=record.length_cell,
        width_cell=record.width_cell,
        height_cell=record.height_cell,
        weight_cell=record.weight_cell,
        price_cell=record.price_cell,
        workbook_hash=record.workbook_hash,
        updated_at=record.updated_at,
    )


@router.get("/config", response_model=PricingConfigResponse)
def get_config(
    service: Annotated[PricingConfigService, Depends(get_config_service)],
):
    """
    Get the active pricing configuration of the owner.

    Raises:
        HTTPException: 404 if nothing is configured
    """
    record = service.get_record()
    if record is None:
        raise HTTPException(status_code=404, detail="Pricing is not configured")
    return _config_response(record)


@router.put("/config", response_model=PricingConfigResponse)
def save_config(
    service: Annotated[PricingConfigService, Depends(get_config_service)],
    pricing_session: Annotated[PricingSession, Depends(get_pricing_session)],
    selected_sheet: str = Form(...),
    length_cell: str = Form("A1"),
    width_cell: str = Form("A2"),
    height_cell: str = Form("A3"),
    weight_cell: str = Form("A4"),
    price_cell: str = Form("A5"),
    workbook_url: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
):
    """
    Save the cell mapping, optionally together with a new workbook.

    Without a file the previously uploaded workbook is kept.
    """
    file_bytes = None
    file_name = None
    if file is not None and file.filename:
        if not file.filename.lower().endswith(ALLOWED_EXTENSIONS):
            raise HTTPException(
                status_code=400,
                detail="Please upload a valid Excel file (.xlsx or .xlsm)"
            )
        file_bytes = file.file.read()
        file_name = file.filename

    try:
        config = PricingConfig(
            workbook_ref=workbook_url or "",
            file_name=file_name or "",
            sheet_name=selected_sheet,
            length_cell=length_cell,
            width_cell=width_cell,
            height_cell=height_cell,
            weight_cell=weight_cell,
            price_cell=price_cell,
        )
    except PydanticValidationError as e:
        raise HTTPException(status_code=422, detail=[err["msg"] for err in e.errors()])

    try:
        service.set(config, file_bytes=file_bytes, file_name=file_name)
    except LoadError as e:
        logger.warning(f"Rejected pricing workbook for owner {service.owner_id}: {e}")
        raise HTTPException(
            status_code=422,
            detail=f"Failed to read Excel file. Please ensure it's a valid Excel document. ({e})"
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    pricing_session.invalidate()
    return _config_response(service.get_record())


@router.delete("/config", status_code=status.HTTP_204_NO_CONTENT)
def clear_config(
    service: Annotated[PricingConfigService, Depends(get_config_service)],
    pricing_session: Annotated[PricingSession, Depends(get_pricing_session)],
):
    """Remove the configuration and its stored workbook."""
    service.clear()
    pricing_session.invalidate()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/sheets", response_model=SheetListResponse)
def list_sheets(
    service: Annotated[PricingConfigService, Depends(get_config_service)],
):
    """List the worksheets of the active workbook."""
    config = service.get()
    if config is None:
        raise HTTPException(status_code=404, detail="Pricing is not configured")
    try:
        workbook = service.load_workbook(config)
    except LoadError as e:
        raise HTTPException(status_code=502, detail=f"Cannot load pricing template: {e}")
    return SheetListResponse(
        file_name=config.file_name,
        sheets=workbook.sheet_names,
        selected_sheet=config.sheet_name,
    )


@router.post("/calculate", response_model=PriceResult)
def calculate_price(
    request: PriceRequest,
    service: Annotated[PricingConfigService, Depends(get_config_service)],
    pricing_session: Annotated[PricingSession, Depends(get_pricing_session)],
):
    """
    Calculate a price from the configured workbook.

    Always answers 200; a null price comes with the reasons in debug_info.errors.
    """
    return pricing_session.calculate_price(
        request.length,
        request.width,
        request.height,
        request.weight,
        source=service,
    )


@router.post("/template/{sheet}/calculate", response_model=PriceResult)
def calculate_template_price(
    sheet: CoatingSheet,
    request: PriceRequest,
    api_key: Annotated[Optional[str], Depends(get_api_key)],
    loader: Annotated[WorkbookLoader, Depends(get_workbook_loader)],
    registry: Annotated[PricingSessionRegistry, Depends(get_template_registry)],
):
    """Calculate a price on one treatment sheet of the shared template."""
    try:
        source = TemplatePresetSource(sheet, loader)
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))

    pricing_session = registry.session_for(sheet.value)
    return pricing_session.calculate_price(
        request.length,
        request.width,
        request.height,
        request.weight,
        source=source,
    )
