"""
Health check routes for monitoring and service discovery.
Reports whether the pricing collaborators are usable and the row store is reachable.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlmodel import Session

from coatquote.api.deps import PricingSessionRegistry, get_template_registry, get_workbook_loader
from coatquote.core.config import settings
from coatquote.db.session import get_session
from coatquote.pricing.workbook_loader import WorkbookLoader

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(
    loader: Annotated[WorkbookLoader, Depends(get_workbook_loader)],
    templates: Annotated[PricingSessionRegistry, Depends(get_template_registry)],
) -> dict:
    """
    Basic health check endpoint.

    Returns:
        Service identity, whether the shared template is configured, which
        treatment sheets are loaded from it and how many workbooks are cached
    """
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "template_configured": bool(settings.PRICING_TEMPLATE_URL),
        "templates_loaded": templates.loaded_keys(),
        "cached_workbooks": len(loader),
    }


@router.get("/health/db")
def database_health_check(session: Session = Depends(get_session)) -> dict:
    """Verify the row store behind the pricing configuration answers a query."""
    try:
        session.connection().execute(text("SELECT 1"))
    except Exception as e:
        return {
            "status": "unhealthy",
            "database": "error",
            "error": str(e),
        }
    return {"status": "healthy", "database": "ok"}
