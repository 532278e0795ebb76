"""
API dependencies for FastAPI dependency injection.
Provides owner resolution, API key checks and the shared pricing collaborators.
"""

import secrets
import threading
from functools import lru_cache
from typing import Annotated, Dict, List, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlmodel import Session

from coatquote.core.config import settings
from coatquote.core.logging import get_logger
from coatquote.db.session import get_session
from coatquote.pricing.session import PricingSession
from coatquote.pricing.workbook_loader import WorkbookLoader
from coatquote.services.file_storage_service import FileStorageService
from coatquote.services.pricing_config_service import PricingConfigService

logger = get_logger(__name__)


def get_api_key(
    x_api_key: Optional[str] = Header(None)
) -> Optional[str]:
    """
    Check the X-API-Key header against ``API_KEY``.

    Deployments behind a gateway that already authenticates callers leave
    ``API_KEY`` unset, and every request passes.

    Raises:
        HTTPException: 401 if a key is configured and the header is missing or wrong
    """
    expected_api_key = settings.API_KEY
    if not expected_api_key:
        return None

    if not x_api_key:
        logger.warning("Request without X-API-Key rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Please provide X-API-Key header"
        )

    if not secrets.compare_digest(x_api_key.encode(), expected_api_key.encode()):
        logger.warning("Request with invalid X-API-Key rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key"
        )

    return x_api_key


def get_owner_id(
    x_owner_id: Optional[str] = Header(None),
    api_key: Optional[str] = Depends(get_api_key),
) -> str:
    """
    Resolve the owner the request acts for.
    Tenant resolution happens upstream; the gateway forwards it in X-Owner-Id.
    """
    if not x_owner_id or not x_owner_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing X-Owner-Id header"
        )
    return x_owner_id.strip()


@lru_cache
def get_workbook_loader() -> WorkbookLoader:
    """Process-wide workbook loader (and parse cache)."""
    return WorkbookLoader()


@lru_cache
def get_file_storage() -> FileStorageService:
    return FileStorageService()


class PricingSessionRegistry:
    """Keeps one ``PricingSession`` per key for the lifetime of the process."""

    def __init__(self):
        self._sessions: Dict[str, PricingSession] = {}
        self._lock = threading.Lock()

    def session_for(self, key: str) -> PricingSession:
        with self._lock:
            pricing_session = self._sessions.get(key)
            if pricing_session is None:
                pricing_session = PricingSession()
                self._sessions[key] = pricing_session
            return pricing_session

    def loaded_keys(self) -> List[str]:
        """Keys whose session currently holds a template."""
        with self._lock:
            sessions = list(self._sessions.items())
        return sorted(key for key, pricing_session in sessions if pricing_session.template is not None)


@lru_cache
def get_session_registry() -> PricingSessionRegistry:
    """Owner sessions, keyed by owner id."""
    return PricingSessionRegistry()


@lru_cache
def get_template_registry() -> PricingSessionRegistry:
    """Shared-template sessions, keyed by treatment sheet; never reachable through an owner id."""
    return PricingSessionRegistry()


def get_config_service(
    session: Annotated[Session, Depends(get_session)],
    owner_id: Annotated[str, Depends(get_owner_id)],
    storage: Annotated[FileStorageService, Depends(get_file_storage)],
    loader: Annotated[WorkbookLoader, Depends(get_workbook_loader)],
) -> PricingConfigService:
    return PricingConfigService(session, owner_id, storage, loader)


def get_pricing_session(
    owner_id: Annotated[str, Depends(get_owner_id)],
    registry: Annotated[PricingSessionRegistry, Depends(get_session_registry)],
) -> PricingSession:
    return registry.session_for(owner_id)
