"""
Pytest configuration and fixtures.
Provides a test database, an isolated object store, workbook builders and
an API client with dependency overrides.
"""

import os
from io import BytesIO
from typing import Any, Callable, Dict, Generator

# Keep the application engine off the developer's database file
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook as OpenpyxlWorkbook
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from coatquote.api.deps import (
    PricingSessionRegistry,
    get_file_storage,
    get_session_registry,
    get_template_registry,
    get_workbook_loader,
)
from coatquote.db.session import get_session
from coatquote.main import app
from coatquote.models.pricing_config import PricingConfigRecord  # noqa: F401
from coatquote.pricing.workbook_loader import WorkbookLoader
from coatquote.services.file_storage_service import FileStorageService

SheetCells = Dict[str, Dict[str, Any]]
WorkbookFactory = Callable[[SheetCells], bytes]

OWNER_HEADERS = {"X-Owner-Id": "owner-1"}


def build_workbook(sheets: SheetCells) -> bytes:
    """Write ``{sheet: {address: value}}`` into an in-memory .xlsx file."""
    wb = OpenpyxlWorkbook()
    first = True
    for name, cells in sheets.items():
        if first:
            ws = wb.active
            ws.title = name
            first = False
        else:
            ws = wb.create_sheet(name)
        for address, value in cells.items():
            ws[address] = value
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


# Dimensions in D67:D69, weight in D74, price formula in L17
PRICE_SHEET = {
    "D67": 0,
    "D68": 0,
    "D69": 0,
    "D74": 0,
    "C1": "Prijsberekening",
    "D80": 1.85,
    "L16": "=D67*D68*D69/1000000000",
    "L17": "=ROUND(MAX(D74*D80, 25) + IF(L16>0.5, 40, 0), 2)",
}


@pytest.fixture(name="owner_headers")
def owner_headers_fixture() -> Dict[str, str]:
    return dict(OWNER_HEADERS)


@pytest.fixture(name="workbook_bytes")
def workbook_bytes_fixture() -> WorkbookFactory:
    """Factory building workbook bytes from ``{sheet: {address: value}}``."""
    return build_workbook


@pytest.fixture(name="price_workbook")
def price_workbook_fixture() -> bytes:
    """A two-sheet pricing workbook shaped like the shared coating template."""
    return build_workbook({"Verzinken": PRICE_SHEET, "Notities": {"A1": "vrije tekst"}})


@pytest.fixture(name="loader")
def loader_fixture() -> WorkbookLoader:
    return WorkbookLoader(timeout=1.0, retries=1)


@pytest.fixture(name="storage")
def storage_fixture(tmp_path) -> FileStorageService:
    return FileStorageService(base_path=str(tmp_path / "storage"))


@pytest.fixture(name="session")
def session_fixture() -> Generator[Session, None, None]:
    """
    Create a test database session.
    Uses an in-memory SQLite database for fast tests.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(
    session: Session,
    storage: FileStorageService,
    loader: WorkbookLoader,
) -> Generator[TestClient, None, None]:
    """
    Create a test client with dependency overrides.
    """
    registry = PricingSessionRegistry()
    template_registry = PricingSessionRegistry()

    def get_session_override() -> Generator[Session, None, None]:
        yield session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_file_storage] = lambda: storage
    app.dependency_overrides[get_workbook_loader] = lambda: loader
    app.dependency_overrides[get_session_registry] = lambda: registry
    app.dependency_overrides[get_template_registry] = lambda: template_registry

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
