"""
Tests for the pricing configuration store.
"""

from unittest.mock import MagicMock

import pytest
from sqlmodel import Session

from coatquote.core.exceptions import ConfigurationError, LoadError
from coatquote.pricing.workbook_loader import WorkbookLoader, content_hash
from coatquote.schemas.pricing import PricingConfig
from coatquote.services.file_storage_service import FileStorageService
from coatquote.services.pricing_config_service import PricingConfigService

TEMPLATE_URL = "https://templates.example.com/prijzen.xlsx"


def mapping(sheet_name: str = "Verzinken", workbook_ref: str = "") -> PricingConfig:
    return PricingConfig(
        workbook_ref=workbook_ref,
        sheet_name=sheet_name,
        length_cell="d67",
        width_cell="D68",
        height_cell="D69",
        weight_cell="D74",
        price_cell="L17",
    )


@pytest.fixture(name="service")
def service_fixture(session: Session, storage: FileStorageService, loader: WorkbookLoader) -> PricingConfigService:
    return PricingConfigService(session, "owner-1", storage, loader)


class TestSet:
    def test_upload_creates_record_and_blob(self, service, storage, price_workbook):
        config = service.set(mapping(), file_bytes=price_workbook, file_name="prijzen.xlsx")

        assert config.sheet_name == "Verzinken"
        assert config.length_cell == "D67"
        assert config.file_name == "prijzen.xlsx"
        assert config.workbook_hash == content_hash(price_workbook)
        assert config.workbook_ref.startswith("pricing/owner-1/")
        assert storage.read(config.workbook_ref) == price_workbook
        assert service.is_configured()
        assert service.get() == config

    def test_update_without_file_keeps_workbook(self, service, price_workbook):
        first = service.set(mapping(), file_bytes=price_workbook, file_name="prijzen.xlsx")
        updated = service.set(mapping("Notities"))

        assert updated.workbook_ref == first.workbook_ref
        assert updated.file_name == "prijzen.xlsx"
        assert updated.sheet_name == "Notities"

    def test_reupload_replaces_blob(self, service, storage, price_workbook, workbook_bytes):
        first = service.set(mapping(), file_bytes=price_workbook, file_name="prijzen.xlsx")
        other = workbook_bytes({"Verzinken": {"L17": 99}})
        second = service.set(mapping(), file_bytes=other, file_name="prijzen-2025.xlsx")

        assert second.workbook_ref != first.workbook_ref
        assert not storage.exists(first.workbook_ref)
        assert storage.read(second.workbook_ref) == other
        assert second.workbook_hash == content_hash(other)

    def test_reupload_evicts_previous_workbook_from_cache(self, service, loader, price_workbook, workbook_bytes):
        service.set(mapping(), file_bytes=price_workbook, file_name="prijzen.xlsx")
        assert content_hash(price_workbook) in loader

        other = workbook_bytes({"Verzinken": {"L17": 99}})
        service.set(mapping(), file_bytes=other, file_name="prijzen-2025.xlsx")

        assert content_hash(price_workbook) not in loader
        assert content_hash(other) in loader

    def test_reupload_of_same_bytes_keeps_cache_entry(self, service, loader, price_workbook):
        service.set(mapping(), file_bytes=price_workbook, file_name="prijzen.xlsx")
        service.set(mapping(), file_bytes=price_workbook, file_name="prijzen-kopie.xlsx")

        assert content_hash(price_workbook) in loader

    def test_unknown_sheet_is_rejected(self, service, storage, price_workbook):
        with pytest.raises(ConfigurationError, match='Sheet "Sublimotion" not found'):
            service.set(mapping("Sublimotion"), file_bytes=price_workbook, file_name="prijzen.xlsx")

        assert service.get() is None
        assert list(storage.pricing_path.rglob("*.xlsx")) == []

    def test_rejected_upload_is_not_left_in_cache(self, service, loader, price_workbook):
        with pytest.raises(ConfigurationError):
            service.set(mapping("Sublimotion"), file_bytes=price_workbook, file_name="prijzen.xlsx")

        assert content_hash(price_workbook) not in loader

    def test_unreadable_upload(self, service):
        with pytest.raises(LoadError):
            service.set(mapping(), file_bytes=b"no excel", file_name="prijzen.xlsx")
        assert service.get() is None

    def test_no_workbook_at_all(self, service):
        with pytest.raises(ConfigurationError, match="Upload an Excel workbook"):
            service.set(mapping())

    def test_remote_workbook(self, session, storage, price_workbook):
        response = MagicMock(status_code=200, ok=True, content=price_workbook)
        http = MagicMock()
        http.get.return_value = response
        service = PricingConfigService(session, "owner-1", storage, WorkbookLoader(http=http))

        config = service.set(mapping(workbook_ref=TEMPLATE_URL))

        assert config.workbook_ref == TEMPLATE_URL
        assert config.file_name == "prijzen.xlsx"
        assert service.load_workbook(config).sheet_names == ["Verzinken", "Notities"]
        assert http.get.call_count == 1

    def test_owners_are_isolated(self, session, storage, loader, service, price_workbook):
        service.set(mapping(), file_bytes=price_workbook, file_name="prijzen.xlsx")
        other = PricingConfigService(session, "owner-2", storage, loader)

        assert other.get() is None


class TestClear:
    def test_clear_removes_record_and_blob(self, service, storage, price_workbook):
        config = service.set(mapping(), file_bytes=price_workbook, file_name="prijzen.xlsx")
        service.clear()

        assert service.get() is None
        assert not storage.exists(config.workbook_ref)

    def test_clear_evicts_workbook_from_cache(self, service, loader, price_workbook):
        service.set(mapping(), file_bytes=price_workbook, file_name="prijzen.xlsx")
        service.clear()

        assert content_hash(price_workbook) not in loader
        assert len(loader) == 0

    def test_clear_without_config(self, service):
        service.clear()
        assert service.get() is None


class TestLoadWorkbook:
    def test_roundtrip_from_storage(self, service, price_workbook):
        config = service.set(mapping(), file_bytes=price_workbook, file_name="prijzen.xlsx")
        service.loader.clear_cache()

        workbook = service.load_workbook(config)
        assert workbook.content_hash == config.workbook_hash
        assert workbook.has_sheet("Verzinken")

    def test_missing_blob(self, service, storage, price_workbook):
        config = service.set(mapping(), file_bytes=price_workbook, file_name="prijzen.xlsx")
        storage.delete(config.workbook_ref)

        with pytest.raises(LoadError, match="is unavailable"):
            service.load_workbook(config)

    def test_path_outside_storage(self, service):
        config = PricingConfig(workbook_ref="../../etc/passwd", sheet_name="Verzinken")
        with pytest.raises(LoadError):
            service.load_workbook(config)
