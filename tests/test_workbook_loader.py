"""
Tests for workbook parsing, caching and download retries.
"""

from unittest.mock import MagicMock

import pytest
import requests

from coatquote.core.exceptions import LoadError
from coatquote.pricing.cells import FormulaCell, NumericCell, OtherCell
from coatquote.pricing.workbook_loader import WorkbookLoader, content_hash, parse_workbook

TEMPLATE_URL = "https://templates.example.com/prijzen.xlsx"


def make_response(status_code: int, content: bytes = b"", reason: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.reason = reason
    response.content = content
    return response


def make_loader(*responses, retries: int = 1) -> WorkbookLoader:
    http = MagicMock()
    http.get.side_effect = list(responses)
    return WorkbookLoader(timeout=2.0, retries=retries, http=http)


class TestParseWorkbook:
    def test_cells_and_sheet_order(self, workbook_bytes):
        data = workbook_bytes({
            "Verzinken": {"A1": 10, "A2": "=A1*2", "A3": "tekst"},
            "Sublimotion": {"B2": 1.5},
        })
        workbook = parse_workbook(data)

        assert workbook.sheet_names == ["Verzinken", "Sublimotion"]
        assert workbook.content_hash == content_hash(data)

        sheet = workbook.sheet("Verzinken")
        assert sheet.get("A1") == NumericCell(10.0)
        # Files written by openpyxl carry no cached results
        assert sheet.get("A2") == FormulaCell("=A1*2", cached=None)
        assert sheet.get("A3") == OtherCell("tekst")
        assert sheet.get("A4") is None
        assert workbook.sheet("Sublimotion").get("B2") == NumericCell(1.5)

    @pytest.mark.parametrize("data", [b"", b"not a spreadsheet", b"PK\x03\x04garbage"])
    def test_unreadable_bytes(self, data):
        with pytest.raises(LoadError):
            parse_workbook(data)


class TestCache:
    def test_load_bytes_is_cached_by_content(self, loader, workbook_bytes):
        data = workbook_bytes({"Blad1": {"A1": 1}})
        first = loader.load_bytes(data)
        assert loader.load_bytes(bytes(data)) is first

        loader.clear_cache()
        assert loader.load_bytes(data) is not first

    def test_load_file(self, loader, workbook_bytes, tmp_path):
        path = tmp_path / "prijzen.xlsx"
        path.write_bytes(workbook_bytes({"Blad1": {"A1": 1}}))
        assert loader.load(path).sheet_names == ["Blad1"]
        assert loader.load(str(path)).sheet_names == ["Blad1"]

    def test_missing_file(self, loader, tmp_path):
        with pytest.raises(LoadError, match="Cannot read workbook file"):
            loader.load_file(tmp_path / "ontbreekt.xlsx")

    def test_load_url_is_cached_by_url(self, workbook_bytes):
        data = workbook_bytes({"Blad1": {"A1": 1}})
        loader = make_loader(make_response(200, data))

        first = loader.load(TEMPLATE_URL)
        assert loader.load_url(TEMPLATE_URL) is first
        assert loader.http.get.call_count == 1
        loader.http.get.assert_called_with(TEMPLATE_URL, timeout=2.0)

    def test_evict_drops_one_entry(self, loader, workbook_bytes):
        first = workbook_bytes({"Blad1": {"A1": 1}})
        second = workbook_bytes({"Blad1": {"A1": 2}})
        loader.load_bytes(first)
        loader.load_bytes(second)

        assert loader.evict(content_hash(first)) is True
        assert content_hash(first) not in loader
        assert content_hash(second) in loader
        assert len(loader) == 1
        assert loader.evict(content_hash(first)) is False


class TestDownload:
    def test_retries_once_after_connection_error(self, workbook_bytes):
        data = workbook_bytes({"Blad1": {"A1": 1}})
        loader = make_loader(requests.ConnectionError("reset"), make_response(200, data))

        assert loader.load_url(TEMPLATE_URL).sheet_names == ["Blad1"]
        assert loader.http.get.call_count == 2

    def test_retries_after_server_error(self, workbook_bytes):
        data = workbook_bytes({"Blad1": {"A1": 1}})
        loader = make_loader(make_response(503), make_response(200, data))

        assert loader.load_url(TEMPLATE_URL).sheet_names == ["Blad1"]

    def test_gives_up_after_retries(self):
        loader = make_loader(requests.Timeout("slow"), requests.Timeout("slow"))

        with pytest.raises(LoadError, match="Failed to download template") as exc_info:
            loader.load_url(TEMPLATE_URL)
        assert exc_info.value.source == TEMPLATE_URL
        assert loader.http.get.call_count == 2

    def test_client_error_is_not_retried(self):
        loader = make_loader(make_response(404, reason="Not Found"))

        with pytest.raises(LoadError, match="HTTP 404 Not Found"):
            loader.load_url(TEMPLATE_URL)
        assert loader.http.get.call_count == 1

    def test_zero_retries(self):
        loader = make_loader(requests.ConnectionError("down"), retries=0)

        with pytest.raises(LoadError):
            loader.load_url(TEMPLATE_URL)
        assert loader.http.get.call_count == 1

    def test_downloaded_garbage_is_a_load_error(self):
        loader = make_loader(make_response(200, b"<html>login</html>"))

        with pytest.raises(LoadError, match="Not a readable Excel workbook"):
            loader.load_url(TEMPLATE_URL)
