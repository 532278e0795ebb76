"""
Workbook loading with a process-wide parse cache.

Workbooks are parsed with openpyxl and cached by URL (remote templates) or by
the SHA-256 of their bytes (uploads). Entries are dropped with ``evict()``
when a stored upload is replaced, or all at once with ``clear_cache()``.
"""

from __future__ import annotations

import hashlib
import threading
import zipfile
from io import BytesIO
from pathlib import Path
from typing import Dict, Optional, Union

import requests
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from coatquote.core.config import settings
from coatquote.core.exceptions import LoadError
from coatquote.core.logging import get_logger
from coatquote.pricing.cells import Workbook, Worksheet, make_cell

logger = get_logger(__name__)

WorkbookSource = Union[str, bytes, Path]


def content_hash(data: bytes) -> str:
    """Return the SHA-256 hex digest that identifies a workbook version."""
    return hashlib.sha256(data).hexdigest()


def parse_workbook(data: bytes) -> Workbook:
    """
    Parse raw .xlsx/.xlsm bytes into the in-memory model.

    The file is read twice: once keeping formulas and once for the values
    Excel cached on the last save.

    Raises:
        LoadError: If the bytes are not a readable spreadsheet container
    """
    try:
        formulas_wb = load_workbook(BytesIO(data), data_only=False)
        values_wb = load_workbook(BytesIO(data), data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise LoadError(f"Not a readable Excel workbook: {e}") from e

    try:
        sheets: Dict[str, Worksheet] = {}
        for ws in formulas_wb.worksheets:
            cached_ws = values_wb[ws.title]
            cells = {}
            for row in ws.iter_rows():
                for cell in row:
                    if cell.value is None:
                        continue
                    cells[cell.coordinate] = make_cell(
                        cell.value, cached_ws[cell.coordinate].value
                    )
            sheets[ws.title] = Worksheet(name=ws.title, cells=cells)
        sheet_names = [ws.title for ws in formulas_wb.worksheets]
    finally:
        formulas_wb.close()
        values_wb.close()

    return Workbook(sheet_names=sheet_names, sheets=sheets, content_hash=content_hash(data))


class WorkbookLoader:
    """
    Loads workbooks from URLs, bytes or local files and caches the parse.

    The cache has no size limit; callers evict entries they know are stale.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        http: Optional[requests.Session] = None,
    ):
        self.timeout = settings.WORKBOOK_FETCH_TIMEOUT if timeout is None else timeout
        self.retries = settings.WORKBOOK_FETCH_RETRIES if retries is None else retries
        self.http = http or requests.Session()
        self._cache: Dict[str, Workbook] = {}
        self._lock = threading.Lock()

    def load(self, source: WorkbookSource) -> Workbook:
        """Dispatch on the kind of source."""
        if isinstance(source, bytes):
            return self.load_bytes(source)
        if isinstance(source, str) and source.lower().startswith(("http://", "https://")):
            return self.load_url(source)
        return self.load_file(Path(source))

    def load_url(self, url: str) -> Workbook:
        cached = self._cached(url)
        if cached is not None:
            return cached

        data = self._download(url)
        workbook = self.load_bytes(data)
        with self._lock:
            self._cache[url] = workbook
        return workbook

    def load_bytes(self, data: bytes) -> Workbook:
        key = content_hash(data)
        cached = self._cached(key)
        if cached is not None:
            return cached

        workbook = parse_workbook(data)
        logger.info(
            f"Parsed workbook {key[:8]} with sheets {workbook.sheet_names}"
        )
        with self._lock:
            self._cache[key] = workbook
        return workbook

    def load_file(self, path: Path) -> Workbook:
        try:
            data = path.read_bytes()
        except OSError as e:
            raise LoadError(f"Cannot read workbook file {path}: {e}", source=str(path)) from e
        return self.load_bytes(data)

    def evict(self, key: str) -> bool:
        """
        Drop one parsed workbook from the cache.

        Args:
            key: The URL or content hash the workbook was cached under

        Returns:
            True if an entry was removed
        """
        with self._lock:
            removed = self._cache.pop(key, None) is not None
        if removed:
            logger.info(f"Evicted workbook {key[:8]} from cache")
        return removed

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
        logger.info("Workbook cache cleared")

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._cache

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def _cached(self, key: str) -> Optional[Workbook]:
        with self._lock:
            return self._cache.get(key)

    def _download(self, url: str) -> bytes:
        attempts = self.retries + 1
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                response = self.http.get(url, timeout=self.timeout)
            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = e
                logger.warning(f"Workbook download attempt {attempt}/{attempts} failed: {e}")
                continue

            if response.status_code >= 500:
                last_error = LoadError(f"Server error {response.status_code}", source=url)
                logger.warning(
                    f"Workbook download attempt {attempt}/{attempts} got HTTP {response.status_code}"
                )
                continue
            if not response.ok:
                raise LoadError(
                    f"Failed to download template: HTTP {response.status_code} {response.reason}",
                    source=url,
                )

            logger.info(f"Downloaded workbook from {url} ({len(response.content)} bytes)")
            return response.content

        raise LoadError(f"Failed to download template: {last_error}", source=url)
