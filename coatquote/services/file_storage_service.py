"""
File storage service for uploaded pricing workbooks.
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from coatquote.core.config import settings
from coatquote.core.logging import get_logger

logger = get_logger(__name__)


class FileStorageService:
    """
    Object store backed by the local filesystem.

    Blobs live under ``<FILE_STORAGE_PATH>/pricing/<owner_id>/`` and are
    addressed by their path relative to the storage root.
    """

    def __init__(self, base_path: Optional[str] = None):
        self.base_path = Path(base_path or getattr(settings, "FILE_STORAGE_PATH", "./data"))
        self.pricing_path = self.base_path / "pricing"
        self._ensure_directories()

    def _ensure_directories(self):
        """Ensure the pricing directory exists."""
        self.pricing_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Ensured directory exists: {self.pricing_path}")

    def save_workbook(self, owner_id: str, filename: str, data: bytes) -> str:
        """
        Store workbook bytes for an owner.

        Args:
            owner_id: Owner the workbook belongs to
            filename: Original filename of the upload
            data: Raw workbook bytes

        Returns:
            Storage path relative to the storage root
        """
        try:
            owner_path = self.pricing_path / self._sanitize_filename(owner_id, default_ext=False)
            owner_path.mkdir(parents=True, exist_ok=True)

            safe_filename = self._sanitize_filename(filename)

            # Timestamp prefix keeps a re-upload of the same name from clobbering the old blob
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
            file_path = owner_path / f"{timestamp}_{safe_filename}"
            file_path.write_bytes(data)

            storage_path = file_path.relative_to(self.base_path).as_posix()
            logger.info(f"Saved pricing workbook: {storage_path}")
            return storage_path

        except Exception as e:
            logger.error(f"Failed to save pricing workbook: {e}")
            raise

    def read(self, storage_path: str) -> bytes:
        """Read a stored blob; raises FileNotFoundError if it is gone."""
        return self._resolve(storage_path).read_bytes()

    def exists(self, storage_path: str) -> bool:
        return self._resolve(storage_path).is_file()

    def delete(self, storage_path: str) -> bool:
        """
        Delete a stored blob.

        Returns:
            True if a file was removed, False otherwise
        """
        try:
            path = self._resolve(storage_path)
            if path.exists():
                path.unlink()
                logger.info(f"Deleted stored workbook: {storage_path}")
                return True
            return False
        except OSError as e:
            logger.error(f"Failed to delete stored workbook {storage_path}: {e}")
            return False

    def _resolve(self, storage_path: str) -> Path:
        path = (self.base_path / storage_path).resolve()
        if self.base_path.resolve() not in path.parents:
            raise ValueError(f"Storage path escapes storage root: {storage_path}")
        return path

    def _sanitize_filename(self, filename: str, default_ext: bool = True) -> str:
        """
        Sanitize a filename to prevent path traversal attacks.

        Args:
            filename: The original filename
            default_ext: Append ``.unknown`` when there is no extension

        Returns:
            A safe filename
        """
        filename = Path(filename or "workbook").name

        safe_chars = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789._-")
        sanitized = "".join(c if c in safe_chars else "_" for c in filename)

        if default_ext and "." not in sanitized:
            sanitized = f"{sanitized}.unknown"

        return sanitized
