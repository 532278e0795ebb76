"""
Pricing configuration store.

Persists one ``PricingConfigRecord`` per owner in the row store and the
uploaded workbook in the object store.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Session, select

from coatquote.core.exceptions import ConfigurationError, LoadError
from coatquote.core.logging import get_logger
from coatquote.models.pricing_config import PricingConfigRecord
from coatquote.pricing.cells import Workbook
from coatquote.pricing.workbook_loader import WorkbookLoader, content_hash
from coatquote.schemas.pricing import PricingConfig
from coatquote.services.file_storage_service import FileStorageService

logger = get_logger(__name__)


def _is_url(ref: str) -> bool:
    return ref.lower().startswith(("http://", "https://"))


class PricingConfigService:
    """
    Config store for a single owner.
    Coordinates between the row store, the object store and the workbook loader.
    """

    def __init__(
        self,
        session: Session,
        owner_id: str,
        storage: FileStorageService,
        loader: WorkbookLoader,
    ):
        self.session = session
        self.owner_id = owner_id
        self.storage = storage
        self.loader = loader

    def get_record(self) -> Optional[PricingConfigRecord]:
        query = select(PricingConfigRecord).where(PricingConfigRecord.owner_id == self.owner_id)
        return self.session.exec(query).first()

    def get(self) -> Optional[PricingConfig]:
        """Return the owner's active configuration, or None."""
        record = self.get_record()
        if record is None:
            return None
        return self._to_config(record)

    def is_configured(self) -> bool:
        return self.get_record() is not None

    def set(
        self,
        config: PricingConfig,
        file_bytes: Optional[bytes] = None,
        file_name: Optional[str] = None,
    ) -> PricingConfig:
        """
        Save the configuration, optionally with a new workbook.

        Args:
            config: Cell mapping and sheet; ``workbook_ref`` is ignored when a file is given
            file_bytes: Raw bytes of a newly uploaded workbook
            file_name: Original filename of the upload

        Returns:
            The stored configuration

        Raises:
            LoadError: If the uploaded file is not a readable workbook
            ConfigurationError: If there is no workbook or the sheet does not exist
        """
        record = self.get_record()
        old_path = record.storage_path if record else None
        old_hash = record.workbook_hash if record else None

        if file_bytes is not None:
            workbook_hash = content_hash(file_bytes)
            workbook = self.loader.load_bytes(file_bytes)
            try:
                self._check_sheet(workbook, config.sheet_name)
            except ConfigurationError:
                if workbook_hash != old_hash:
                    self.loader.evict(workbook_hash)
                raise
            name = file_name or config.file_name or "workbook.xlsx"
            storage_path = self.storage.save_workbook(self.owner_id, name, file_bytes)
        elif record is not None:
            workbook = self.load_workbook(self._to_config(record))
            self._check_sheet(workbook, config.sheet_name)
            storage_path = record.storage_path
            name = record.file_name
            workbook_hash = record.workbook_hash
        elif _is_url(config.workbook_ref):
            workbook = self.loader.load_url(config.workbook_ref)
            self._check_sheet(workbook, config.sheet_name)
            storage_path = config.workbook_ref
            name = config.file_name or config.workbook_ref.rsplit("/", 1)[-1]
            workbook_hash = workbook.content_hash
        else:
            raise ConfigurationError("Upload an Excel workbook before saving the configuration")

        if record is None:
            record = PricingConfigRecord(
                owner_id=self.owner_id,
                storage_path=storage_path,
                file_name=name,
                selected_sheet=config.sheet_name,
                length_cell=config.length_cell,
                width_cell=config.width_cell,
                height_cell=config.height_cell,
                weight_cell=config.weight_cell,
                price_cell=config.price_cell,
                workbook_hash=workbook_hash,
            )
        else:
            record.storage_path = storage_path
            record.file_name = name
            record.selected_sheet = config.sheet_name
            record.length_cell = config.length_cell
            record.width_cell = config.width_cell
            record.height_cell = config.height_cell
            record.weight_cell = config.weight_cell
            record.price_cell = config.price_cell
            record.workbook_hash = workbook_hash
            record.updated_at = datetime.now(timezone.utc)

        try:
            self.session.add(record)
            self.session.commit()
            self.session.refresh(record)
        except Exception as e:
            logger.error(f"Failed to save pricing config for owner {self.owner_id}: {e}")
            self.session.rollback()
            if file_bytes is not None:
                self.storage.delete(storage_path)
                if workbook_hash != old_hash:
                    self.loader.evict(workbook_hash)
            raise

        if old_path and old_path != storage_path and not _is_url(old_path):
            self.storage.delete(old_path)
        if old_hash and old_hash != workbook_hash and old_path and not _is_url(old_path):
            self.loader.evict(old_hash)

        logger.info(
            f"Saved pricing config for owner {self.owner_id}: "
            f"{name} / {config.sheet_name} -> {config.price_cell}"
        )
        return self._to_config(record)

    def clear(self) -> None:
        """Remove the configuration row and its stored workbook."""
        record = self.get_record()
        if record is None:
            return

        storage_path = record.storage_path
        workbook_hash = record.workbook_hash
        try:
            self.session.delete(record)
            self.session.commit()
        except Exception as e:
            logger.error(f"Failed to clear pricing config for owner {self.owner_id}: {e}")
            self.session.rollback()
            raise

        if not _is_url(storage_path):
            self.storage.delete(storage_path)
            if workbook_hash:
                self.loader.evict(workbook_hash)
        logger.info(f"Cleared pricing config for owner {self.owner_id}")

    def load_workbook(self, config: PricingConfig) -> Workbook:
        """
        Load the workbook a configuration points to.

        Raises:
            LoadError: If the workbook is missing or unreadable
        """
        if _is_url(config.workbook_ref):
            return self.loader.load_url(config.workbook_ref)
        try:
            data = self.storage.read(config.workbook_ref)
        except (OSError, ValueError) as e:
            raise LoadError(
                f"Stored workbook {config.workbook_ref} is unavailable: {e}",
                source=config.workbook_ref,
            ) from e
        return self.loader.load_bytes(data)

    @staticmethod
    def _check_sheet(workbook: Workbook, sheet_name: str) -> None:
        if not workbook.has_sheet(sheet_name):
            raise ConfigurationError(
                f'Sheet "{sheet_name}" not found; available sheets: {", ".join(workbook.sheet_names)}'
            )

    @staticmethod
    def _to_config(record: PricingConfigRecord) -> PricingConfig:
        return PricingConfig(
            workbook_ref=record.storage_path,
            file_name=record.file_name,
            sheet_name=record.selected_sheet,
            length_cell=record.length_cell,
            width_cell=record.width_cell,
            height_cell=record.height_cell,
            weight_cell=record.weight_cell,
            price_cell=record.price_cell,
            workbook_hash=record.workbook_hash,
        )
