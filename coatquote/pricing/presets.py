"""
Preset for the shared coating template.

The shared template has one sheet per treatment with the part size in
D67:D69, the weight in D74 and the price in L17.
"""
from enum import Enum
from typing import Optional

from coatquote.core.config import settings
from coatquote.core.exceptions import ConfigurationError
from coatquote.pricing.cells import Workbook
from coatquote.pricing.workbook_loader import WorkbookLoader
from coatquote.schemas.pricing import PricingConfig


class CoatingSheet(str, Enum):
    """Treatment sheets of the shared template."""

    GALVANIZING = "Verzinken"
    PICKLING = "Dompelbeitsen"
    SUBLIMOTION = "Sublimotion"


def template_config(sheet: CoatingSheet, url: str) -> PricingConfig:
    return PricingConfig(
        workbook_ref=url,
        file_name=url.rsplit("/", 1)[-1],
        sheet_name=sheet.value,
        length_cell="D67",
        width_cell="D68",
        height_cell="D69",
        weight_cell="D74",
        price_cell="L17",
    )


class TemplatePresetSource:
    """Config source serving the shared template for one treatment sheet."""

    def __init__(self, sheet: CoatingSheet, loader: WorkbookLoader, url: Optional[str] = None):
        self.sheet = sheet
        self.loader = loader
        self.url = url or settings.PRICING_TEMPLATE_URL
        if not self.url:
            raise ConfigurationError("PRICING_TEMPLATE_URL is not configured")

    def get(self) -> PricingConfig:
        return template_config(self.sheet, self.url)

    def load_workbook(self, config: PricingConfig) -> Workbook:
        return self.loader.load_url(config.workbook_ref)
