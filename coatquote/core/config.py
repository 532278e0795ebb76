"""
Application configuration management using Pydantic Settings.
All settings can be overridden via environment variables.
"""

from typing import Any, List

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "Coatquote Pricing"
    VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str | None = None  # e.g. WARNING; defaults to DEBUG or INFO following DEBUG

    # Security
    API_KEY: str | None = None  # Optional API key; validation is skipped when unset

    # Database
    DATABASE_URL: str | None = None  # e.g. sqlite:///./data/dev.db or a PostgreSQL DSN

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """Get database URI - defaults to a local SQLite file."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return "sqlite:///./data/dev.db"

    # CORS
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Any) -> List[str] | str:
        """Parse CORS origins from string or list."""
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # File Storage
    FILE_STORAGE_PATH: str = "./data"  # Root for uploaded pricing workbooks

    # Pricing template
    PRICING_TEMPLATE_URL: str | None = None  # Shared template used by the preset endpoint
    WORKBOOK_FETCH_TIMEOUT: float = 15.0  # Seconds per download attempt
    WORKBOOK_FETCH_RETRIES: int = 1  # Extra attempts after a transient failure

    @field_validator("WORKBOOK_FETCH_RETRIES", mode="after")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        """Reject negative retry counts."""
        if v < 0:
            raise ValueError("WORKBOOK_FETCH_RETRIES must be zero or positive")
        return v

    @field_validator("LOG_LEVEL", mode="after")
    @classmethod
    def validate_log_level(cls, v: str | None) -> str | None:
        """Accept standard level names in any case."""
        if v is None:
            return v
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"LOG_LEVEL must be a standard logging level, got {v!r}")
        return level


settings = Settings()  # type: ignore
