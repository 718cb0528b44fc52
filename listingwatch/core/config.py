"""Application configuration using pydantic-settings."""
import re
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    env: str = "local"
    app_name: str = "listingwatch-api"
    database_url: str = Field(
        "sqlite:///./dev.db",
        validation_alias=AliasChoices("DATABASE_URL", "database_url"),
    )
    allowed_origins: str = "*"
    log_level: str = Field("INFO", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))

    # Auth
    admin_api_key: Optional[str] = Field(None, validation_alias="ADMIN_API_KEY")
    jwt_secret_key: str = Field("change-me", validation_alias=AliasChoices("JWT_SECRET", "JWT_SECRET_KEY"))
    jwt_algorithm: str = Field("HS256", validation_alias="JWT_ALGORITHM")
    rate_limit_per_minute: int = Field(60, validation_alias="RATE_LIMIT_PER_MINUTE")
    rate_limit_burst: int = Field(10, validation_alias="RATE_LIMIT_BURST")

    # Scheduler
    scheduler_enabled: bool = Field(False, validation_alias="SCHEDULER_ENABLED")
    watch_run_interval_hours: int = Field(24, validation_alias="WATCH_RUN_INTERVAL_HOURS")

    # Catalog
    catalog_mode: str = Field("sql", validation_alias="CATALOG_MODE")  # sql | rest
    catalog_base_url: Optional[str] = Field(None, validation_alias="CATALOG_BASE_URL")
    catalog_timeout_seconds: int = Field(30, validation_alias="CATALOG_TIMEOUT_SECONDS")
    catalog_page_size: int = Field(200, validation_alias="CATALOG_PAGE_SIZE")
    catalog_published_status: str = Field("publish", validation_alias="CATALOG_PUBLISHED_STATUS")
    categories: str = Field("", validation_alias="CATEGORIES")  # empty = any

    # Field enumeration
    field_scan_max_pages: int = Field(50, validation_alias="FIELD_SCAN_MAX_PAGES")
    field_scan_excluded: str = Field(
        "description,images,gallery,contact_email,contact_phone",
        validation_alias="FIELD_SCAN_EXCLUDED",
    )

    # Attachment descriptors (image/file dicts) are leaves, never descended into
    attachment_marker_keys: str = Field("id,url,alt,width,height", validation_alias="ATTACHMENT_MARKER_KEYS")
    attachment_marker_threshold: int = Field(3, validation_alias="ATTACHMENT_MARKER_THRESHOLD")

    # Retention
    guest_ttl_days: int = Field(90, validation_alias="GUEST_TTL_DAYS")
    match_retention_days: int = Field(365, validation_alias="MATCH_RETENTION_DAYS")  # 0 = keep forever

    @field_validator("database_url")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Normalize DATABASE_URL and ensure SSL is required for PostgreSQL."""
        if v.startswith("sqlite"):
            return v

        if v.startswith("postgres://"):
            v = v.replace("postgres://", "postgresql+psycopg://", 1)

        if v.startswith("postgresql://"):
            v = v.replace("postgresql://", "postgresql+psycopg://", 1)

        if not v.startswith("postgresql+psycopg://"):
            raise ValueError("DATABASE_URL must start with postgresql://, postgresql+psycopg://, or sqlite")

        if "sslmode=" not in v:
            separator = "&" if "?" in v else "?"
            v = f"{v}{separator}sslmode=require"
        elif "sslmode=require" not in v:
            v = re.sub(r"sslmode=[^&]+", "sslmode=require", v)

        return v

    @field_validator("catalog_mode")
    @classmethod
    def validate_catalog_mode(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("sql", "rest"):
            raise ValueError("CATALOG_MODE must be 'sql' or 'rest'")
        return v

    @property
    def allowed_origins_list(self) -> list[str]:
        """Get allowed origins as a list."""
        if self.allowed_origins == "*":
            return ["*"]
        return _split_csv(self.allowed_origins)

    @property
    def categories_list(self) -> list[str]:
        return _split_csv(self.categories)

    @property
    def field_scan_excluded_list(self) -> list[str]:
        return _split_csv(self.field_scan_excluded)

    @property
    def attachment_marker_keys_list(self) -> list[str]:
        return [k.lower() for k in _split_csv(self.attachment_marker_keys)]


settings = Settings()
