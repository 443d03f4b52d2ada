"""
Centralized configuration with validation.

Uses pydantic-settings to load and validate all environment variables at startup.
Fail fast with clear error messages if required config is missing.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = Field(
        ...,
        description="PostgreSQL connection URL",
    )

    # Authentication
    CRON_SECRET: str | None = Field(
        default=None,
        description="Bearer token presented by the scheduler",
    )
    ADMIN_SECRET: str | None = Field(
        default=None,
        description="Bearer token presented by administrators",
    )

    # Application
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Root log level",
    )
    LOG_JSON: bool = Field(
        default=True,
        description="Emit single-line JSON logs (disable for local development)",
    )

    # Lifecycle policy
    FREE_ACTIVE_WINDOW_HOURS: int = Field(
        default=48,
        ge=1,
        description="Hours a free-tier listing stays publicly live",
    )
    PREMIUM_ACTIVE_WINDOW_DAYS: int = Field(
        default=30,
        ge=1,
        description="Days a premium-tier listing stays publicly live",
    )
    ARCHIVE_DURATION_DAYS: int = Field(
        default=7,
        ge=1,
        description="Days an archived listing is kept before it becomes eligible for purge",
    )
    GRACE_PERIOD_HOURS: int = Field(
        default=24,
        ge=1,
        description="Notice window given to listings found already overdue when TTL is assigned",
    )

    # Batching and fan-out
    BATCH_CEILING: int = Field(
        default=500,
        ge=1,
        le=500,
        description="Maximum mutate operations per commit",
    )
    FAVORITE_LOOKUP_CONCURRENCY: int = Field(
        default=10,
        ge=1,
        le=64,
        description="Parallel favorite lookups during cleanup",
    )
    CLEANUP_MAX_LISTINGS: int = Field(
        default=5000,
        ge=1,
        description="Maximum listings purged per cleanup run; the rest wait for the next tick",
    )

    # Diagnostics
    EXPIRATION_TOLERANCE_MINUTES: int = Field(
        default=15,
        ge=0,
        description="Slack before an unarchived, expired active listing is reported",
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def fix_database_url(cls, v: str) -> str:
        """Railway provides postgresql:// but SQLAlchemy needs postgresql+psycopg2://"""
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+psycopg2://", 1)
        return v

    @field_validator("CRON_SECRET", "ADMIN_SECRET")
    @classmethod
    def blank_secret_is_unset(cls, v: str | None) -> str | None:
        """An empty secret must never authorize an empty bearer token."""
        if v is not None and not v.strip():
            return None
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings. Call at startup to validate config."""
    return Settings()
