from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AnyHttpUrl, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables with validation."""

    model_config = SettingsConfigDict(
        env_file=(str(Path(__file__).resolve().parents[1] / ".env"), ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    app_name: str = Field(default="Subscription Reconciler", alias="APP_NAME")
    app_env: Literal["development", "staging", "production", "test"] = Field(
        default="production",
        alias="APP_ENV",
    )
    app_debug: bool = Field(default=False, alias="APP_DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")
    secret_key: SecretStr = Field(
        default=SecretStr("change-me-in-production"),
        alias="SECRET_KEY",
    )

    database_url: str = Field(default="sqlite:///./data/reconciler.db", alias="DATABASE_URL")
    db_pool_size: int = Field(default=5, ge=1, le=100, alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, ge=0, le=200, alias="DB_MAX_OVERFLOW")
    db_pool_recycle: int = Field(default=1800, ge=60, alias="DB_POOL_RECYCLE")

    scheduler_enabled: bool = Field(default=True, alias="SCHEDULER_ENABLED")
    scheduler_poll_seconds: int = Field(default=60, ge=1, le=3600, alias="SCHEDULER_POLL_SECONDS")

    # Reconciliation thresholds.
    users_idle_days: int = Field(default=180, ge=1, alias="USERS_IDLE_DAYS")
    billing_min_age_weeks: int = Field(default=4, ge=0, alias="BILLING_MIN_AGE_WEEKS")
    sponsorship_min_age_days: int = Field(default=30, ge=0, alias="SPONSORSHIP_MIN_AGE_DAYS")
    monthly_grace_weeks: int = Field(default=4, ge=0, alias="MONTHLY_GRACE_WEEKS")
    yearly_grace_months: int = Field(default=11, ge=0, alias="YEARLY_GRACE_MONTHS")
    dangling_pending_days: int = Field(default=2, ge=0, alias="DANGLING_PENDING_DAYS")

    paypal_client_id: SecretStr | None = Field(default=None, alias="PAYPAL_CLIENT_ID")
    paypal_client_secret: SecretStr | None = Field(default=None, alias="PAYPAL_CLIENT_SECRET")
    paypal_api_url: AnyHttpUrl = Field(
        default="https://api-m.paypal.com",
        alias="PAYPAL_API_URL",
    )
    github_token: SecretStr | None = Field(default=None, alias="GITHUB_TOKEN")
    github_api_url: AnyHttpUrl = Field(
        default="https://api.github.com",
        alias="GITHUB_API_URL",
    )
    provider_timeout_seconds: float = Field(default=30.0, gt=0, le=300, alias="PROVIDER_TIMEOUT_SECONDS")

    @field_validator("api_v1_prefix")
    @classmethod
    def validate_api_prefix(cls, value: str) -> str:
        """Ensure the API prefix starts with a slash and has no trailing slash."""
        normalized = value.strip()
        if not normalized.startswith("/"):
            raise ValueError("API_V1_PREFIX must start with '/'.")
        if len(normalized) > 1 and normalized.endswith("/"):
            normalized = normalized.rstrip("/")
        return normalized

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be a standard logging level name.")
        return normalized

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, value: str) -> str:
        """Validate database URL is a SQLite or PostgreSQL SQLAlchemy connection string."""
        lowered = value.lower()
        if not lowered.startswith(("sqlite://", "postgresql://", "postgresql+psycopg2://", "postgresql+psycopg://")):
            raise ValueError("DATABASE_URL must be a sqlite:// or postgresql:// URL")
        return value

    @property
    def paypal_enabled(self) -> bool:
        return bool(self.paypal_client_id and self.paypal_client_secret)

    @property
    def github_enabled(self) -> bool:
        return bool(self.github_token)


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()


settings: Settings = get_settings()
