"""Application configuration settings."""
from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Execution environment: "dev" | "test" | "staging" | "prod"
ENV = os.getenv("TW_ENV", "dev").lower()

PAYFAST_PRODUCTION_URL = "https://api.payfast.co.za"
PAYFAST_SANDBOX_URL = "https://sandbox.payfast.co.za"
PAYFAST_VALID_HOSTS = (
    "www.payfast.co.za",
    "sandbox.payfast.co.za",
    "w1w.payfast.co.za",
    "w2w.payfast.co.za",
)


class Settings(BaseSettings):
    """Environment configuration for the TrustWork escrow backend."""

    app_env: str = ENV
    database_url: str = Field(
        default="sqlite:///trustwork.db",
        validation_alias=AliasChoices("DATABASE_URL", "STORE_URL", "database_url"),
    )
    SECRET_KEY: str = "change-me"
    SERVICE_API_KEY: str | None = None
    LOG_LEVEL: str = "INFO"

    # --- PayFast ----------------------------------------------------------
    PAYFAST_MERCHANT_ID: str = ""
    PAYFAST_MERCHANT_KEY: str = ""
    PAYFAST_PASSPHRASE: str | None = None
    PAYFAST_MODE: str = "sandbox"

    # --- Money / policy ---------------------------------------------------
    PLATFORM_FEE_PERCENT: Decimal = Decimal("10")
    CURRENCY: str = "ZAR"
    DISPUTE_GRACE_PERIOD_HOURS: int | None = None
    DISPUTE_RESPONSE_DAYS: int = 7
    MILESTONE_MAX_REVISIONS: int = 3

    # --- Webhook / payouts -------------------------------------------------
    WEBHOOK_TIMEOUT_SECONDS: float = 15.0
    PAYOUT_THROTTLE_SECONDS: float = 1.0
    PAYOUT_MAX_ATTEMPTS: int = 3
    PAYOUT_RETRY_BACKOFF_SECONDS: float = 2.0
    PAYOUT_HTTP_TIMEOUT_SECONDS: float = 30.0
    SANDBOX_PAYOUT_DELAY_SECONDS: float = 0.5

    # --- Scheduler ---------------------------------------------------------
    SCHEDULER_ENABLED: bool = False
    SCHEDULER_CRON: str = "0 3 * * *"
    ALLOW_DB_CREATE_ALL: bool = False

    CORS_ALLOW_ORIGINS: list[str] = [
        "https://trustwork.co.za",
        "https://app.trustwork.co.za",
        "http://localhost:5173",
    ]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = True

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("PAYFAST_PASSPHRASE", "SERVICE_API_KEY")
    @classmethod
    def _empty_secret_to_none(cls, value: str | None) -> str | None:
        """Blank secrets become ``None``; anything else is kept byte for byte."""

        if value is None or not value.strip():
            return None
        return value

    @property
    def is_production(self) -> bool:
        return self.PAYFAST_MODE.strip().lower() == "production"

    @property
    def payfast_base_url(self) -> str:
        return PAYFAST_PRODUCTION_URL if self.is_production else PAYFAST_SANDBOX_URL


class AppInfo(BaseModel):
    name: str = "trustwork-escrow"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "PAYFAST_PRODUCTION_URL",
    "PAYFAST_SANDBOX_URL",
    "PAYFAST_VALID_HOSTS",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
