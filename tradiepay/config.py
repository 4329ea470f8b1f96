"""Application configuration settings."""
from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Execution environment: "dev" | "test" | "staging" | "prod"
ENV = os.getenv("TRADIE_ENV", "dev").lower()

# Legacy key, only tolerated in DEV
DEV_API_KEY = os.getenv("DEV_API_KEY") or os.getenv("API_KEY") or "dev-secret-key"
DEV_API_KEY_ALLOWED = ENV in {"dev", "local", "test"}


class Settings(BaseSettings):
    """Environment configuration for the Tradie Helper payments backend."""

    app_env: str = ENV
    database_url: str = "sqlite:///tradiepay.db"
    SECRET_KEY: str = "change-me"
    DEV_API_KEY: str | None = Field(
        default=DEV_API_KEY,
        validation_alias=AliasChoices("DEV_API_KEY", "API_KEY"),
    )
    CORS_ALLOW_ORIGINS: list[str] = [
        "https://tradiehelper.com.au",
        "http://localhost:3000",
    ]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = False
    ALLOW_DB_CREATE_ALL: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Stripe ----------------------------------------------------------
    STRIPE_ENABLED: bool = True
    STRIPE_SECRET_KEY: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300
    STRIPE_TIMEOUT_SECONDS: int = 20
    STRIPE_MAX_NETWORK_RETRIES: int = 2

    # --- Escrow ----------------------------------------------------------
    PLATFORM_FEE_PERCENT: Decimal = Decimal("5")
    PAYMENT_CURRENCY: str = "AUD"
    CONNECT_ACCOUNT_COUNTRY: str = "AU"
    FRONTEND_URL: str = "http://localhost:3000"
    # Published Stripe pricing, used for fee quotes only.
    PROCESSOR_FEE_PERCENT: Decimal = Decimal("2.9")
    PROCESSOR_FEE_FIXED_MINOR: int = 30

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET")
    @classmethod
    def _strip_empty_secret(cls, value: str | None) -> str | None:
        """Normalise empty secrets to ``None`` for easier validation."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @field_validator("PLATFORM_FEE_PERCENT")
    @classmethod
    def _fee_in_range(cls, value: Decimal) -> Decimal:
        if value < 0 or value >= 100:
            raise ValueError("PLATFORM_FEE_PERCENT must be within [0, 100)")
        return value

    @field_validator("PAYMENT_CURRENCY", "CONNECT_ACCOUNT_COUNTRY")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def onboarding_return_url(self) -> str:
        return f"{self.FRONTEND_URL.rstrip('/')}/payments?success=true"

    @property
    def onboarding_refresh_url(self) -> str:
        return f"{self.FRONTEND_URL.rstrip('/')}/payments?refresh=true"


class AppInfo(BaseModel):
    name: str = "tradiepay-backend"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "DEV_API_KEY",
    "DEV_API_KEY_ALLOWED",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
