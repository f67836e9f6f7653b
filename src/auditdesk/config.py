"""Centralized, typed configuration using pydantic-settings.

Provides a single ``Settings`` class backed by ``.env`` file and environment
variables, a cached ``get_settings()`` accessor, and a ``validate_credentials()``
startup gate that enforces credential presence in production mode.

This module imports nothing from ``auditdesk`` so it can be loaded first.
"""

from __future__ import annotations

import sys
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

import structlog
from pydantic import SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env`` file.

    ``SecretStr`` fields keep the payment key out of logs and error output.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- General ---------------------------------------------------------------
    production: bool = False
    http_port: int = 8000

    # -- Ledger ----------------------------------------------------------------
    ledger_db_path: Path = Path("data/auditdesk.db")
    ledger_busy_timeout_seconds: float = 5.0

    # -- Payments (Stripe) -----------------------------------------------------
    stripe_secret_key: SecretStr = SecretStr("")
    payment_currency: str = "jpy"
    payment_timeout_seconds: float = 30.0

    # -- Settlement ------------------------------------------------------------
    default_fee_rate: Decimal = Decimal("0.1")
    capture_failure_policy: Literal["queue_for_retry", "queue_and_raise"] = "queue_for_retry"

    # -- Observability ---------------------------------------------------------
    sentry_dsn: str = ""

    @field_validator("default_fee_rate")
    @classmethod
    def fee_rate_must_be_a_fraction(cls, v: Decimal) -> Decimal:
        """Ensure the seeded fee rate lies in [0, 1]."""
        if not Decimal("0") <= v <= Decimal("1"):
            raise ValueError(f"default_fee_rate must be between 0 and 1, got {v}")
        return v

    @field_validator("payment_currency")
    @classmethod
    def currency_is_lowercase(cls, v: str) -> str:
        """Stripe expects lowercase ISO currency codes."""
        return v.lower()


@lru_cache
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance.

    Call ``get_settings.cache_clear()`` in tests to reset.

    Returns:
        The application ``Settings``.
    """
    try:
        return Settings()
    except ValidationError as exc:
        # Only the structured errors list; the exception text may echo secrets.
        logger.error("settings_validation_failed", errors=exc.errors())
        sys.exit(1)


def validate_credentials(settings: Settings) -> None:
    """Enforce credential presence at startup.

    In **production** mode the application exits with a clear error block if
    any required credential is missing.  In development each missing
    credential is logged as a warning and startup continues.

    Args:
        settings: The loaded application settings.
    """
    errors: list[str] = []

    if not settings.stripe_secret_key.get_secret_value():
        errors.append("STRIPE_SECRET_KEY is empty or not set")

    if not errors:
        logger.info("credential_validation_passed")
        return

    if settings.production:
        for err in errors:
            logger.error("credential_missing", detail=err)
        print("\n=== STARTUP FAILED ===", file=sys.stderr)
        print("Missing required credentials for production mode:", file=sys.stderr)
        for err in errors:
            print(f"  - {err}", file=sys.stderr)
        print("======================\n", file=sys.stderr)
        sys.exit(1)
    else:
        for err in errors:
            logger.warning("credential_missing_dev", detail=err)
