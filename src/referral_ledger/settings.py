"""Application settings and configuration."""

import logging
import sys
from decimal import Decimal
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_DATABASE_URL = "sqlite:///./referral_ledger.db"


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="REFERRAL_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "referral-ledger"
    env: str = "development"
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"

    # Database
    database_url: str = Field(
        default=_DEFAULT_DATABASE_URL,
        description="Database connection URL",
    )

    # Money
    currency: str = "USD"
    default_commission_rate: Decimal = Decimal("10")  # percent
    default_minimum_payout: Decimal = Decimal("50")
    default_payout_method: str = "platform_credits"

    # Referral codes
    referral_code_length: int = 8
    referral_code_max_attempts: int = 20  # per length, before widening
    referral_code_fallback_length: int = 12

    # Rewards
    discount_token_validity_days: int = 30

    # Collaborators
    course_api_url: str = "http://localhost:8000/api/courses"
    enrollment_api_url: str = "http://localhost:8000/api/enrollments"
    request_timeout_seconds: float = 10.0

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v}")
        return level


# Global settings instance
settings = Settings()

# ── Safety checks ────────────────────────────────────────────────────
if settings.env == "production" and settings.database_url == _DEFAULT_DATABASE_URL:
    print(
        "\n❌  FATAL: REFERRAL_DATABASE_URL is not set for production.\n"
        "   The local SQLite file cannot enforce cross-process locking.\n",
        file=sys.stderr,
    )
    sys.exit(1)
