"""Application configuration using Pydantic settings."""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Cadence"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./cadence.db"
    DB_ECHO: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # 'text' or 'json' (json for production)

    # Recurring detection
    RECURRING_MIN_OCCURRENCES: int = 3  # Never suggest from 1-2 data points
    RECURRING_MIN_MODAL_COUNT: int = 2  # Gaps required inside the modal window
    RECURRING_AMOUNT_TOLERANCE: Decimal = Decimal("0.01")
    RECURRING_COUNT_SATURATION: int = 6  # Occurrences at which count stops adding confidence
    RECURRING_DRIFT_PENALTY: int = 20  # Confidence points lost when the amount drifts
    RECURRING_LOOKBACK_DAYS: Optional[int] = None  # None = full history

    # Income detection only looks at cash accounts
    INCOME_ACCOUNT_TYPES: list[str] = ["depository"]
    INCOME_ACCOUNT_SUBTYPES: list[str] = ["checking", "savings"]

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @field_validator("RECURRING_MIN_OCCURRENCES")
    @classmethod
    def validate_min_occurrences(cls, v: int) -> int:
        """A suggestion needs at least three data points."""
        if v < 3:
            raise ValueError("RECURRING_MIN_OCCURRENCES must be >= 3")
        return v

    @field_validator("RECURRING_MIN_MODAL_COUNT")
    @classmethod
    def validate_min_modal_count(cls, v: int) -> int:
        """At least two gaps must agree on the interval."""
        if v < 2:
            raise ValueError("RECURRING_MIN_MODAL_COUNT must be >= 2")
        return v

    @field_validator("RECURRING_COUNT_SATURATION")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Count saturation must be at least 1."""
        if v < 1:
            raise ValueError("RECURRING_COUNT_SATURATION must be >= 1")
        return v

    @field_validator("RECURRING_AMOUNT_TOLERANCE")
    @classmethod
    def validate_tolerance(cls, v: Decimal) -> Decimal:
        """Amount tolerance must be positive."""
        if v <= 0:
            raise ValueError("RECURRING_AMOUNT_TOLERANCE must be positive")
        return v

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Only text and json renderers are supported."""
        if v not in ("text", "json"):
            raise ValueError("LOG_FORMAT must be 'text' or 'json'")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
