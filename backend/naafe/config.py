"""Application configuration management using Pydantic Settings."""

from typing import List
from decimal import Decimal
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./naafe.db"
    SQL_ECHO: bool = False

    # API
    API_V1_PREFIX: str = "/api"

    # CORS
    CORS_ORIGINS: List[str] = ['http://localhost:5173']

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Currency
    DEFAULT_CURRENCY: str = "EGP"
    SUPPORTED_CURRENCIES: List[str] = ["EGP", "USD", "EUR"]

    # Offers
    OFFER_MESSAGE_MAX_LENGTH: int = 1000

    # Payment provider callbacks
    PAYMENT_WEBHOOK_SECRET: str = ""  # Empty disables the shared-secret check

    # Cancellation policy
    FULL_REFUND_WINDOW_HOURS: Decimal = Decimal("12")  # Cancel at least this far ahead for a full refund
    LATE_CANCELLATION_REFUND_PERCENT: Decimal = Decimal("70")  # Seeker share when cancelling late

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @field_validator("CORS_ORIGINS", "SUPPORTED_CURRENCIES", mode="before")
    @classmethod
    def parse_json_list(cls, v) -> List[str]:
        """Parse list settings from JSON string to list."""
        if isinstance(v, str):
            return json.loads(v)
        return v

    @field_validator("FULL_REFUND_WINDOW_HOURS", "LATE_CANCELLATION_REFUND_PERCENT", mode="before")
    @classmethod
    def parse_decimal(cls, v) -> Decimal:
        """Parse string to Decimal for precise arithmetic."""
        if isinstance(v, str):
            return Decimal(v)
        return v


# Global settings instance
settings = Settings()
