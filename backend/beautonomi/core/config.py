# backend/beautonomi/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


class Settings(BaseSettings):
    """Runtime configuration for the booking and settlement backend."""

    environment: str = "development"

    # Database
    database_url: str = Field(
        default="sqlite:///./beautonomi.db",
        description="SQLAlchemy URL for the primary database",
    )
    database_echo: bool = False

    # Public site used to build payment callback URLs
    app_url: str = "http://localhost:3000"

    # Money
    default_currency: str = "ZAR"
    default_deposit_percentage: float = Field(default=30.0, ge=0, le=100)
    default_tax_rate_percent: float = Field(default=0.0, ge=0, le=100)

    # Loyalty fallbacks when the active rule leaves them unset
    default_min_redemption_points: int = 50
    default_max_redemption_percentage: float = 50.0

    # Payment gateway
    payment_gateway: Literal["paystack", "stripe"] = "paystack"
    paystack_secret_key: SecretStr = Field(default=SecretStr(""))
    paystack_base_url: str = "https://api.paystack.co"
    stripe_secret_key: SecretStr = Field(default=SecretStr(""))
    gateway_timeout_seconds: float = 30.0

    # Gift card saga recovery
    gift_card_reservation_ttl_minutes: int = 60

    # Outbox delivery target; events are only logged when unset
    notification_webhook_url: Optional[str] = None
    notification_timeout_seconds: float = 10.0

    # Celery / Redis
    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("default_currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("app_url", "paystack_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def checkout_callback_url(self) -> str:
        return f"{self.app_url}/checkout/success"

    @property
    def broker_url(self) -> str:
        return self.celery_broker_url or self.redis_url


settings = Settings()
