# backend/icetime/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Set

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import BRAND_NAME


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


PROD_ENVIRONMENTS: Set[str] = {"prod", "production"}


class Settings(BaseSettings):
    """Runtime configuration for the booking engine."""

    environment: str = Field(default="development", description="Deployment environment name")
    is_testing: bool = Field(default=False, description="Set by the test harness")

    # Persistence
    database_url: str = Field(
        default="sqlite:///./icetime.db",
        description="SQLAlchemy URL for the primary database",
    )
    test_database_url: str = Field(
        default="sqlite://",
        description="SQLAlchemy URL used by the test suite",
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")
    database_lock_timeout_seconds: float = Field(
        default=5.0,
        ge=0.1,
        description="Upper bound for slot/account lock waits (SQLite busy timeout)",
    )

    # Redis (Celery broker + occupancy broadcast)
    redis_url: str = Field(default="redis://localhost:6379", description="Redis connection URL")
    occupancy_broadcast_enabled: bool = Field(
        default=False, description="Publish occupancy changes to Redis pub/sub"
    )
    occupancy_channel: str = Field(
        default=f"{BRAND_NAME.lower()}:occupancy",
        description="Redis channel used for occupancy change messages",
    )
    notifications_enabled: bool = Field(
        default=False, description="Forward notification events to the Celery worker"
    )

    # Business calendar
    timezone: str = Field(default="America/Toronto", description="Rink local timezone")
    cancellation_window_hours: int = Field(
        default=24, ge=0, description="Refund-eligible cancellation notice in hours"
    )
    group_slot_capacity: int = Field(default=6, ge=1, description="Seats per group slot")
    sunday_slot_capacity: int = Field(default=6, ge=1, description="Seats per Sunday ice slot")
    shared_slot_capacity: int = Field(
        default=1, ge=1, description="Seats per private/semi-private slot"
    )
    recurring_interval_days: int = Field(
        default=7, ge=1, description="Days between recurring materializations"
    )

    # Credits
    credit_validity_days: int = Field(default=365, ge=1, description="Purchased credit lifetime")
    refund_validity_days: int = Field(
        default=365, ge=1, description="Lifetime of credits re-issued as a refund batch"
    )
    low_credit_threshold: int = Field(
        default=3, ge=0, description="Balance below which a CreditsLow event is emitted"
    )

    # Periodic tasks
    recurring_sweep_crontab_hour: str = Field(
        default="6", description="Hour(s) at which the recurring sweep runs"
    )
    credit_expiry_crontab_hour: str = Field(
        default="3", description="Hour(s) at which expired credit batches are closed"
    )
    reminder_crontab_hour: str = Field(
        default="14", description="Hour(s) at which next-day reminders are sent"
    )
    credit_expiry_warning_days: int = Field(
        default=7, ge=1, description="Warn about credits expiring within this many days"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, value: str) -> str:
        return (value or "development").strip().lower()

    @property
    def is_production(self) -> bool:
        return self.environment in PROD_ENVIRONMENTS

    def get_database_url(self) -> str:
        """Return the database URL for the current process."""
        if self.is_testing or is_running_tests():
            return self.test_database_url
        return self.database_url


settings = Settings()
