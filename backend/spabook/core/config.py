# backend/spabook/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Optional, Set

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


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
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


PROD_ENVIRONMENTS: Set[str] = {"prod", "production", "live"}

# Capacity policy for booking windows that no active time-slot rule covers.
UncoveredWindowPolicy = Literal["allow", "deny"]


class Settings(BaseSettings):
    # Database
    database_url: str = Field(
        default="sqlite:///./spabook.db",
        alias="DATABASE_URL",
        description="SQLAlchemy URL for the booking database",
    )
    test_database_url: str = Field(
        default="sqlite://",
        alias="TEST_DATABASE_URL",
        description="Database used by the test-suite (in-memory SQLite by default)",
    )
    db_pool_size: int = Field(default=5, ge=1)
    db_max_overflow: int = Field(default=10, ge=0)
    db_pool_timeout: int = Field(default=10, ge=1, description="Seconds to wait for a pooled connection")
    db_statement_timeout_ms: int = Field(
        default=15000,
        ge=0,
        description="Postgres statement_timeout applied to every connection (0 disables)",
    )

    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    is_testing: bool = False  # Set to True when running tests

    # Booking lifecycle
    uncovered_window_policy: UncoveredWindowPolicy = Field(
        default="allow",
        alias="UNCOVERED_WINDOW_POLICY",
        description="Admit ('allow') or reject ('deny') windows no active time slot covers",
    )
    assumed_service_minutes: int = Field(
        default=60,
        gt=0,
        description="Fallback duration for direct completion when no service duration is known",
    )
    booking_reference_prefix: str = Field(default="SPA", min_length=1, max_length=8)
    booking_reference_length: int = Field(default=6, ge=4, le=16)

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = (value or "INFO").strip().upper()
        if normalized not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return normalized

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in PROD_ENVIRONMENTS

    def get_database_url(self, url: Optional[str] = None) -> str:
        """Return the URL the engine should bind to."""
        if url:
            return url
        if self.is_testing or is_running_tests():
            return self.test_database_url
        return self.database_url


settings = Settings()
