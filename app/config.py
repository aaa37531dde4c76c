"""
Configuration Management

Uses Pydantic BaseSettings to load configuration from environment variables.
All settings can be overridden via .env file or environment variables.

Environment Variables:
    TIMEZONE: IANA zone all session times are expressed in (default: Asia/Taipei)
    RECURRING_ENABLED: Accept daily/weekly/monthly sessions (default: True)
    DEFAULT_TIME_OF_DAY: Time assumed when a session has none (default: 00:00)
    CALENDAR_API_URL: Base URL of the external calendar API
    APP_ENV: Environment name (development/staging/production)
    DEBUG: Enable debug mode (default: False)
"""

from datetime import time
from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Schedule Engine
    timezone: str = "Asia/Taipei"
    """IANA timezone in which session times are wall-clock times.

    All date arithmetic uses this single zone; no other conversion
    is performed.
    """

    recurring_enabled: bool = True
    """Accept recurring (daily/weekly/monthly) sessions.

    When False only single sessions can be created; recurring requests
    are rejected with 403.
    """

    default_time_of_day: time = time(0, 0)
    """Time of day assumed for sessions created without one.

    Format: HH:MM
    """

    default_session_minutes: int = 60
    """Duration of a session when none is given."""

    max_occurrences_per_rule: int = 50
    """Minimum occurrences one rule may contribute to a query.

    Raised to the window length in days, so a full window is never cut short.
    """

    default_window_days: int = 30
    """Query window length when the caller gives no end date."""

    conflict_degrade_policy: Literal["warn", "block"] = "warn"
    """What to do when existing sessions cannot be loaded for a conflict check.

    Options:
    - warn: proceed and flag the result as unverified
    - block: reject the request with 503
    """

    # Calendar Sync
    calendar_api_url: str = "http://localhost:8001"
    """Base URL of the external calendar REST API."""

    calendar_api_timeout: float = 30.0
    """Calendar API request timeout in seconds."""

    calendar_id: str = "primary"
    """Calendar that synced sessions are written to."""

    # Application Environment
    app_env: Literal["development", "staging", "production"] = "development"
    """Current application environment.

    Options:
    - development: Local development, verbose logging, docs enabled
    - staging: Pre-production testing environment
    - production: Live production environment, minimal logging
    """

    debug: bool = False
    """Enable debug mode (debug logging, request timing)."""

    # Application Configuration
    app_name: str = "tutoring-scheduler"
    """Application name."""

    host: str = "0.0.0.0"
    """Host to bind the application server."""

    port: int = 8000
    """Port to bind the application server."""

    # CORS Configuration
    cors_origins: str = "http://localhost:3000"
    """Comma-separated list of allowed CORS origins."""

    # Pydantic configuration
    model_config = SettingsConfigDict(
        env_file=".env",  # Load from .env file if it exists
        env_file_encoding="utf-8",
        case_sensitive=False,  # Allow TIMEZONE or timezone
        extra="ignore",  # Ignore extra environment variables
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject zone names the tz database does not know."""
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def cors_origins_list(self) -> list[str]:
        """Split cors_origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def zone(self) -> ZoneInfo:
        """Configured timezone as a ZoneInfo."""
        return ZoneInfo(self.timezone)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Cached settings instance

    Example:
        >>> from app.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.timezone)
        Asia/Taipei
    """
    return Settings()


# Module-level settings instance for easy imports
settings = get_settings()
