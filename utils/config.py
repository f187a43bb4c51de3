"""
Configuration Utility - Environment Variables Management

Centralized configuration loading from .env files using pydantic-settings.
Type-safe access to all environment variables with validation.

Usage:
    from utils.config import settings

    api_root = settings.API_ROOT
    settings.require_upstream()  # pre-flight, raises ConfigurationError
"""

import re
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.errors import ConfigurationError

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Upstream API Configuration
    API_ROOT: str = Field(default="")
    API_RETAILER_ID: str = Field(default="")
    API_CRYPTO_KEY: str = Field(default="")
    API_TIMEOUT: int = Field(default=30)
    SIGNER_VECTORS_PATH: str | None = Field(default=None)

    # Record interpretation
    TIMEZONE: str = Field(default="Europe/Rome")

    # Scheduler Configuration
    EXTRACT_SCHEDULE_CRON: str = Field(default="0 * * * *")
    RUN_ONCE: bool = Field(default=False)

    # Database Configuration
    SQLITE_PATH: str = Field(default="/app/data/db/app.db")
    DB_TABLE_DISPENSING: str = Field(default="dispensing_events")

    # Redis Configuration
    PUBLISH_EVENTS: bool = Field(default=False)
    REDIS_URL: str = Field(default="redis://redis:6379/0")
    REDIS_MAX_CONNECTIONS: int = Field(default=10)
    REDIS_CHANNEL_SYNC: str = Field(default="sync.dispensing")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")

    # Application Metadata
    ENVIRONMENT: str = Field(default="production")
    APP_NAME: str = Field(default="icad-sync")
    APP_VERSION: str = Field(default="0.1.0")

    def require_upstream(self) -> None:
        """Check everything a sync run needs before touching network or disk.

        Raises:
            ConfigurationError: If a required key is missing or a value is unusable
        """
        missing = [
            name
            for name in ("API_ROOT", "API_RETAILER_ID", "API_CRYPTO_KEY")
            if not getattr(self, name).strip()
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required settings: {', '.join(missing)}",
                details={"missing": missing},
            )

        if not _IDENTIFIER.match(self.DB_TABLE_DISPENSING):
            raise ConfigurationError(
                f"DB_TABLE_DISPENSING is not a valid table name: {self.DB_TABLE_DISPENSING!r}"
            )

        # Fails here rather than on the first record
        self.zone()

    def zone(self) -> ZoneInfo:
        """Return the fixed process-wide time zone.

        Raises:
            ConfigurationError: If TIMEZONE is not a known IANA zone
        """
        try:
            return ZoneInfo(self.TIMEZONE)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(f"Unknown TIMEZONE: {self.TIMEZONE!r}") from e


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
