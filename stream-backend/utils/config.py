"""
Configuration Utility - Environment Variables Management

Centralized configuration loading from .env files using pydantic-settings.
Type-safe access to all environment variables with validation.

Usage:
    from utils.config import settings

    endpoint = settings.EDITORIAL_ENDPOINT
    state_dir = settings.STATE_DIR
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Partner API Configuration
    INSTALL_ID: int = Field(default=0)
    API_KEY: str = Field(default="")
    API_TIMEOUT: int = Field(default=30)
    EDITORIAL_ENDPOINT: str = Field(
        default="http://partner-api.strategyeye.com/editorials/stream.xml"
    )
    RECOMMENDATIONS_ENDPOINT: str = Field(
        default="http://partner-api.editoreye.com/recommendations/stream.xml"
    )
    EDITORIAL_PAGE_LIMIT: int = Field(default=20, ge=1)
    RECOMMENDATIONS_PAGE_LIMIT: int = Field(default=10, ge=1)
    FETCH_MAX_RETRIES: int = Field(default=3, ge=1)

    # Sync Configuration
    SYNC_FEEDS: str = Field(default="editorial,recommendations")
    SYNC_SCHEDULE_CRON: str = Field(default="*/15 * * * *")
    SYNC_MAX_PAGES: int = Field(default=0, ge=0)
    RUN_ONCE: bool = Field(default=False)

    # File System Paths
    STATE_DIR: str = Field(default="/app/data/state")
    STORE_DIR: str = Field(default="/app/data/articles")
    STORE_BACKEND: str = Field(default="file")

    # Database Configuration
    SQLITE_PATH: str = Field(default="/app/data/db/articles.db")

    # Redis Configuration
    REDIS_URL: str = Field(default="redis://redis:6379/0")
    REDIS_MAX_CONNECTIONS: int = Field(default=10)
    REDIS_CHANNEL_SYNC: str = Field(default="streams.sync")
    SYNC_PUBLISH_EVENTS: bool = Field(default=True)
    SYNC_LOCK_ENABLED: bool = Field(default=True)
    SYNC_LOCK_TIMEOUT: int = Field(default=900)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")
    LOG_FILE: str | None = Field(default="/app/data/logs/stream-process.log")

    # Application Metadata
    ENVIRONMENT: str = Field(default="production")
    APP_NAME: str = Field(default="stream-loader")
    APP_VERSION: str = Field(default="0.1.0")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def feed_names(self) -> list[str]:
        """Feed names listed in SYNC_FEEDS, in order."""
        return [name.strip() for name in self.SYNC_FEEDS.split(",") if name.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
