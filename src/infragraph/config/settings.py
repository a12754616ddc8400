"""
Engine settings using Pydantic.

Provides environment-based configuration loading with INFRAGRAPH_ prefix.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="INFRAGRAPH_",
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Scheduling
    max_parallelism: int | None = Field(default=None, ge=1)  # None = unbounded
    fail_fast: bool = False

    # Provider calls
    provider_timeout_seconds: float | None = Field(default=None, gt=0)
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_backoff_multiplier: float = 0.5
    retry_backoff_min_seconds: float = 0.0
    retry_backoff_max_seconds: float = 10.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
