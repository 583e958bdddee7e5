"""Environment-based configuration using pydantic-settings.

Provides type-safe, validated defaults for the request engine, loaded from
environment variables and an optional ``.env`` file.

Example:
    >>> from brq.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.http.max_redirects
    5

    # Or with environment variables:
    # BRQ_HTTP_TIMEOUT=2500
    # BRQ_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import (
    ByteSize,
    Field,
    NonNegativeFloat,
    NonNegativeInt,
    computed_field,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class HttpSettings(BaseSettings):
    """Request defaults applied when the caller leaves a field unset."""

    model_config = SettingsConfigDict(
        env_prefix="BRQ_HTTP_",
        extra="ignore",
    )

    limit: ByteSize = Field(
        default=ByteSize(20 * 1024 * 1024),
        description="Max buffered payload size (supports '20MiB'); 0 disables",
    )
    timeout: NonNegativeFloat = Field(
        default=0.0,
        description="Whole-exchange timeout in milliseconds; 0 disables",
    )
    max_redirects: NonNegativeInt = Field(default=5, description="Maximum redirect hops")
    strict_ssl: bool = True
    user_agent: str | None = None

    @computed_field
    @property
    def limit_bytes(self) -> int:
        return int(self.limit)


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BRQ_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"
    colors: bool | None = None

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class BrqSettings(BaseSettings):
    """Root settings for brq.

    Loads configuration from environment variables with BRQ_ prefix.
    Supports nested configuration and .env files.

    Example environment variables:
        BRQ_HTTP_LIMIT=5MiB
        BRQ_HTTP_MAX_REDIRECTS=10
        BRQ_HTTP_STRICT_SSL=false
        BRQ_LOG_FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="BRQ_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    http: HttpSettings = Field(default_factory=HttpSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> BrqSettings:
    """Get the global settings instance (cached)."""
    return BrqSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing).

    After calling this, the next get_settings() call will
    reload configuration from environment.
    """
    get_settings.cache_clear()
