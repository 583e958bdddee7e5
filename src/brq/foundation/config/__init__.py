"""Configuration management using pydantic-settings.

Provides environment-based configuration with type safety and validation.
"""

from .settings import (
    BrqSettings,
    HttpSettings,
    LoggingSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "BrqSettings",
    "HttpSettings",
    "LoggingSettings",
    "clear_settings_cache",
    "get_settings",
]
