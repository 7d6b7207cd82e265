"""Configuration module for backend services."""

from taskifye.config.settings import (
    IntegrationSettings,
    get_settings,
    normalize_database_url,
    reset_settings_cache,
)

__all__ = [
    "IntegrationSettings",
    "get_settings",
    "normalize_database_url",
    "reset_settings_cache",
]
