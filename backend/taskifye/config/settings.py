"""
Integration layer settings loaded from environment variables.

Single source of truth for cache windows, timeouts and backing-store URLs.
Read once at startup; the resulting IntegrationSettings is passed to the
components that need it rather than read ad hoc at call sites.

SECURITY: ENCRYPTION_KEY is read here but never logged or echoed back.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)

# Defaults
DEFAULT_CREDENTIAL_CACHE_TTL_SECONDS = 300        # 5 minutes
DEFAULT_FIELD_MAPPING_MAX_AGE_SECONDS = 86400     # 24 hours
DEFAULT_INTEGRATION_TIMEOUT_SECONDS = 10.0
DEFAULT_DATABASE_URL = "sqlite:///./taskifye.db"
DEFAULT_REDIS_URL = "redis://localhost:6379/0"
DEFAULT_PIPEDRIVE_API_BASE_URL = "https://api.pipedrive.com/v1"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            "Invalid integer in environment, using default",
            extra={"env_var": name, "default": default},
        )
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(
            "Invalid number in environment, using default",
            extra={"env_var": name, "default": default},
        )
        return default


def normalize_database_url(database_url: str) -> str:
    """Rewrite Heroku/Render style postgres:// URLs for SQLAlchemy."""
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url


@dataclass(frozen=True)
class IntegrationSettings:
    """Runtime configuration for the credential and field-mapping layer."""

    encryption_key: Optional[str] = field(default=None, repr=False)
    database_url: str = DEFAULT_DATABASE_URL
    redis_url: str = DEFAULT_REDIS_URL
    credential_cache_ttl_seconds: int = DEFAULT_CREDENTIAL_CACHE_TTL_SECONDS
    field_mapping_max_age_seconds: int = DEFAULT_FIELD_MAPPING_MAX_AGE_SECONDS
    integration_timeout_seconds: float = DEFAULT_INTEGRATION_TIMEOUT_SECONDS
    pipedrive_api_base_url: str = DEFAULT_PIPEDRIVE_API_BASE_URL

    @property
    def encryption_configured(self) -> bool:
        return bool(self.encryption_key)

    @classmethod
    def from_env(cls) -> "IntegrationSettings":
        return cls(
            encryption_key=os.getenv("ENCRYPTION_KEY") or None,
            database_url=normalize_database_url(
                os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
            ),
            redis_url=os.getenv("REDIS_URL", DEFAULT_REDIS_URL),
            credential_cache_ttl_seconds=_int_env(
                "CREDENTIAL_CACHE_TTL_SECONDS", DEFAULT_CREDENTIAL_CACHE_TTL_SECONDS
            ),
            field_mapping_max_age_seconds=_int_env(
                "FIELD_MAPPING_MAX_AGE_SECONDS", DEFAULT_FIELD_MAPPING_MAX_AGE_SECONDS
            ),
            integration_timeout_seconds=_float_env(
                "INTEGRATION_TIMEOUT_SECONDS", DEFAULT_INTEGRATION_TIMEOUT_SECONDS
            ),
            pipedrive_api_base_url=os.getenv(
                "PIPEDRIVE_API_BASE_URL", DEFAULT_PIPEDRIVE_API_BASE_URL
            ).rstrip("/"),
        )


_settings: Optional[IntegrationSettings] = None


def get_settings() -> IntegrationSettings:
    """Load and cache settings from the environment."""
    global _settings
    if _settings is None:
        _settings = IntegrationSettings.from_env()
    return _settings


def reset_settings_cache() -> None:
    """Clear cached settings (for testing)."""
    global _settings
    _settings = None
