"""
Tests for environment-driven settings.
"""

import pytest

from taskifye.config.settings import (
    DEFAULT_CREDENTIAL_CACHE_TTL_SECONDS,
    DEFAULT_FIELD_MAPPING_MAX_AGE_SECONDS,
    DEFAULT_INTEGRATION_TIMEOUT_SECONDS,
    IntegrationSettings,
    get_settings,
    normalize_database_url,
    reset_settings_cache,
)

ENV_VARS = (
    "ENCRYPTION_KEY",
    "DATABASE_URL",
    "REDIS_URL",
    "CREDENTIAL_CACHE_TTL_SECONDS",
    "FIELD_MAPPING_MAX_AGE_SECONDS",
    "INTEGRATION_TIMEOUT_SECONDS",
    "PIPEDRIVE_API_BASE_URL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestFromEnv:

    def test_defaults(self, clean_env):
        settings = IntegrationSettings.from_env()

        assert settings.encryption_key is None
        assert settings.encryption_configured is False
        assert settings.credential_cache_ttl_seconds == DEFAULT_CREDENTIAL_CACHE_TTL_SECONDS == 300
        assert settings.field_mapping_max_age_seconds == DEFAULT_FIELD_MAPPING_MAX_AGE_SECONDS == 86400
        assert settings.integration_timeout_seconds == DEFAULT_INTEGRATION_TIMEOUT_SECONDS

    def test_reads_environment(self, clean_env):
        clean_env.setenv("ENCRYPTION_KEY", "k" * 32)
        clean_env.setenv("CREDENTIAL_CACHE_TTL_SECONDS", "60")
        clean_env.setenv("INTEGRATION_TIMEOUT_SECONDS", "2.5")
        clean_env.setenv("PIPEDRIVE_API_BASE_URL", "https://example.pipedrive.com/v1/")

        settings = IntegrationSettings.from_env()

        assert settings.encryption_configured is True
        assert settings.credential_cache_ttl_seconds == 60
        assert settings.integration_timeout_seconds == 2.5
        assert settings.pipedrive_api_base_url == "https://example.pipedrive.com/v1"

    def test_invalid_numbers_fall_back(self, clean_env):
        clean_env.setenv("CREDENTIAL_CACHE_TTL_SECONDS", "five minutes")
        clean_env.setenv("INTEGRATION_TIMEOUT_SECONDS", "soon")

        settings = IntegrationSettings.from_env()

        assert settings.credential_cache_ttl_seconds == DEFAULT_CREDENTIAL_CACHE_TTL_SECONDS
        assert settings.integration_timeout_seconds == DEFAULT_INTEGRATION_TIMEOUT_SECONDS

    def test_encryption_key_not_in_repr(self, clean_env):
        clean_env.setenv("ENCRYPTION_KEY", "super-secret-master-key")

        assert "super-secret-master-key" not in repr(IntegrationSettings.from_env())


class TestDatabaseUrl:

    def test_postgres_scheme_rewritten(self):
        assert normalize_database_url("postgres://u:p@h/db") == "postgresql://u:p@h/db"

    def test_other_urls_untouched(self):
        assert normalize_database_url("sqlite:///./x.db") == "sqlite:///./x.db"

    def test_from_env_normalizes(self, clean_env):
        clean_env.setenv("DATABASE_URL", "postgres://u:p@h/db")

        assert IntegrationSettings.from_env().database_url == "postgresql://u:p@h/db"


class TestCaching:

    def test_get_settings_is_cached_until_reset(self, clean_env):
        first = get_settings()
        assert get_settings() is first

        reset_settings_cache()

        assert get_settings() is not first
