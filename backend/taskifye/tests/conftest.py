"""
Shared fixtures for the integration layer tests.

Fakes are injected through constructors; nothing here talks to a real
database, Redis or Pipedrive.
"""

import pytest

from taskifye.config.settings import IntegrationSettings, reset_settings_cache
from taskifye.credentials.encryption import SecretCipher, reset_secret_cipher
from taskifye.credentials.store import InMemoryCredentialStore

MASTER_SECRET = "test-master-secret-for-credentials"


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """Dict-backed stand-in for the few redis-py calls the mapping store makes."""

    def __init__(self):
        self.data = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise ConnectionError("redis down")

    def get(self, key):
        self._check()
        return self.data.get(key)

    def set(self, key, value):
        self._check()
        self.data[key] = value
        return True

    def delete(self, *keys):
        self._check()
        return sum(1 for k in keys if self.data.pop(k, None) is not None)


@pytest.fixture(autouse=True)
def _reset_module_singletons():
    reset_settings_cache()
    reset_secret_cipher()
    yield
    reset_settings_cache()
    reset_secret_cipher()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cipher():
    return SecretCipher(MASTER_SECRET)


@pytest.fixture
def memory_store():
    return InMemoryCredentialStore()


@pytest.fixture
def settings():
    return IntegrationSettings(
        encryption_key=MASTER_SECRET,
        database_url="sqlite://",
        redis_url="redis://localhost:6379/15",
        integration_timeout_seconds=2.0,
        pipedrive_api_base_url="https://pipedrive.test/v1",
    )
