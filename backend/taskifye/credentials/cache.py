"""
In-process cache of decrypted integration secrets.

Answers "don't decrypt the same secret twice in five minutes".

Behaviour:
- Key is "{tenant_id}:{provider}"; value is (plaintext, inserted_at)
- Entries older than the TTL are treated as absent and refetched (lazy
  eviction at read time, no background thread)
- Missing secrets are NOT cached, so a secret saved moments later is picked
  up on the next read
- invalidate(tenant_id) drops every provider for that tenant immediately

SECURITY:
- Only plaintext is cached, only in memory; ciphertext never enters the map
- Secrets are never logged
- Store outages and decryption failures degrade to "absent", never raise

Usage:
    cache = CredentialCache(store=SqlCredentialStore(factory), cipher=get_secret_cipher())

    api_key = await cache.get(tenant_id, "pipedrive")
    if api_key is None:
        ...  # surface "integration not configured"

    # After the tenant edits settings
    cache.invalidate(tenant_id)
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from taskifye.credentials.encryption import SecretCipher
from taskifye.credentials.store import CredentialStore
from taskifye.config.settings import (
    DEFAULT_CREDENTIAL_CACHE_TTL_SECONDS,
    DEFAULT_INTEGRATION_TIMEOUT_SECONDS,
)
from taskifye.utils.encryption import DecryptionError

logger = logging.getLogger(__name__)

KEY_SEPARATOR = ":"


class LookupStatus(str, Enum):
    """Outcome of a credential lookup."""
    OK = "ok"
    NOT_CONFIGURED = "not_configured"        # Nothing stored
    DECRYPTION_FAILED = "decryption_failed"  # Stored blob unusable
    UNAVAILABLE = "unavailable"              # Store error or timeout


@dataclass(frozen=True)
class CredentialLookup:
    """Secret (if any) plus why it is missing."""

    status: LookupStatus
    secret: Optional[str] = None
    from_cache: bool = False

    @property
    def found(self) -> bool:
        return self.secret is not None

    def __repr__(self) -> str:
        # SECURITY: never render the secret
        return (
            f"CredentialLookup(status={self.status.value}, "
            f"found={self.found}, from_cache={self.from_cache})"
        )


def make_cache_key(tenant_id: str, provider: str) -> str:
    return f"{tenant_id}{KEY_SEPARATOR}{provider}"


class CredentialCache:
    """
    Time-bounded (tenant, provider) -> plaintext secret cache.

    Dependencies are constructor-injected so tests can supply a fake store
    and clock. The lock guards only dictionary operations; it is never held
    across the store read, so one tenant's miss does not block another
    tenant's hit.
    """

    def __init__(
        self,
        store: CredentialStore,
        cipher: SecretCipher,
        ttl_seconds: float = DEFAULT_CREDENTIAL_CACHE_TTL_SECONDS,
        store_timeout_seconds: float = DEFAULT_INTEGRATION_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._cipher = cipher
        self._ttl = ttl_seconds
        self._store_timeout = store_timeout_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        # Bumped on invalidation so a read that started earlier cannot
        # repopulate the cache with the pre-invalidation value. Only tenants
        # with reads in flight have an entry.
        self._generations: Dict[str, int] = {}
        self._reads_in_flight: Dict[str, int] = {}
        self._epoch = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def get(self, tenant_id: str, provider: str) -> Optional[str]:
        """Return the plaintext secret, or None when no usable secret exists."""
        return (await self.lookup(tenant_id, provider)).secret

    async def lookup(self, tenant_id: str, provider: str) -> CredentialLookup:
        """
        Resolve a secret, reporting why it is absent.

        Never raises for store outages, timeouts or bad ciphertext.
        """
        cache_key = make_cache_key(tenant_id, provider)

        cached = self._get_fresh(cache_key)
        if cached is not None:
            return CredentialLookup(LookupStatus.OK, cached, from_cache=True)

        generation = self._begin_read(tenant_id)
        try:
            return await self._load(tenant_id, provider, cache_key, generation)
        finally:
            self._end_read(tenant_id)

    async def _load(
        self,
        tenant_id: str,
        provider: str,
        cache_key: str,
        generation: Tuple[int, int],
    ) -> CredentialLookup:
        try:
            blob = await asyncio.wait_for(
                self._store.get(tenant_id, provider),
                timeout=self._store_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Credential store read timed out",
                extra={
                    "tenant_id": tenant_id,
                    "provider": provider,
                    "timeout_seconds": self._store_timeout,
                }
            )
            return CredentialLookup(LookupStatus.UNAVAILABLE)
        except Exception as e:
            logger.warning(
                "Credential store read failed",
                extra={
                    "tenant_id": tenant_id,
                    "provider": provider,
                    "error_type": type(e).__name__,
                }
            )
            return CredentialLookup(LookupStatus.UNAVAILABLE)

        if not blob:
            logger.debug(
                "No credential stored",
                extra={"tenant_id": tenant_id, "provider": provider}
            )
            return CredentialLookup(LookupStatus.NOT_CONFIGURED)

        try:
            plaintext = self._cipher.decrypt_secret(blob)
        except DecryptionError as e:
            logger.error(
                "Stored credential could not be decrypted",
                extra={
                    "tenant_id": tenant_id,
                    "provider": provider,
                    "error_type": type(e).__name__,
                }
            )
            return CredentialLookup(LookupStatus.DECRYPTION_FAILED)

        with self._lock:
            if self._generation_unlocked(tenant_id) == generation:
                self._entries[cache_key] = (plaintext, self._clock())

        return CredentialLookup(LookupStatus.OK, plaintext)

    def invalidate(self, tenant_id: str) -> int:
        """
        Drop every cached secret for a tenant.

        Returns:
            Number of entries removed
        """
        prefix = f"{tenant_id}{KEY_SEPARATOR}"
        with self._lock:
            stale_keys = [k for k in self._entries if k.startswith(prefix)]
            for key in stale_keys:
                del self._entries[key]
            if tenant_id in self._reads_in_flight:
                self._generations[tenant_id] = self._generations.get(tenant_id, 0) + 1

        logger.info(
            "Credential cache invalidated",
            extra={"tenant_id": tenant_id, "entries_removed": len(stale_keys)}
        )
        return len(stale_keys)

    def invalidate_all(self) -> None:
        """Clear the whole cache (operational reset)."""
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            self._generations.clear()
            self._epoch += 1
        logger.info("Credential cache cleared", extra={"entries_removed": removed})

    def _begin_read(self, tenant_id: str) -> Tuple[int, int]:
        with self._lock:
            self._reads_in_flight[tenant_id] = self._reads_in_flight.get(tenant_id, 0) + 1
            return self._generation_unlocked(tenant_id)

    def _end_read(self, tenant_id: str) -> None:
        with self._lock:
            remaining = self._reads_in_flight.get(tenant_id, 0) - 1
            if remaining > 0:
                self._reads_in_flight[tenant_id] = remaining
            else:
                # No reader holds this tenant's generation any more
                self._reads_in_flight.pop(tenant_id, None)
                self._generations.pop(tenant_id, None)

    def _generation_unlocked(self, tenant_id: str) -> Tuple[int, int]:
        return self._epoch, self._generations.get(tenant_id, 0)

    def _get_fresh(self, cache_key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(cache_key)
            if entry is None:
                return None
            plaintext, inserted_at = entry
            if self._clock() - inserted_at < self._ttl:
                return plaintext
            # Expired: drop lazily so memory stays bounded by active pairs
            del self._entries[cache_key]
            return None
