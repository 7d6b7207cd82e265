"""
Per-tenant cache of semantic field name -> provider field key.

Answers "don't re-discover field IDs on every call".

Lifecycle:
- initialize(): load the persisted mapping if younger than the freshness
  window (24 h), otherwise discover every entity type, persist, and swap in.
  Once the in-memory table is itself older than the window, the next
  initialize() goes through the same load-or-discover path again
- resolve(): pure in-memory lookup, never performs I/O
- refresh(): forced rediscovery after fields were (re)provisioned

Staleness is checked lazily at initialize() time; nothing refreshes in the
background. A mapping refreshed by another process (the provisioning job) is
picked up from the store at that point.

Discovery failures never propagate: the cache falls back to the last
persisted mapping (even if stale), or to an empty table. The cache then stays
uninitialized, and initialize() retries discovery once DISCOVERY_RETRY_SECONDS
have passed.

Mappings are only valid for the tenant they were discovered against, so each
tenant gets its own FieldMappingCache (see FieldMappingRegistry).
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from taskifye.config.settings import (
    DEFAULT_FIELD_MAPPING_MAX_AGE_SECONDS,
    DEFAULT_INTEGRATION_TIMEOUT_SECONDS,
)
from taskifye.field_mapping.catalog import (
    ENTITY_TYPES,
    normalize_field_name,
    semantic_fields_for,
)
from taskifye.field_mapping.discovery import (
    DiscoveredField,
    FieldSchemaDiscovery,
    SchemaDiscoveryError,
)
from taskifye.field_mapping.persistence import PersistedMapping, RedisMappingStore
from taskifye.platform.errors import TenantIsolationError

logger = logging.getLogger(__name__)

_EMPTY: Mapping[str, str] = MappingProxyType({})

# Minimum gap between discovery attempts after a failure
DISCOVERY_RETRY_SECONDS = 60


@dataclass(frozen=True)
class MappingTable:
    """
    Immutable forward and reverse lookup tables.

    Readers always see one whole table: updates build a new instance and
    replace the reference in a single assignment.
    """

    forward: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    reverse: Mapping[str, Mapping[str, str]] = field(default_factory=dict)

    @classmethod
    def build(cls, mappings: Mapping[str, Mapping[str, str]]) -> "MappingTable":
        forward = {}
        reverse = {}
        for entity_type, table in mappings.items():
            forward[entity_type] = MappingProxyType(dict(table))
            reverse[entity_type] = MappingProxyType(
                {provider_key: semantic for semantic, provider_key in table.items()}
            )
        return cls(MappingProxyType(forward), MappingProxyType(reverse))

    def as_dict(self) -> Dict[str, Dict[str, str]]:
        return {entity: dict(table) for entity, table in self.forward.items()}


EMPTY_TABLE = MappingTable.build({})


def match_semantic_fields(
    entity_type: str,
    discovered: Iterable[DiscoveredField],
) -> Dict[str, str]:
    """
    Match discovered fields against the known semantic names.

    The first discovered field whose normalized display name equals a
    semantic name wins. Names with no match are simply left out.
    """
    wanted = semantic_fields_for(entity_type)
    matched: Dict[str, str] = {}
    for discovered_field in discovered:
        name = normalize_field_name(discovered_field.display_name)
        if name in wanted and name not in matched and discovered_field.provider_field_key:
            matched[name] = discovered_field.provider_field_key
    return matched


class FieldMappingCache:
    """Durable-plus-in-memory field mapping for one tenant."""

    def __init__(
        self,
        tenant_id: str,
        discovery: FieldSchemaDiscovery,
        store: RedisMappingStore,
        max_age_seconds: float = DEFAULT_FIELD_MAPPING_MAX_AGE_SECONDS,
        discovery_timeout_seconds: float = DEFAULT_INTEGRATION_TIMEOUT_SECONDS,
        entity_types: Iterable[str] = ENTITY_TYPES,
        clock: Callable[[], float] = time.time,
    ):
        if not tenant_id:
            raise ValueError("tenant_id is required")
        self.tenant_id = tenant_id
        self._discovery = discovery
        self._store = store
        self._max_age = max_age_seconds
        self._discovery_timeout = discovery_timeout_seconds
        self._entity_types = tuple(entity_types)
        self._clock = clock
        self._table: MappingTable = EMPTY_TABLE
        self._discovered_at: Optional[float] = None
        self._initialized = False
        self._last_failure_at: Optional[float] = None
        self._retired = False
        self._init_lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_fresh(self) -> bool:
        """Initialized and younger than the freshness window."""
        if not self._initialized or self._discovered_at is None:
            return False
        return self._clock() - self._discovered_at < self._max_age

    @property
    def is_retired(self) -> bool:
        return self._retired

    def retire(self) -> None:
        """
        Stop persisting results from this instance.

        Called when the tenant's provider account may have changed: a
        discovery still running against the old account must not write its
        keys to the store.
        """
        self._retired = True

    @property
    def discovered_at(self) -> Optional[float]:
        return self._discovered_at

    def snapshot(self) -> Dict[str, Dict[str, str]]:
        """Copy of the current semantic -> provider key tables."""
        return self._table.as_dict()

    # ------------------------------------------------------------------
    # Lookups (no I/O)
    # ------------------------------------------------------------------

    def resolve(self, entity_type: str, semantic_name: str) -> Optional[str]:
        """Provider field key for a semantic name, or None when unmapped."""
        table = self._table.forward.get(entity_type, _EMPTY)
        return table.get(normalize_field_name(semantic_name))

    def provider_key_to_semantic(self, entity_type: str) -> Mapping[str, str]:
        """Reverse table (provider key -> semantic name) for an entity type."""
        return self._table.reverse.get(entity_type, _EMPTY)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def initialize(self, tenant_id: str, provider_auth: str) -> None:
        """
        Make the mapping usable, discovering only when nothing fresh exists.

        Returns immediately while the in-memory mapping is fresh.
        """
        self._check_tenant(tenant_id)
        if self.is_fresh or self._retry_pending():
            return

        async with self._init_lock:
            if self.is_fresh or self._retry_pending():
                return

            persisted = await asyncio.to_thread(self._store.load, self.tenant_id)
            if persisted is not None and persisted.age_seconds(self._clock()) < self._max_age:
                self._install(persisted.mappings, persisted.discovered_at)
                logger.info(
                    "Field mapping loaded from store",
                    extra={
                        "tenant_id": self.tenant_id,
                        "age_seconds": int(persisted.age_seconds(self._clock())),
                    },
                )
                return

            if persisted is not None:
                logger.info(
                    "Persisted field mapping is stale, rediscovering",
                    extra={"tenant_id": self.tenant_id},
                )
            await self._discover_and_install(provider_auth, fallback=persisted)

    async def refresh(self, tenant_id: str, provider_auth: str) -> None:
        """Rediscover regardless of staleness and overwrite the persisted mapping."""
        self._check_tenant(tenant_id)
        async with self._init_lock:
            fallback = await asyncio.to_thread(self._store.load, self.tenant_id)
            await self._discover_and_install(provider_auth, fallback=fallback)

    async def _discover_and_install(
        self,
        provider_auth: str,
        fallback: Optional[PersistedMapping],
    ) -> None:
        try:
            mappings = await self._discover_all(provider_auth)
        except SchemaDiscoveryError as e:
            logger.warning(
                "Field schema discovery failed, using fallback mapping",
                extra={
                    "tenant_id": self.tenant_id,
                    "entity_type": e.entity_type,
                    "has_fallback": fallback is not None,
                },
            )
            if fallback is not None and not self._has_newer_than(fallback):
                self._swap(fallback.mappings, fallback.discovered_at)
            elif not self._initialized:
                self._swap({}, None)
            self._last_failure_at = self._clock()
            return

        discovered_at = self._clock()
        saved = False
        if not self._retired:
            saved = await asyncio.to_thread(
                self._store.save,
                PersistedMapping(
                    tenant_id=self.tenant_id,
                    discovered_at=discovered_at,
                    mappings=mappings,
                ),
            )
            if saved and self._retired:
                # Retired while the write was in flight
                await asyncio.to_thread(self._store.delete, self.tenant_id)
                saved = False
        # Still installed: the request that started this discovery uses it
        self._install(mappings, discovered_at)
        logger.info(
            "Field mapping discovered",
            extra={
                "tenant_id": self.tenant_id,
                "mapped_fields": sum(len(t) for t in mappings.values()),
                "persisted": saved,
            },
        )

    async def _discover_all(self, provider_auth: str) -> Dict[str, Dict[str, str]]:
        mappings: Dict[str, Dict[str, str]] = {}
        for entity_type in self._entity_types:
            try:
                fields: List[DiscoveredField] = await asyncio.wait_for(
                    self._discovery.list_fields(self.tenant_id, provider_auth, entity_type),
                    timeout=self._discovery_timeout,
                )
            except asyncio.TimeoutError as e:
                raise SchemaDiscoveryError(
                    "Field schema discovery timed out", entity_type=entity_type
                ) from e
            except SchemaDiscoveryError:
                raise
            except Exception as e:
                raise SchemaDiscoveryError(
                    f"Field schema discovery failed: {type(e).__name__}",
                    entity_type=entity_type,
                ) from e
            mappings[entity_type] = match_semantic_fields(entity_type, fields)
        return mappings

    def _install(
        self,
        mappings: Mapping[str, Mapping[str, str]],
        discovered_at: Optional[float],
    ) -> None:
        self._swap(mappings, discovered_at)
        self._initialized = True
        self._last_failure_at = None

    def _swap(
        self,
        mappings: Mapping[str, Mapping[str, str]],
        discovered_at: Optional[float],
    ) -> None:
        # Single reference swap: concurrent resolve() sees old or new, never partial
        self._table = MappingTable.build(mappings)
        self._discovered_at = discovered_at

    def _has_newer_than(self, doc: PersistedMapping) -> bool:
        return (
            self._initialized
            and self._discovered_at is not None
            and self._discovered_at > doc.discovered_at
        )

    def _retry_pending(self) -> bool:
        if self._last_failure_at is None:
            return False
        return self._clock() - self._last_failure_at < DISCOVERY_RETRY_SECONDS

    def _check_tenant(self, tenant_id: str) -> None:
        if tenant_id != self.tenant_id:
            logger.error(
                "Field mapping requested for a different tenant",
                extra={"tenant_id": self.tenant_id},
            )
            raise TenantIsolationError()


class FieldMappingRegistry:
    """Hands out one FieldMappingCache per tenant."""

    def __init__(
        self,
        discovery: FieldSchemaDiscovery,
        store: RedisMappingStore,
        max_age_seconds: float = DEFAULT_FIELD_MAPPING_MAX_AGE_SECONDS,
        discovery_timeout_seconds: float = DEFAULT_INTEGRATION_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._discovery = discovery
        self._store = store
        self._max_age = max_age_seconds
        self._discovery_timeout = discovery_timeout_seconds
        self._clock = clock
        self._caches: Dict[str, FieldMappingCache] = {}
        self._lock = threading.Lock()

    def for_tenant(self, tenant_id: str) -> FieldMappingCache:
        with self._lock:
            cache = self._caches.get(tenant_id)
            if cache is None:
                cache = FieldMappingCache(
                    tenant_id,
                    discovery=self._discovery,
                    store=self._store,
                    max_age_seconds=self._max_age,
                    discovery_timeout_seconds=self._discovery_timeout,
                    clock=self._clock,
                )
                self._caches[tenant_id] = cache
            return cache

    async def forget(self, tenant_id: str) -> None:
        """Drop the in-memory and persisted mapping (e.g. CRM account changed)."""
        with self._lock:
            cache = self._caches.pop(tenant_id, None)
        if cache is not None:
            cache.retire()
        await asyncio.to_thread(self._store.delete, tenant_id)
