"""
Redis persistence for discovered field mappings.

Key schema:
- field_mappings:{tenant_id} -> JSON {tenant_id, discovered_at, mappings}

No Redis TTL is set: freshness is judged from discovered_at by the caller,
so a stale document stays available as a fallback when rediscovery fails.

All methods handle Redis failures gracefully: they log a warning and
return a safe default rather than raising.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "field_mappings:"


def _key(tenant_id: str) -> str:
    return f"{CACHE_KEY_PREFIX}{tenant_id}"


@dataclass
class PersistedMapping:
    """Mapping document as stored for one tenant."""

    tenant_id: str
    discovered_at: float
    mappings: Dict[str, Dict[str, str]] = field(default_factory=dict)

    def age_seconds(self, now: float) -> float:
        return now - self.discovered_at


def _serialize(doc: PersistedMapping) -> str:
    return json.dumps({
        "tenant_id": doc.tenant_id,
        "discovered_at": doc.discovered_at,
        "mappings": doc.mappings,
    })


def _deserialize(data: str) -> PersistedMapping:
    o = json.loads(data)
    mappings = o.get("mappings") or {}
    return PersistedMapping(
        tenant_id=o["tenant_id"],
        discovered_at=float(o["discovered_at"]),
        mappings={
            str(entity): {str(k): str(v) for k, v in (table or {}).items()}
            for entity, table in mappings.items()
        },
    )


def get_redis_client(redis_url: Optional[str] = None):
    """Lazy Redis client; returns None when Redis is unavailable."""
    try:
        import redis
        url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        return redis.from_url(url, decode_responses=True)
    except Exception as e:
        logger.warning("Redis unavailable: %s", e)
        return None


class RedisMappingStore:
    """Durable per-tenant store for FieldMappingCache documents."""

    def __init__(self, redis_client):
        self._redis = redis_client

    def load(self, tenant_id: str) -> Optional[PersistedMapping]:
        """Return the persisted document for the tenant, or None on miss/failure."""
        if self._redis is None:
            return None
        try:
            raw = self._redis.get(_key(tenant_id))
            if not raw:
                return None
            doc = _deserialize(raw)
        except Exception as e:
            logger.warning(
                "Field mapping load failed",
                extra={"tenant_id": tenant_id, "error_type": type(e).__name__},
            )
            return None

        if doc.tenant_id != tenant_id:
            # Never serve another tenant's mapping, whatever the key says
            logger.error(
                "Persisted field mapping tenant mismatch",
                extra={"tenant_id": tenant_id},
            )
            return None
        return doc

    def save(self, doc: PersistedMapping) -> bool:
        """Persist the document. Returns False if the write failed."""
        if self._redis is None:
            return False
        try:
            self._redis.set(_key(doc.tenant_id), _serialize(doc))
            return True
        except Exception as e:
            logger.warning(
                "Field mapping save failed",
                extra={"tenant_id": doc.tenant_id, "error_type": type(e).__name__},
            )
            return False

    def delete(self, tenant_id: str) -> None:
        """Forget the tenant's persisted mapping."""
        if self._redis is None:
            return
        try:
            self._redis.delete(_key(tenant_id))
        except Exception as e:
            logger.warning(
                "Field mapping delete failed",
                extra={"tenant_id": tenant_id, "error_type": type(e).__name__},
            )
