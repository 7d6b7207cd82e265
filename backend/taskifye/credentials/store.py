"""
Durable storage for encrypted per-tenant integration secrets.

SECURITY REQUIREMENTS:
- Only ciphertext blobs are stored; encryption happens before put()
- Every query is filtered by tenant_id AND provider
- Ciphertext is never logged

Usage:
    store = SqlCredentialStore(create_session_factory(settings.database_url))

    await store.put(tenant_id, "pipedrive", cipher.encrypt_secret(api_key))
    blob = await store.get(tenant_id, "pipedrive")
    await store.delete(tenant_id, "pipedrive")
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from taskifye.models.api_credential import ApiCredential, CredentialProvider

logger = logging.getLogger(__name__)


class CredentialStoreError(Exception):
    """Base exception for credential store errors."""
    pass


class CredentialStore(ABC):
    """Tenant-partitioned storage of ciphertext blobs keyed by provider."""

    @abstractmethod
    async def get(self, tenant_id: str, provider: str) -> Optional[str]:
        """Return the stored blob, or None when nothing is stored."""

    @abstractmethod
    async def put(self, tenant_id: str, provider: str, ciphertext: str) -> None:
        """Create or replace the blob for (tenant, provider)."""

    @abstractmethod
    async def delete(self, tenant_id: str, provider: str) -> bool:
        """Remove the blob. Returns True if a row was deleted."""

    @abstractmethod
    async def list_providers(self, tenant_id: str) -> List[str]:
        """Providers with a stored blob for the tenant (no values)."""


class SqlCredentialStore(CredentialStore):
    """
    CredentialStore backed by the api_credentials table.

    Session work is blocking, so each operation opens its own session in a
    worker thread; the event loop keeps serving other tenants meanwhile.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def get(self, tenant_id: str, provider: str) -> Optional[str]:
        provider_enum = CredentialProvider.parse(provider)
        return await asyncio.to_thread(self._get_sync, tenant_id, provider_enum)

    async def put(self, tenant_id: str, provider: str, ciphertext: str) -> None:
        if not tenant_id:
            raise ValueError("tenant_id is required")
        if not ciphertext:
            raise ValueError("ciphertext is required")
        provider_enum = CredentialProvider.parse(provider)
        await asyncio.to_thread(self._put_sync, tenant_id, provider_enum, ciphertext)

    async def delete(self, tenant_id: str, provider: str) -> bool:
        provider_enum = CredentialProvider.parse(provider)
        return await asyncio.to_thread(self._delete_sync, tenant_id, provider_enum)

    async def list_providers(self, tenant_id: str) -> List[str]:
        return await asyncio.to_thread(self._list_sync, tenant_id)

    # ------------------------------------------------------------------
    # Blocking helpers (run in a worker thread)
    # ------------------------------------------------------------------

    def _find(
        self,
        session: Session,
        tenant_id: str,
        provider: CredentialProvider,
    ) -> Optional[ApiCredential]:
        stmt = select(ApiCredential).where(
            ApiCredential.tenant_id == tenant_id,
            ApiCredential.provider == provider,
        )
        return session.execute(stmt).scalar_one_or_none()

    def _get_sync(self, tenant_id: str, provider: CredentialProvider) -> Optional[str]:
        with self._session_factory() as session:
            row = self._find(session, tenant_id, provider)
            return row.ciphertext if row else None

    def _put_sync(
        self,
        tenant_id: str,
        provider: CredentialProvider,
        ciphertext: str,
    ) -> None:
        with self._session_factory() as session:
            try:
                row = self._find(session, tenant_id, provider)
                if row is None:
                    session.add(ApiCredential(
                        tenant_id=tenant_id,
                        provider=provider,
                        ciphertext=ciphertext,
                    ))
                    action = "created"
                else:
                    row.ciphertext = ciphertext
                    action = "updated"
                session.commit()
            except Exception:
                session.rollback()
                raise

        logger.info(
            "Credential stored",
            extra={
                "tenant_id": tenant_id,
                "provider": provider.value,
                "action": action,
            }
        )

    def _delete_sync(self, tenant_id: str, provider: CredentialProvider) -> bool:
        with self._session_factory() as session:
            try:
                row = self._find(session, tenant_id, provider)
                if row is None:
                    return False
                session.delete(row)
                session.commit()
            except Exception:
                session.rollback()
                raise

        logger.info(
            "Credential deleted",
            extra={"tenant_id": tenant_id, "provider": provider.value}
        )
        return True

    def _list_sync(self, tenant_id: str) -> List[str]:
        with self._session_factory() as session:
            stmt = (
                select(ApiCredential.provider)
                .where(ApiCredential.tenant_id == tenant_id)
                .order_by(ApiCredential.provider)
            )
            return [p.value for p in session.execute(stmt).scalars().all()]


class InMemoryCredentialStore(CredentialStore):
    """Dict-backed CredentialStore for local development and tests."""

    def __init__(self, initial: Optional[Dict[tuple, str]] = None):
        self._rows: Dict[tuple, str] = dict(initial or {})
        self.read_count = 0

    async def get(self, tenant_id: str, provider: str) -> Optional[str]:
        self.read_count += 1
        return self._rows.get((tenant_id, CredentialProvider.parse(provider).value))

    async def put(self, tenant_id: str, provider: str, ciphertext: str) -> None:
        self._rows[(tenant_id, CredentialProvider.parse(provider).value)] = ciphertext

    async def delete(self, tenant_id: str, provider: str) -> bool:
        key = (tenant_id, CredentialProvider.parse(provider).value)
        return self._rows.pop(key, None) is not None

    async def list_providers(self, tenant_id: str) -> List[str]:
        return sorted(p for (t, p) in self._rows if t == tenant_id)
