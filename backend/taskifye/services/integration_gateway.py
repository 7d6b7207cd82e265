"""
Integration gateway for tenant CRM calls.

Every outbound CRM request from the request layer goes through here:

1. Resolve the tenant's provider secret via CredentialCache
2. Make sure the tenant's field mapping is loaded (FieldMappingCache)
3. Rewrite the semantic payload into provider field keys (DataTransformer)
4. Call the provider, bounded by the integration timeout
5. Rewrite the response back into semantic names

The gateway never raises for expected failures: a missing secret becomes
status "not_configured" (as does a token the provider rejects with 401),
store/provider outages and malformed provider records become "unavailable".
Callers decide how to present each status.

SECURITY:
- tenant_id MUST come from the authenticated request, never the payload
- The provider secret is never logged or returned

Usage:
    gateway = IntegrationGateway(credential_cache, mapping_registry)
    result = await gateway.create_deal(tenant_id, {"title": "AC repair", "service_type": "HVAC Repair"})
    if result.status == IntegrationStatus.NOT_CONFIGURED:
        ...
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from taskifye.config.settings import DEFAULT_INTEGRATION_TIMEOUT_SECONDS
from taskifye.credentials.cache import CredentialCache, LookupStatus
from taskifye.field_mapping.cache import FieldMappingRegistry
from taskifye.field_mapping.catalog import DEAL, PERSON
from taskifye.field_mapping.transformer import DataTransformer
from taskifye.integrations.pipedrive.client import PipedriveAPIError, PipedriveClient
from taskifye.models.api_credential import CredentialProvider

logger = logging.getLogger(__name__)

PIPEDRIVE = CredentialProvider.PIPEDRIVE.value


# =============================================================================
# Enums & Data Classes
# =============================================================================


class IntegrationStatus(str, enum.Enum):
    """Outcome of a gateway call."""

    OK = "ok"
    NOT_CONFIGURED = "not_configured"
    UNAVAILABLE = "unavailable"
    NOT_FOUND = "not_found"


@dataclass
class IntegrationResult:
    """Result of a gateway call; data is in semantic shape when status is ok."""

    status: IntegrationStatus
    provider: str = PIPEDRIVE
    data: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == IntegrationStatus.OK


# =============================================================================
# Gateway
# =============================================================================


class IntegrationGateway:
    """Credential lookup, field mapping and provider call for one CRM."""

    def __init__(
        self,
        credential_cache: CredentialCache,
        mapping_registry: FieldMappingRegistry,
        client_factory: Callable[[str], PipedriveClient] = PipedriveClient,
        timeout_seconds: float = DEFAULT_INTEGRATION_TIMEOUT_SECONDS,
    ):
        self._credentials = credential_cache
        self._mappings = mapping_registry
        self._client_factory = client_factory
        self._timeout = timeout_seconds

    async def create_deal(
        self,
        tenant_id: str,
        semantic_record: Mapping[str, Any],
    ) -> IntegrationResult:
        return await self._write(
            tenant_id, DEAL, semantic_record, lambda client, payload: client.create_deal(payload)
        )

    async def create_person(
        self,
        tenant_id: str,
        semantic_record: Mapping[str, Any],
    ) -> IntegrationResult:
        return await self._write(
            tenant_id, PERSON, semantic_record, lambda client, payload: client.create_person(payload)
        )

    async def get_deal(self, tenant_id: str, deal_id: int) -> IntegrationResult:
        api_token, failure = await self._resolve_secret(tenant_id)
        if failure is not None:
            return failure

        transformer = await self._transformer(tenant_id, api_token)
        return await self._call(
            tenant_id,
            DEAL,
            api_token,
            transformer,
            lambda client: client.get_deal(deal_id),
        )

    # =========================================================================
    # Steps
    # =========================================================================

    async def _write(
        self,
        tenant_id: str,
        entity_type: str,
        semantic_record: Mapping[str, Any],
        operation: Callable[[PipedriveClient, Dict[str, Any]], Awaitable[Dict[str, Any]]],
    ) -> IntegrationResult:
        api_token, failure = await self._resolve_secret(tenant_id)
        if failure is not None:
            return failure

        transformer = await self._transformer(tenant_id, api_token)
        payload = transformer.to_provider_shape(entity_type, semantic_record)
        return await self._call(
            tenant_id,
            entity_type,
            api_token,
            transformer,
            lambda client: operation(client, payload),
        )

    async def _resolve_secret(self, tenant_id: str):
        lookup = await self._credentials.lookup(tenant_id, PIPEDRIVE)
        if lookup.found:
            return lookup.secret, None

        if lookup.status == LookupStatus.UNAVAILABLE:
            status = IntegrationStatus.UNAVAILABLE
        else:
            # Nothing stored, or stored but unusable: the tenant must re-enter it
            status = IntegrationStatus.NOT_CONFIGURED

        logger.info(
            "Integration secret unavailable",
            extra={
                "tenant_id": tenant_id,
                "provider": PIPEDRIVE,
                "auth_status": lookup.status.value,
            },
        )
        return None, IntegrationResult(status=status, reason=lookup.status.value)

    async def _transformer(self, tenant_id: str, api_token: str) -> DataTransformer:
        mappings = self._mappings.for_tenant(tenant_id)
        # Discovery failures degrade to the last known (or empty) mapping
        await mappings.initialize(tenant_id, api_token)
        return DataTransformer(mappings)

    async def _call(
        self,
        tenant_id: str,
        entity_type: str,
        api_token: str,
        transformer: DataTransformer,
        operation: Callable[[PipedriveClient], Awaitable[Dict[str, Any]]],
    ) -> IntegrationResult:
        try:
            async with self._client_factory(api_token) as client:
                raw = await asyncio.wait_for(operation(client), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Provider call timed out",
                extra={
                    "tenant_id": tenant_id,
                    "provider": PIPEDRIVE,
                    "entity_type": entity_type,
                    "timeout_seconds": self._timeout,
                },
            )
            return IntegrationResult(status=IntegrationStatus.UNAVAILABLE, reason="timeout")
        except PipedriveAPIError as e:
            logger.warning(
                "Provider call failed",
                extra={
                    "tenant_id": tenant_id,
                    "provider": PIPEDRIVE,
                    "entity_type": entity_type,
                    "error_code": e.code,
                },
            )
            if e.is_not_found:
                return IntegrationResult(status=IntegrationStatus.NOT_FOUND, reason=e.code)
            if e.is_unauthorized:
                # Token revoked or rotated on the provider side: the tenant must re-enter it
                return IntegrationResult(status=IntegrationStatus.NOT_CONFIGURED, reason="unauthorized")
            return IntegrationResult(status=IntegrationStatus.UNAVAILABLE, reason=e.code)

        if raw is not None and not isinstance(raw, dict):
            logger.warning(
                "Provider returned an unexpected record shape",
                extra={
                    "tenant_id": tenant_id,
                    "provider": PIPEDRIVE,
                    "entity_type": entity_type,
                    "data_type": type(raw).__name__,
                },
            )
            return IntegrationResult(status=IntegrationStatus.UNAVAILABLE, reason="invalid_response")

        return IntegrationResult(
            status=IntegrationStatus.OK,
            data=transformer.from_provider_shape(entity_type, raw or {}),
        )
