"""
Integration settings API.

Tenants store and remove provider secrets here. Every write is encrypted
before it reaches the store and is followed by a credential cache
invalidation, so the next integration call sees the new value.

SECURITY:
- Secrets are accepted inbound only; responses carry a fixed mask
- Masked values sent back by the UI are ignored, never stored
"""

import logging

from fastapi import APIRouter, Depends

from taskifye.api.dependencies.integrations import (
    get_credential_cache,
    get_credential_store,
    get_mapping_registry,
    get_secret_cipher,
    get_tenant_id,
)
from taskifye.api.schemas.integrations import (
    MASKED_SECRET,
    IntegrationSettingsResponse,
    IntegrationSettingsUpdate,
    IntegrationSettingsUpdateResponse,
    IntegrationStatus,
    is_masked,
)
from taskifye.credentials.redaction import AuditEventType, CredentialAuditLogger
from taskifye.models.api_credential import CredentialProvider
from taskifye.platform.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings/integrations", tags=["integrations"])


def _parse_provider(value: str) -> CredentialProvider:
    try:
        return CredentialProvider.parse(value)
    except ValueError:
        raise ValidationError(f"Unknown provider: {value}", {"provider": value})


async def _on_credentials_changed(tenant_id, changed, credential_cache, mapping_registry) -> None:
    removed = credential_cache.invalidate(tenant_id)
    if CredentialProvider.PIPEDRIVE.value in changed:
        # A different token may point at a different CRM account
        await mapping_registry.forget(tenant_id)
    CredentialAuditLogger(tenant_id).log(
        AuditEventType.CREDENTIAL_CACHE_INVALIDATED,
        metadata={"entries_removed": removed},
    )


@router.get("", response_model=IntegrationSettingsResponse)
async def get_integration_settings(
    tenant_id: str = Depends(get_tenant_id),
    store=Depends(get_credential_store),
):
    """Report which providers have a stored secret (values are masked)."""
    configured = set(await store.list_providers(tenant_id))
    return IntegrationSettingsResponse(
        integrations=[
            IntegrationStatus(
                provider=provider.value,
                configured=provider.value in configured,
                masked_value=MASKED_SECRET if provider.value in configured else None,
            )
            for provider in CredentialProvider
        ]
    )


@router.put("", response_model=IntegrationSettingsUpdateResponse)
async def update_integration_settings(
    body: IntegrationSettingsUpdate,
    tenant_id: str = Depends(get_tenant_id),
    store=Depends(get_credential_store),
    cipher=Depends(get_secret_cipher),
    credential_cache=Depends(get_credential_cache),
    mapping_registry=Depends(get_mapping_registry),
):
    """
    Save or remove provider secrets.

    Masked values are skipped, empty values delete the stored secret and
    anything else is encrypted and saved.
    """
    parsed = [(_parse_provider(name), value) for name, value in body.credentials.items()]
    audit = CredentialAuditLogger(tenant_id)
    result = IntegrationSettingsUpdateResponse()

    try:
        for provider, value in parsed:
            if is_masked(value):
                result.unchanged.append(provider.value)
                continue

            if not value:
                if await store.delete(tenant_id, provider.value):
                    audit.log(AuditEventType.CREDENTIAL_DELETED, provider=provider.value)
                result.deleted.append(provider.value)
                continue

            await store.put(tenant_id, provider.value, cipher.encrypt_secret(value))
            audit.log(AuditEventType.CREDENTIAL_STORED, provider=provider.value)
            result.updated.append(provider.value)
    finally:
        # Writes that committed before a failure must still be visible
        changed = set(result.updated) | set(result.deleted)
        if changed:
            await _on_credentials_changed(tenant_id, changed, credential_cache, mapping_registry)

    logger.info(
        "Integration settings updated",
        extra={
            "tenant_id": tenant_id,
            "updated": result.updated,
            "deleted": result.deleted,
        },
    )
    return result


@router.delete("/{provider}")
async def delete_integration(
    provider: str,
    tenant_id: str = Depends(get_tenant_id),
    store=Depends(get_credential_store),
    credential_cache=Depends(get_credential_cache),
    mapping_registry=Depends(get_mapping_registry),
):
    """Remove one provider secret."""
    provider_enum = _parse_provider(provider)
    if not await store.delete(tenant_id, provider_enum.value):
        raise NotFoundError("Integration credential", provider_enum.value)

    CredentialAuditLogger(tenant_id).log(
        AuditEventType.CREDENTIAL_DELETED, provider=provider_enum.value
    )
    await _on_credentials_changed(tenant_id, {provider_enum.value}, credential_cache, mapping_registry)
    return {"provider": provider_enum.value, "deleted": True}
