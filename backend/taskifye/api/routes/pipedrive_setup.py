"""
Pipedrive custom field setup API.

POST provisions the application's custom fields in the tenant's Pipedrive
account and refreshes the tenant's field mapping. GET reports the mapping
currently in use.
"""

import logging

from fastapi import APIRouter, Depends

from taskifye.api.dependencies.integrations import (
    get_credential_cache,
    get_mapping_registry,
    get_pipedrive_client_factory,
    get_tenant_id,
)
from taskifye.api.schemas.integrations import (
    FieldMappingResponse,
    ProvisionedFieldSchema,
    ProvisionFieldsResponse,
)
from taskifye.credentials.cache import CredentialCache, LookupStatus
from taskifye.integrations.pipedrive.provisioning import provision_custom_fields
from taskifye.models.api_credential import CredentialProvider
from taskifye.platform.errors import CredentialUnavailableError, IntegrationUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/setup/pipedrive-fields", tags=["pipedrive"])

PIPEDRIVE = CredentialProvider.PIPEDRIVE.value


async def _require_api_token(credential_cache: CredentialCache, tenant_id: str) -> str:
    lookup = await credential_cache.lookup(tenant_id, PIPEDRIVE)
    if lookup.found:
        return lookup.secret
    if lookup.status == LookupStatus.UNAVAILABLE:
        raise IntegrationUnavailableError(PIPEDRIVE)
    raise CredentialUnavailableError(PIPEDRIVE, reason=lookup.status.value)


@router.post("", response_model=ProvisionFieldsResponse)
async def provision_pipedrive_fields(
    tenant_id: str = Depends(get_tenant_id),
    credential_cache=Depends(get_credential_cache),
    mapping_registry=Depends(get_mapping_registry),
    client_factory=Depends(get_pipedrive_client_factory),
):
    """Create missing custom fields, then rediscover the tenant's mapping."""
    api_token = await _require_api_token(credential_cache, tenant_id)

    async with client_factory(api_token) as client:
        result = await provision_custom_fields(client)

    mappings = mapping_registry.for_tenant(tenant_id)
    await mappings.refresh(tenant_id, api_token)

    logger.info(
        "Pipedrive fields provisioned",
        extra={
            "tenant_id": tenant_id,
            "created": len(result.created),
            "existing": len(result.existing),
            "errors": len(result.errors),
        },
    )
    return ProvisionFieldsResponse(
        success=result.ok,
        created=[ProvisionedFieldSchema.model_validate(f) for f in result.created],
        existing=[ProvisionedFieldSchema.model_validate(f) for f in result.existing],
        errors=result.errors,
        field_mappings=mappings.snapshot(),
    )


@router.get("", response_model=FieldMappingResponse)
async def get_pipedrive_field_mappings(
    tenant_id: str = Depends(get_tenant_id),
    credential_cache=Depends(get_credential_cache),
    mapping_registry=Depends(get_mapping_registry),
):
    """Current semantic name -> Pipedrive key table for the tenant."""
    api_token = await _require_api_token(credential_cache, tenant_id)

    mappings = mapping_registry.for_tenant(tenant_id)
    await mappings.initialize(tenant_id, api_token)
    return FieldMappingResponse(
        initialized=mappings.is_initialized,
        discovered_at=mappings.discovered_at,
        field_mappings=mappings.snapshot(),
    )
