"""
Pipedrive deals and persons API.

Requests and responses use semantic field names; the integration gateway
rewrites them to and from the tenant's Pipedrive custom field keys.
"""

import logging

from fastapi import APIRouter, Depends, status

from taskifye.api.dependencies.integrations import get_integration_gateway, get_tenant_id
from taskifye.api.schemas.integrations import (
    DealCreateRequest,
    PersonCreateRequest,
    RecordResponse,
)
from taskifye.platform.errors import (
    CredentialUnavailableError,
    IntegrationUnavailableError,
    NotFoundError,
)
from taskifye.services.integration_gateway import IntegrationResult, IntegrationStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pipedrive", tags=["pipedrive"])


def _to_response(result: IntegrationResult, resource: str, identifier=None) -> RecordResponse:
    if result.status == IntegrationStatus.OK:
        return RecordResponse(provider=result.provider, data=result.data)
    if result.status == IntegrationStatus.NOT_CONFIGURED:
        raise CredentialUnavailableError(result.provider, reason=result.reason or "not_configured")
    if result.status == IntegrationStatus.NOT_FOUND:
        raise NotFoundError(resource, str(identifier) if identifier is not None else None)
    raise IntegrationUnavailableError(result.provider)


@router.post("/deals", response_model=RecordResponse, status_code=status.HTTP_201_CREATED)
async def create_deal(
    body: DealCreateRequest,
    tenant_id: str = Depends(get_tenant_id),
    gateway=Depends(get_integration_gateway),
):
    """Create a deal (job) from a semantic record."""
    record = body.model_dump(exclude_none=True)
    result = await gateway.create_deal(tenant_id, record)
    return _to_response(result, "Deal")


@router.get("/deals/{deal_id}", response_model=RecordResponse)
async def get_deal(
    deal_id: int,
    tenant_id: str = Depends(get_tenant_id),
    gateway=Depends(get_integration_gateway),
):
    """Read a deal, with custom fields under their semantic names."""
    result = await gateway.get_deal(tenant_id, deal_id)
    return _to_response(result, "Deal", deal_id)


@router.post("/persons", response_model=RecordResponse, status_code=status.HTTP_201_CREATED)
async def create_person(
    body: PersonCreateRequest,
    tenant_id: str = Depends(get_tenant_id),
    gateway=Depends(get_integration_gateway),
):
    """Create a person (customer contact) from a semantic record."""
    result = await gateway.create_person(tenant_id, body.model_dump(exclude_none=True))
    return _to_response(result, "Person")
