"""
Schemas for the integration settings, field setup and CRM record APIs.

Secrets only ever travel inbound: responses report whether a provider is
configured and carry a fixed mask, never the stored value.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Display placeholder for a stored secret; values containing it are never saved
MASK_CHAR = "•"
MASKED_SECRET = MASK_CHAR * 32


def is_masked(value: Optional[str]) -> bool:
    return value is not None and MASK_CHAR in value


# =============================================================================
# Integration settings
# =============================================================================


class IntegrationStatus(BaseModel):
    """Whether a provider secret is stored for the tenant."""

    provider: str
    configured: bool
    masked_value: Optional[str] = None


class IntegrationSettingsResponse(BaseModel):
    integrations: List[IntegrationStatus]


class IntegrationSettingsUpdate(BaseModel):
    """
    Provider -> new secret.

    A masked value leaves the stored secret untouched; an empty string or
    null removes it.
    """

    credentials: Dict[str, Optional[str]] = Field(default_factory=dict)


class IntegrationSettingsUpdateResponse(BaseModel):
    updated: List[str] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)
    unchanged: List[str] = Field(default_factory=list)


# =============================================================================
# Custom field setup
# =============================================================================


class ProvisionedFieldSchema(BaseModel):
    entity_type: str
    name: str
    key: str
    field_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class ProvisionFieldsResponse(BaseModel):
    success: bool
    created: List[ProvisionedFieldSchema]
    existing: List[ProvisionedFieldSchema]
    errors: List[str]
    field_mappings: Dict[str, Dict[str, str]]


class FieldMappingResponse(BaseModel):
    initialized: bool
    discovered_at: Optional[float] = None
    field_mappings: Dict[str, Dict[str, str]]


# =============================================================================
# CRM records
# =============================================================================


class DealCreateRequest(BaseModel):
    """
    Deal in semantic shape.

    First-class Pipedrive fields (title, value, currency, person_id, ...) and
    semantic custom fields (service_type, priority, ...) share one flat
    object; unknown keys are passed through.
    """

    title: str = Field(..., min_length=1)
    value: Optional[float] = None
    currency: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class PersonCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="allow")


class RecordResponse(BaseModel):
    provider: str
    data: Dict[str, object]
