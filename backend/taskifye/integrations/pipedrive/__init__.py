"""Pipedrive CRM integration."""

from taskifye.integrations.pipedrive.client import (
    FIELD_ENDPOINTS,
    PipedriveAPIError,
    PipedriveClient,
)
from taskifye.integrations.pipedrive.field_discovery import PipedriveFieldDiscovery
from taskifye.integrations.pipedrive.provisioning import (
    CUSTOM_FIELDS,
    CustomFieldDefinition,
    ProvisioningResult,
    provision_custom_fields,
)

__all__ = [
    "FIELD_ENDPOINTS",
    "PipedriveAPIError",
    "PipedriveClient",
    "PipedriveFieldDiscovery",
    "CUSTOM_FIELDS",
    "CustomFieldDefinition",
    "ProvisioningResult",
    "provision_custom_fields",
]
