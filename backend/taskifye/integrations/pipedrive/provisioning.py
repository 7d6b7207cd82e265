"""
Creates the application's custom fields in a tenant's Pipedrive account.

Each definition is created on the provider; when creation fails (typically
because a field with that name already exists) the existing field is looked
up by name instead. Provisioning never raises for per-field failures: they
are collected in ProvisioningResult.errors.

After provisioning, callers refresh the tenant's FieldMappingCache so the new
field keys are picked up.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from taskifye.field_mapping.catalog import DEAL, PERSON, normalize_field_name
from taskifye.integrations.pipedrive.client import PipedriveAPIError, PipedriveClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomFieldDefinition:
    """Custom field the application expects to exist."""
    name: str
    field_type: str
    options: Tuple[str, ...] = ()

    @property
    def semantic_name(self) -> str:
        return normalize_field_name(self.name)


DEAL_CUSTOM_FIELDS: Tuple[CustomFieldDefinition, ...] = (
    CustomFieldDefinition("Service Type", "enum", (
        "HVAC Repair",
        "HVAC Maintenance",
        "AC Installation",
        "Furnace Repair",
        "Plumbing",
        "Electrical",
        "Emergency Service",
        "Other",
    )),
    CustomFieldDefinition("Priority", "enum", ("Low", "Medium", "High", "Urgent")),
    CustomFieldDefinition("Job Type", "enum", (
        "Service Call", "Maintenance", "Installation", "Emergency", "Quote Only",
    )),
    CustomFieldDefinition("Service Address", "address"),
    CustomFieldDefinition("Scheduled Time", "time"),
    CustomFieldDefinition("Technician Notes", "text"),
    CustomFieldDefinition("Materials Used", "text"),
    CustomFieldDefinition("Time Spent (hours)", "double"),
    CustomFieldDefinition("Before Photos URL", "text"),
    CustomFieldDefinition("After Photos URL", "text"),
    CustomFieldDefinition("Customer Signature URL", "text"),
    CustomFieldDefinition("Invoice Number", "text"),
    CustomFieldDefinition("Invoice Status", "enum", ("Not Created", "Sent", "Paid", "Overdue")),
)

PERSON_CUSTOM_FIELDS: Tuple[CustomFieldDefinition, ...] = (
    CustomFieldDefinition("Customer Type", "enum", ("Residential", "Commercial", "Industrial")),
    CustomFieldDefinition("Preferred Contact Method", "enum", ("Phone", "Email", "SMS")),
    CustomFieldDefinition("Equipment Details", "text"),
    CustomFieldDefinition("Service Agreement", "enum", ("None", "Basic", "Premium", "Commercial")),
    CustomFieldDefinition("Last Service Date", "date"),
)

CUSTOM_FIELDS: Dict[str, Tuple[CustomFieldDefinition, ...]] = {
    DEAL: DEAL_CUSTOM_FIELDS,
    PERSON: PERSON_CUSTOM_FIELDS,
}


@dataclass
class ProvisionedField:
    entity_type: str
    name: str
    key: str
    field_id: Optional[int] = None


@dataclass
class ProvisioningResult:
    """Outcome of a provisioning run."""
    created: List[ProvisionedField] = field(default_factory=list)
    existing: List[ProvisionedField] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def field_mappings(self) -> Dict[str, Dict[str, str]]:
        """entity_type -> {semantic_name: provider key} for every provisioned field."""
        mappings: Dict[str, Dict[str, str]] = {}
        for f in self.created + self.existing:
            mappings.setdefault(f.entity_type, {})[normalize_field_name(f.name)] = f.key
        return mappings


def _find_by_name(fields: List[Dict], name: str) -> Optional[Dict]:
    wanted = normalize_field_name(name)
    for raw in fields:
        if normalize_field_name(str(raw.get("name") or "")) == wanted and raw.get("key"):
            return raw
    return None


async def provision_custom_fields(
    client: PipedriveClient,
    definitions: Optional[Dict[str, Tuple[CustomFieldDefinition, ...]]] = None,
) -> ProvisioningResult:
    """
    Ensure every custom field definition exists in the Pipedrive account.

    Args:
        client: Client bound to the tenant's API token
        definitions: entity_type -> field definitions (defaults to CUSTOM_FIELDS)

    Returns:
        ProvisioningResult with created, already-existing and failed fields
    """
    result = ProvisioningResult()

    for entity_type, entity_definitions in (definitions or CUSTOM_FIELDS).items():
        existing_fields: Optional[List[Dict]] = None

        for definition in entity_definitions:
            try:
                created = await client.create_field(
                    entity_type,
                    definition.name,
                    definition.field_type,
                    definition.options,
                )
                result.created.append(ProvisionedField(
                    entity_type=entity_type,
                    name=definition.name,
                    key=created["key"],
                    field_id=created.get("id"),
                ))
                continue
            except (PipedriveAPIError, KeyError, TypeError) as e:
                logger.info(
                    "Custom field creation failed, looking for existing field",
                    extra={
                        "entity_type": entity_type,
                        "field_name": definition.name,
                        "error_type": type(e).__name__,
                    },
                )

            try:
                if existing_fields is None:
                    existing_fields = await client.list_fields(entity_type)
            except PipedriveAPIError as e:
                result.errors.append(
                    f"Error creating {entity_type} field {definition.name}: {e}"
                )
                continue

            match = _find_by_name(existing_fields, definition.name)
            if match is None:
                result.errors.append(f"Failed to create {entity_type} field: {definition.name}")
                continue
            result.existing.append(ProvisionedField(
                entity_type=entity_type,
                name=definition.name,
                key=match["key"],
                field_id=match.get("id"),
            ))

    logger.info(
        "Custom field provisioning finished",
        extra={
            "created": len(result.created),
            "existing": len(result.existing),
            "errors": len(result.errors),
        },
    )
    return result
