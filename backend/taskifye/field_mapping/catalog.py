"""
Semantic custom-field catalog.

The application's own stable names for the CRM custom fields it knows about,
per entity type. Provider field keys are discovered per tenant and matched
against these names; anything not listed here is a first-class field and is
never rewritten.
"""

import re
from typing import Dict, FrozenSet

DEAL = "deal"
PERSON = "person"
ORGANIZATION = "organization"

ENTITY_TYPES = (DEAL, PERSON, ORGANIZATION)

_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")


def normalize_field_name(name: str) -> str:
    """
    Normalize a display name or semantic name.

    Lower-cases, collapses each run of non-alphanumerics to a single
    underscore and strips leading/trailing underscores:
    "Time Spent (hours)" -> "time_spent_hours".
    """
    return _NON_ALNUM_RUN.sub("_", (name or "").lower()).strip("_")


SEMANTIC_FIELDS: Dict[str, FrozenSet[str]] = {
    DEAL: frozenset({
        "service_type",
        "priority",
        "job_type",
        "service_address",
        "scheduled_time",
        "technician_notes",
        "materials_used",
        "time_spent_hours",
        "before_photos_url",
        "after_photos_url",
        "customer_signature_url",
        "invoice_number",
        "invoice_status",
    }),
    PERSON: frozenset({
        "customer_type",
        "preferred_contact_method",
        "equipment_details",
        "service_agreement",
        "last_service_date",
    }),
    ORGANIZATION: frozenset({
        "customer_type",
        "service_agreement",
    }),
}


def semantic_fields_for(entity_type: str) -> FrozenSet[str]:
    """Known semantic names for an entity type (empty for unknown types)."""
    return SEMANTIC_FIELDS.get(entity_type, frozenset())


def is_semantic_field(entity_type: str, key: str) -> bool:
    return key in semantic_fields_for(entity_type)
