"""
Field schema discovery contract.

A FieldSchemaDiscovery returns the provider's current custom-field schema for
one entity type of one tenant account. Implementations live next to their
provider client (see taskifye.integrations.pipedrive.field_discovery).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


class SchemaDiscoveryError(Exception):
    """Remote schema discovery failed or timed out."""

    def __init__(self, message: str, entity_type: Optional[str] = None):
        self.entity_type = entity_type
        super().__init__(message)


@dataclass(frozen=True)
class DiscoveredField:
    """One custom field as reported by the provider."""

    display_name: str
    provider_field_key: str
    field_type: str = ""


class FieldSchemaDiscovery(ABC):
    """Lists a tenant's provider-side fields for an entity type."""

    @abstractmethod
    async def list_fields(
        self,
        tenant_id: str,
        provider_auth: str,
        entity_type: str,
    ) -> List[DiscoveredField]:
        """
        Raises:
            SchemaDiscoveryError: On any remote failure or timeout
        """
