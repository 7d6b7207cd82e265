"""
FieldSchemaDiscovery backed by the Pipedrive fields endpoints.
"""

import logging
from typing import Callable, List, Optional

from taskifye.field_mapping.discovery import (
    DiscoveredField,
    FieldSchemaDiscovery,
    SchemaDiscoveryError,
)
from taskifye.integrations.pipedrive.client import PipedriveAPIError, PipedriveClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], PipedriveClient]


class PipedriveFieldDiscovery(FieldSchemaDiscovery):
    """Lists deal/person/organization fields from Pipedrive."""

    def __init__(self, client_factory: Optional[ClientFactory] = None):
        self._client_factory = client_factory or PipedriveClient

    async def list_fields(
        self,
        tenant_id: str,
        provider_auth: str,
        entity_type: str,
    ) -> List[DiscoveredField]:
        try:
            async with self._client_factory(provider_auth) as client:
                raw_fields = await client.list_fields(entity_type)
        except (PipedriveAPIError, ValueError) as e:
            logger.warning(
                "Pipedrive field discovery failed",
                extra={
                    "tenant_id": tenant_id,
                    "entity_type": entity_type,
                    "error_type": type(e).__name__,
                },
            )
            raise SchemaDiscoveryError(str(e), entity_type=entity_type) from e

        fields = [
            DiscoveredField(
                display_name=str(raw.get("name") or ""),
                provider_field_key=str(raw.get("key") or ""),
                field_type=str(raw.get("field_type") or ""),
            )
            for raw in raw_fields
            if isinstance(raw, dict) and raw.get("key")
        ]
        logger.debug(
            "Pipedrive fields discovered",
            extra={
                "tenant_id": tenant_id,
                "entity_type": entity_type,
                "field_count": len(fields),
            },
        )
        return fields
