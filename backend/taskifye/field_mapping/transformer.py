"""
Rewrites records between semantic names and provider field keys.

Outbound (to_provider_shape):
- known semantic keys are renamed to the tenant's provider key
- known semantic keys with no provider key are DROPPED; the provider rejects
  keys it does not recognise
- everything else (title, value, currency, ...) passes through untouched

Inbound (from_provider_shape):
- provider keys present in the mapping are renamed to their semantic name
- everything else passes through

Both directions are pure: inputs are never mutated.
"""

import logging
from typing import Any, Dict, Mapping

from taskifye.field_mapping.cache import FieldMappingCache
from taskifye.field_mapping.catalog import is_semantic_field

logger = logging.getLogger(__name__)


class DataTransformer:
    """Stateless view over one tenant's FieldMappingCache."""

    def __init__(self, mapping_cache: FieldMappingCache):
        self._mappings = mapping_cache

    @property
    def tenant_id(self) -> str:
        return self._mappings.tenant_id

    def to_provider_shape(
        self,
        entity_type: str,
        semantic_record: Mapping[str, Any],
    ) -> Dict[str, Any]:
        provider_record: Dict[str, Any] = {}
        for key, value in semantic_record.items():
            if not is_semantic_field(entity_type, key):
                provider_record[key] = value
                continue

            provider_key = self._mappings.resolve(entity_type, key)
            if provider_key is None:
                logger.debug(
                    "Dropping unmapped custom field",
                    extra={
                        "tenant_id": self.tenant_id,
                        "entity_type": entity_type,
                        "field_name": key,
                    },
                )
                continue
            provider_record[provider_key] = value
        return provider_record

    def from_provider_shape(
        self,
        entity_type: str,
        provider_record: Mapping[str, Any],
    ) -> Dict[str, Any]:
        reverse = self._mappings.provider_key_to_semantic(entity_type)
        return {reverse.get(key, key): value for key, value in provider_record.items()}
