"""
Field mapping between the application's semantic field names and each
tenant's provider-specific custom field keys.

Usage:
    registry = FieldMappingRegistry(discovery, RedisMappingStore(get_redis_client()))

    mappings = registry.for_tenant(tenant_id)
    await mappings.initialize(tenant_id, api_token)

    transformer = DataTransformer(mappings)
    payload = transformer.to_provider_shape("deal", {"title": "AC", "service_type": "HVAC Repair"})
"""

from taskifye.field_mapping.catalog import (
    DEAL,
    ENTITY_TYPES,
    ORGANIZATION,
    PERSON,
    SEMANTIC_FIELDS,
    normalize_field_name,
)
from taskifye.field_mapping.discovery import (
    DiscoveredField,
    FieldSchemaDiscovery,
    SchemaDiscoveryError,
)
from taskifye.field_mapping.persistence import (
    PersistedMapping,
    RedisMappingStore,
    get_redis_client,
)
from taskifye.field_mapping.cache import (
    FieldMappingCache,
    FieldMappingRegistry,
    MappingTable,
)
from taskifye.field_mapping.transformer import DataTransformer

__all__ = [
    # Catalog
    "DEAL",
    "PERSON",
    "ORGANIZATION",
    "ENTITY_TYPES",
    "SEMANTIC_FIELDS",
    "normalize_field_name",
    # Discovery
    "DiscoveredField",
    "FieldSchemaDiscovery",
    "SchemaDiscoveryError",
    # Persistence
    "PersistedMapping",
    "RedisMappingStore",
    "get_redis_client",
    # Cache
    "FieldMappingCache",
    "FieldMappingRegistry",
    "MappingTable",
    # Transformer
    "DataTransformer",
]
