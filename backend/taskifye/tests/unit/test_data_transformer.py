"""
Unit tests for DataTransformer.

Covers:
- semantic custom fields renamed to provider keys outbound
- unresolved semantic custom fields dropped outbound
- first-class and unknown fields passed through both ways
- inbound rename of mapped provider keys
- inputs are never mutated
"""

import pytest

from taskifye.field_mapping.cache import FieldMappingCache
from taskifye.field_mapping.discovery import DiscoveredField, FieldSchemaDiscovery
from taskifye.field_mapping.persistence import RedisMappingStore
from taskifye.field_mapping.transformer import DataTransformer

TENANT_ID = "tenant-transform-001"


class StaticDiscovery(FieldSchemaDiscovery):

    def __init__(self, fields):
        self.fields = fields

    async def list_fields(self, tenant_id, provider_auth, entity_type):
        return self.fields.get(entity_type, [])


@pytest.fixture
def mappings(fake_redis, clock):
    return FieldMappingCache(
        TENANT_ID,
        StaticDiscovery({
            "deal": [
                DiscoveredField("Service Type", "abc123"),
                DiscoveredField("Priority", "prio999"),
            ],
            "person": [DiscoveredField("Customer Type", "cust42")],
        }),
        RedisMappingStore(fake_redis),
        clock=clock,
    )


@pytest.fixture
def transformer(mappings):
    return DataTransformer(mappings)


class TestToProviderShape:

    @pytest.mark.asyncio
    async def test_maps_semantic_fields(self, mappings, transformer):
        await mappings.initialize(TENANT_ID, "token")

        result = transformer.to_provider_shape("deal", {
            "title": "AC not cooling",
            "value": 250,
            "service_type": "HVAC Repair",
            "priority": "High",
        })

        assert result == {
            "title": "AC not cooling",
            "value": 250,
            "abc123": "HVAC Repair",
            "prio999": "High",
        }

    @pytest.mark.asyncio
    async def test_drops_unresolved_semantic_fields(self, mappings, transformer):
        await mappings.initialize(TENANT_ID, "token")

        result = transformer.to_provider_shape("deal", {
            "title": "Install",
            "job_type": "Installation",  # known, but not provisioned for this tenant
        })

        assert result == {"title": "Install"}

    def test_before_initialize_drops_all_custom_fields(self, transformer):
        result = transformer.to_provider_shape("deal", {
            "title": "Install",
            "service_type": "Plumbing",
        })
        assert result == {"title": "Install"}

    @pytest.mark.asyncio
    async def test_unknown_keys_pass_through(self, mappings, transformer):
        await mappings.initialize(TENANT_ID, "token")

        result = transformer.to_provider_shape("deal", {"stage_id": 3, "org_id": 9})

        assert result == {"stage_id": 3, "org_id": 9}

    @pytest.mark.asyncio
    async def test_entity_types_use_their_own_table(self, mappings, transformer):
        await mappings.initialize(TENANT_ID, "token")

        person = transformer.to_provider_shape("person", {
            "name": "Jane",
            "customer_type": "Residential",
            "service_type": "Plumbing",  # not a person field: passes through
        })

        assert person == {"name": "Jane", "cust42": "Residential", "service_type": "Plumbing"}

    @pytest.mark.asyncio
    async def test_input_is_not_mutated(self, mappings, transformer):
        await mappings.initialize(TENANT_ID, "token")
        record = {"title": "x", "service_type": "Other", "job_type": "Emergency"}
        snapshot = dict(record)

        transformer.to_provider_shape("deal", record)

        assert record == snapshot


class TestFromProviderShape:

    @pytest.mark.asyncio
    async def test_renames_mapped_keys(self, mappings, transformer):
        await mappings.initialize(TENANT_ID, "token")

        result = transformer.from_provider_shape("deal", {
            "id": 17,
            "title": "AC not cooling",
            "abc123": "HVAC Repair",
            "unmapped0000": "left alone",
        })

        assert result == {
            "id": 17,
            "title": "AC not cooling",
            "service_type": "HVAC Repair",
            "unmapped0000": "left alone",
        }

    @pytest.mark.asyncio
    async def test_round_trip_restores_resolvable_fields(self, mappings, transformer):
        await mappings.initialize(TENANT_ID, "token")
        record = {
            "title": "Furnace check",
            "currency": "USD",
            "service_type": "Furnace Repair",
            "priority": "Low",
            "invoice_number": "INV-1",  # unresolved: dropped outbound
        }

        restored = transformer.from_provider_shape(
            "deal", transformer.to_provider_shape("deal", record)
        )

        assert restored == {
            "title": "Furnace check",
            "currency": "USD",
            "service_type": "Furnace Repair",
            "priority": "Low",
        }

    def test_tenant_id_comes_from_mapping(self, transformer):
        assert transformer.tenant_id == TENANT_ID
