"""
Tests for IntegrationGateway.

Covers the request-time flow end to end with in-process fakes:
credential lookup -> mapping initialize -> to_provider_shape -> Pipedrive
call (httpx.MockTransport) -> from_provider_shape.

The gateway must never raise for expected failures.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from taskifye.credentials.cache import CredentialCache
from taskifye.credentials.store import InMemoryCredentialStore
from taskifye.field_mapping.cache import FieldMappingRegistry
from taskifye.field_mapping.discovery import (
    DiscoveredField,
    FieldSchemaDiscovery,
    SchemaDiscoveryError,
)
from taskifye.field_mapping.persistence import RedisMappingStore
from taskifye.integrations.pipedrive.client import PipedriveClient
from taskifye.services.integration_gateway import (
    IntegrationGateway,
    IntegrationStatus,
)

TENANT_ID = "tenant-gateway-001"
OTHER_TENANT_ID = "tenant-gateway-002"
API_TOKEN = "pd-token-gateway"


# =============================================================================
# Fakes
# =============================================================================

class FakeDiscovery(FieldSchemaDiscovery):

    def __init__(self):
        self.fields = {"deal": [DiscoveredField("Service Type", "abc123")]}
        self.error = None

    async def list_fields(self, tenant_id, provider_auth, entity_type):
        if self.error:
            raise self.error
        return self.fields.get(entity_type, [])


class FakePipedrive:
    """httpx handler emulating the deals/persons endpoints."""

    def __init__(self):
        self.requests = []
        self.deals = {}
        self.status_override = None
        self.body_override = None
        self.delay = 0.0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.status_override:
            return httpx.Response(self.status_override, json={"success": False})
        if self.body_override is not None:
            return httpx.Response(200, json=self.body_override)

        if request.method == "POST" and request.url.path == "/v1/deals":
            deal = {"id": len(self.deals) + 1, **json.loads(request.content)}
            self.deals[deal["id"]] = deal
            return httpx.Response(201, json={"success": True, "data": deal})
        if request.method == "GET" and request.url.path.startswith("/v1/deals/"):
            deal = self.deals.get(int(request.url.path.rsplit("/", 1)[1]))
            if deal is None:
                return httpx.Response(404, json={"success": False, "error": "not found"})
            return httpx.Response(200, json={"success": True, "data": deal})
        if request.method == "POST" and request.url.path == "/v1/persons":
            person = {"id": 1, **json.loads(request.content)}
            return httpx.Response(201, json={"success": True, "data": person})
        return httpx.Response(404, json={"success": False})


@pytest.fixture
def pipedrive():
    return FakePipedrive()


@pytest.fixture
def discovery():
    return FakeDiscovery()


@pytest.fixture
def gateway_parts(memory_store, cipher, clock, fake_redis, discovery, pipedrive):
    credential_cache = CredentialCache(memory_store, cipher, clock=clock)
    registry = FieldMappingRegistry(discovery, RedisMappingStore(fake_redis), clock=clock)

    def client_factory(token):
        return PipedriveClient(
            token,
            base_url="https://pipedrive.test/v1",
            transport=httpx.MockTransport(pipedrive),
        )

    gateway = IntegrationGateway(
        credential_cache, registry, client_factory=client_factory, timeout_seconds=1.0
    )
    return gateway, credential_cache, registry


@pytest.fixture
def gateway(gateway_parts):
    return gateway_parts[0]


async def _configure(store, cipher, tenant_id=TENANT_ID, token=API_TOKEN):
    await store.put(tenant_id, "pipedrive", cipher.encrypt_secret(token))


# =============================================================================
# Tests
# =============================================================================

class TestCreateDeal:

    @pytest.mark.asyncio
    async def test_maps_fields_both_ways(self, gateway, memory_store, cipher, pipedrive):
        await _configure(memory_store, cipher)

        result = await gateway.create_deal(TENANT_ID, {
            "title": "AC repair",
            "service_type": "HVAC Repair",
            "priority": "High",  # not provisioned: dropped
        })

        assert result.status == IntegrationStatus.OK
        sent = json.loads(pipedrive.requests[0].content)
        assert sent == {"title": "AC repair", "abc123": "HVAC Repair"}
        assert result.data == {"id": 1, "title": "AC repair", "service_type": "HVAC Repair"}

    @pytest.mark.asyncio
    async def test_uses_tenant_token(self, gateway, memory_store, cipher, pipedrive):
        await _configure(memory_store, cipher)

        await gateway.create_deal(TENANT_ID, {"title": "x"})

        assert pipedrive.requests[0].url.params["api_token"] == API_TOKEN

    @pytest.mark.asyncio
    async def test_not_configured_without_secret(self, gateway, pipedrive):
        result = await gateway.create_deal(TENANT_ID, {"title": "x"})

        assert result.status == IntegrationStatus.NOT_CONFIGURED
        assert result.reason == "not_configured"
        assert pipedrive.requests == []

    @pytest.mark.asyncio
    async def test_undecryptable_secret_is_not_configured(self, gateway, memory_store):
        await memory_store.put(TENANT_ID, "pipedrive", "bad:blob")

        result = await gateway.create_deal(TENANT_ID, {"title": "x"})

        assert result.status == IntegrationStatus.NOT_CONFIGURED
        assert result.reason == "decryption_failed"

    @pytest.mark.asyncio
    async def test_store_outage_is_unavailable(self, cipher, clock, fake_redis, discovery):
        store = AsyncMock()
        store.get.side_effect = RuntimeError("db down")
        gateway = IntegrationGateway(
            CredentialCache(store, cipher, clock=clock),
            FieldMappingRegistry(discovery, RedisMappingStore(fake_redis), clock=clock),
        )

        result = await gateway.create_deal(TENANT_ID, {"title": "x"})

        assert result.status == IntegrationStatus.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_provider_error_is_unavailable(self, gateway, memory_store, cipher, pipedrive):
        await _configure(memory_store, cipher)
        pipedrive.status_override = 502

        result = await gateway.create_deal(TENANT_ID, {"title": "x"})

        assert result.status == IntegrationStatus.UNAVAILABLE
        assert result.ok is False

    @pytest.mark.asyncio
    async def test_provider_timeout_is_unavailable(self, gateway_parts, memory_store, cipher, pipedrive):
        gateway, credential_cache, registry = gateway_parts
        gateway._timeout = 0.01
        await _configure(memory_store, cipher)
        pipedrive.delay = 0.5

        result = await gateway.create_deal(TENANT_ID, {"title": "x"})

        assert result.status == IntegrationStatus.UNAVAILABLE
        assert result.reason == "timeout"

    @pytest.mark.asyncio
    async def test_rejected_token_is_not_configured(self, gateway, memory_store, cipher, pipedrive):
        await _configure(memory_store, cipher)
        pipedrive.status_override = 401

        result = await gateway.create_deal(TENANT_ID, {"title": "x"})

        assert result.status == IntegrationStatus.NOT_CONFIGURED
        assert result.reason == "unauthorized"

    @pytest.mark.asyncio
    async def test_list_data_is_unavailable(self, gateway, memory_store, cipher, pipedrive):
        await _configure(memory_store, cipher)
        pipedrive.body_override = {"success": True, "data": [1, 2]}

        result = await gateway.create_deal(TENANT_ID, {"title": "x"})

        assert result.status == IntegrationStatus.UNAVAILABLE
        assert result.reason == "invalid_response"
        assert result.data == {}

    @pytest.mark.asyncio
    async def test_scalar_data_on_read_is_unavailable(self, gateway, memory_store, cipher, pipedrive):
        await _configure(memory_store, cipher)
        pipedrive.body_override = {"success": True, "data": "deal"}

        result = await gateway.get_deal(TENANT_ID, 1)

        assert result.status == IntegrationStatus.UNAVAILABLE
        assert result.reason == "invalid_response"

    @pytest.mark.asyncio
    async def test_discovery_failure_still_creates_deal(
        self, gateway, memory_store, cipher, discovery, pipedrive
    ):
        await _configure(memory_store, cipher)
        discovery.error = SchemaDiscoveryError("down", entity_type="deal")

        result = await gateway.create_deal(TENANT_ID, {"title": "x", "service_type": "Other"})

        assert result.status == IntegrationStatus.OK
        assert json.loads(pipedrive.requests[0].content) == {"title": "x"}


class TestGetDeal:

    @pytest.mark.asyncio
    async def test_get_deal_renames_custom_fields(self, gateway, memory_store, cipher, pipedrive):
        await _configure(memory_store, cipher)
        pipedrive.deals[5] = {"id": 5, "title": "Boiler", "abc123": "Plumbing"}

        result = await gateway.get_deal(TENANT_ID, 5)

        assert result.ok
        assert result.data == {"id": 5, "title": "Boiler", "service_type": "Plumbing"}

    @pytest.mark.asyncio
    async def test_missing_deal_is_not_found(self, gateway, memory_store, cipher):
        await _configure(memory_store, cipher)

        result = await gateway.get_deal(TENANT_ID, 404)

        assert result.status == IntegrationStatus.NOT_FOUND


class TestCreatePerson:

    @pytest.mark.asyncio
    async def test_create_person(self, gateway, memory_store, cipher, discovery, pipedrive):
        discovery.fields["person"] = [DiscoveredField("Customer Type", "cust42")]
        await _configure(memory_store, cipher)

        result = await gateway.create_person(TENANT_ID, {
            "name": "Jane",
            "customer_type": "Commercial",
        })

        assert json.loads(pipedrive.requests[0].content) == {"name": "Jane", "cust42": "Commercial"}
        assert result.data == {"id": 1, "name": "Jane", "customer_type": "Commercial"}


class TestTenantIsolation:

    @pytest.mark.asyncio
    async def test_each_tenant_uses_own_token(self, gateway, memory_store, cipher, pipedrive):
        await _configure(memory_store, cipher, TENANT_ID, "token-A")
        await _configure(memory_store, cipher, OTHER_TENANT_ID, "token-B")

        await gateway.create_deal(TENANT_ID, {"title": "a"})
        await gateway.create_deal(OTHER_TENANT_ID, {"title": "b"})

        tokens = [r.url.params["api_token"] for r in pipedrive.requests]
        assert tokens == ["token-A", "token-B"]

    @pytest.mark.asyncio
    async def test_settings_change_is_visible_after_invalidate(
        self, gateway_parts, memory_store, cipher, pipedrive
    ):
        gateway, credential_cache, _ = gateway_parts
        await _configure(memory_store, cipher, TENANT_ID, "old-token")
        await gateway.create_deal(TENANT_ID, {"title": "a"})

        await _configure(memory_store, cipher, TENANT_ID, "new-token")
        credential_cache.invalidate(TENANT_ID)
        await gateway.create_deal(TENANT_ID, {"title": "b"})

        assert pipedrive.requests[-1].url.params["api_token"] == "new-token"
