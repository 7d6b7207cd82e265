"""
Request dependencies for the integration APIs.

Components (credential store, cache, mapping registry, gateway) are built once
at startup by create_app() and kept on app.state; these helpers hand them to
route handlers so tests can swap in fakes with dependency_overrides.
"""

from typing import Callable, Optional

from fastapi import Header, Request

from taskifye.credentials.cache import CredentialCache
from taskifye.credentials.encryption import SecretCipher
from taskifye.credentials.store import CredentialStore
from taskifye.field_mapping.cache import FieldMappingRegistry
from taskifye.integrations.pipedrive.client import PipedriveClient
from taskifye.platform.errors import AuthenticationError
from taskifye.services.integration_gateway import IntegrationGateway

TENANT_HEADER = "X-Tenant-ID"


def get_tenant_id(
    x_tenant_id: Optional[str] = Header(default=None, alias=TENANT_HEADER),
) -> str:
    """Tenant id from the authenticated request; 401 when absent."""
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise AuthenticationError("Tenant context required")
    return tenant_id


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credential_store


def get_secret_cipher(request: Request) -> SecretCipher:
    return request.app.state.secret_cipher


def get_credential_cache(request: Request) -> CredentialCache:
    return request.app.state.credential_cache


def get_mapping_registry(request: Request) -> FieldMappingRegistry:
    return request.app.state.mapping_registry


def get_pipedrive_client_factory(request: Request) -> Callable[[str], PipedriveClient]:
    return request.app.state.pipedrive_client_factory


def get_integration_gateway(request: Request) -> IntegrationGateway:
    return request.app.state.integration_gateway
