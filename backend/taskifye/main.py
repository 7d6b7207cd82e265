"""
FastAPI application factory.

Wires the credential layer (store, cipher, cache), the field mapping layer
(discovery, Redis persistence, per-tenant registry) and the integration
gateway onto app.state, then mounts the integration routers.

Usage:
    uvicorn taskifye.main:create_app --factory
"""

import functools
import logging
from typing import Callable, Optional

from fastapi import FastAPI

from taskifye.api.routes import integration_settings, pipedrive_deals, pipedrive_setup
from taskifye.config.settings import IntegrationSettings, get_settings
from taskifye.credentials.cache import CredentialCache
from taskifye.credentials.encryption import CredentialEncryptionError, SecretCipher
from taskifye.credentials.redaction import setup_credential_logging
from taskifye.credentials.store import CredentialStore, SqlCredentialStore
from taskifye.database.session import create_session_factory, create_tables
from taskifye.field_mapping.cache import FieldMappingRegistry
from taskifye.field_mapping.discovery import FieldSchemaDiscovery
from taskifye.field_mapping.persistence import RedisMappingStore, get_redis_client
from taskifye.integrations.pipedrive.client import PipedriveClient
from taskifye.integrations.pipedrive.field_discovery import PipedriveFieldDiscovery
from taskifye.platform.errors import ErrorHandlerMiddleware
from taskifye.services.integration_gateway import IntegrationGateway

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[IntegrationSettings] = None,
    credential_store: Optional[CredentialStore] = None,
    redis_client=None,
    pipedrive_client_factory: Optional[Callable[[str], PipedriveClient]] = None,
    discovery: Optional[FieldSchemaDiscovery] = None,
) -> FastAPI:
    """
    Build the application.

    Every collaborator can be injected; anything not supplied is built from
    settings (which default to the environment).

    Raises:
        CredentialEncryptionError: If ENCRYPTION_KEY is not configured
    """
    settings = settings or get_settings()
    setup_credential_logging()

    if not settings.encryption_configured:
        raise CredentialEncryptionError(
            "ENCRYPTION_KEY environment variable is required for credential storage",
            operation="startup",
        )
    cipher = SecretCipher(settings.encryption_key)

    if credential_store is None:
        session_factory = create_session_factory(settings.database_url)
        create_tables(session_factory)
        credential_store = SqlCredentialStore(session_factory)

    if pipedrive_client_factory is None:
        pipedrive_client_factory = functools.partial(
            PipedriveClient,
            base_url=settings.pipedrive_api_base_url,
            timeout=settings.integration_timeout_seconds,
        )

    if redis_client is None:
        redis_client = get_redis_client(settings.redis_url)

    credential_cache = CredentialCache(
        credential_store,
        cipher,
        ttl_seconds=settings.credential_cache_ttl_seconds,
        store_timeout_seconds=settings.integration_timeout_seconds,
    )
    mapping_registry = FieldMappingRegistry(
        discovery or PipedriveFieldDiscovery(pipedrive_client_factory),
        RedisMappingStore(redis_client),
        max_age_seconds=settings.field_mapping_max_age_seconds,
        discovery_timeout_seconds=settings.integration_timeout_seconds,
    )

    app = FastAPI(title="Taskifye Integrations")
    app.state.settings = settings
    app.state.secret_cipher = cipher
    app.state.credential_store = credential_store
    app.state.credential_cache = credential_cache
    app.state.mapping_registry = mapping_registry
    app.state.pipedrive_client_factory = pipedrive_client_factory
    app.state.integration_gateway = IntegrationGateway(
        credential_cache,
        mapping_registry,
        client_factory=pipedrive_client_factory,
        timeout_seconds=settings.integration_timeout_seconds,
    )

    app.add_middleware(ErrorHandlerMiddleware)
    app.include_router(integration_settings.router)
    app.include_router(pipedrive_setup.router)
    app.include_router(pipedrive_deals.router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    logger.info("Application created", extra={"ttl_seconds": settings.credential_cache_ttl_seconds})
    return app
