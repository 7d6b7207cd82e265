"""
Pipedrive custom field provisioning job.

Creates the application's custom fields in one tenant's Pipedrive account,
then rediscovers and persists that tenant's field mapping. Run once when a
tenant connects Pipedrive, or again after fields were renamed or deleted.

The API token is read from the tenant's stored credential (decrypted with
ENCRYPTION_KEY) unless --api-token is given.

Usage:
    python -m taskifye.workers.provision_fields_job --tenant-id tenant-123
"""

import argparse
import asyncio
import functools
import json
import logging
import sys
from typing import Callable, List, Optional

from taskifye.config.settings import IntegrationSettings, get_settings
from taskifye.credentials.cache import CredentialCache
from taskifye.credentials.encryption import SecretCipher
from taskifye.credentials.redaction import setup_credential_logging
from taskifye.credentials.store import CredentialStore, SqlCredentialStore
from taskifye.database.session import create_session_factory
from taskifye.field_mapping.cache import FieldMappingCache
from taskifye.field_mapping.persistence import RedisMappingStore, get_redis_client
from taskifye.integrations.pipedrive.client import PipedriveClient
from taskifye.integrations.pipedrive.field_discovery import PipedriveFieldDiscovery
from taskifye.integrations.pipedrive.provisioning import provision_custom_fields
from taskifye.models.api_credential import CredentialProvider

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class ProvisioningJobError(Exception):
    """The job could not run for this tenant."""


async def _stored_api_token(
    settings: IntegrationSettings,
    tenant_id: str,
    store: Optional[CredentialStore] = None,
) -> str:
    if not settings.encryption_configured:
        raise ProvisioningJobError("ENCRYPTION_KEY is required to read the stored credential")
    store = store or SqlCredentialStore(create_session_factory(settings.database_url))
    cache = CredentialCache(
        store,
        SecretCipher(settings.encryption_key),
        store_timeout_seconds=settings.integration_timeout_seconds,
    )
    lookup = await cache.lookup(tenant_id, CredentialProvider.PIPEDRIVE.value)
    if not lookup.found:
        raise ProvisioningJobError(
            f"No usable Pipedrive credential for tenant ({lookup.status.value})"
        )
    return lookup.secret


async def run_provisioning(
    tenant_id: str,
    api_token: Optional[str] = None,
    settings: Optional[IntegrationSettings] = None,
    store: Optional[CredentialStore] = None,
    redis_client=None,
    client_factory: Optional[Callable[[str], PipedriveClient]] = None,
) -> dict:
    """
    Provision fields and refresh the tenant's mapping.

    Returns:
        Summary dict (counts, errors and the resulting mapping table)
    """
    settings = settings or get_settings()
    api_token = api_token or await _stored_api_token(settings, tenant_id, store)

    client_factory = client_factory or functools.partial(
        PipedriveClient,
        base_url=settings.pipedrive_api_base_url,
        timeout=settings.integration_timeout_seconds,
    )

    async with client_factory(api_token) as client:
        result = await provision_custom_fields(client)

    mappings = FieldMappingCache(
        tenant_id,
        discovery=PipedriveFieldDiscovery(client_factory),
        store=RedisMappingStore(redis_client or get_redis_client(settings.redis_url)),
        max_age_seconds=settings.field_mapping_max_age_seconds,
        discovery_timeout_seconds=settings.integration_timeout_seconds,
    )
    await mappings.refresh(tenant_id, api_token)

    return {
        "tenant_id": tenant_id,
        "created": len(result.created),
        "existing": len(result.existing),
        "errors": result.errors,
        "field_mappings": mappings.snapshot(),
    }


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Provision Pipedrive custom fields for a tenant")
    parser.add_argument("--tenant-id", required=True, help="Tenant to provision")
    parser.add_argument(
        "--api-token",
        default=None,
        help="Pipedrive API token (defaults to the tenant's stored credential)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    """Entry point for the provisioning job."""
    args = parse_args(argv)
    setup_credential_logging()
    logger.info("Field provisioning job starting", extra={"tenant_id": args.tenant_id})

    try:
        summary = asyncio.run(run_provisioning(args.tenant_id, api_token=args.api_token))
    except Exception as exc:
        logger.error(
            "Field provisioning job failed",
            extra={"tenant_id": args.tenant_id, "error_type": type(exc).__name__},
            exc_info=True,
        )
        sys.exit(1)

    print(json.dumps(summary, indent=2, sort_keys=True))
    logger.info(
        "Field provisioning job finished",
        extra={"tenant_id": args.tenant_id, "errors": len(summary["errors"])},
    )
    if summary["errors"]:
        sys.exit(2)


if __name__ == "__main__":
    main()
