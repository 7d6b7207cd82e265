"""
Credentials module for per-tenant integration secrets.

This module provides:
- Encrypted storage for provider API keys (Pipedrive, Twilio, ReachInbox, ...)
- A 5-minute in-process cache of decrypted secrets with tenant invalidation
- Audit logging with automatic redaction

SECURITY:
- Secrets are encrypted at rest using ENCRYPTION_KEY
- No plaintext secrets outside process memory
- Secrets NEVER appear in logs or API responses
- Allowed in logs: tenant_id, provider

Usage:
    from taskifye.credentials import CredentialCache, SqlCredentialStore, get_secret_cipher

    cache = CredentialCache(SqlCredentialStore(session_factory), get_secret_cipher())
    api_key = await cache.get(tenant_id, "pipedrive")
"""

from taskifye.credentials.store import (
    CredentialStore,
    CredentialStoreError,
    InMemoryCredentialStore,
    SqlCredentialStore,
)
from taskifye.credentials.encryption import (
    SecretCipher,
    CredentialEncryptionError,
    get_secret_cipher,
    validate_encryption_ready,
)
from taskifye.credentials.cache import (
    CredentialCache,
    CredentialLookup,
    LookupStatus,
)
from taskifye.credentials.redaction import (
    redact_credential_data,
    CredentialAuditLogger,
    AuditEventType,
    setup_credential_logging,
)

__all__ = [
    # Store
    "CredentialStore",
    "CredentialStoreError",
    "InMemoryCredentialStore",
    "SqlCredentialStore",
    # Encryption
    "SecretCipher",
    "CredentialEncryptionError",
    "get_secret_cipher",
    "validate_encryption_ready",
    # Cache
    "CredentialCache",
    "CredentialLookup",
    "LookupStatus",
    # Redaction & Audit
    "redact_credential_data",
    "CredentialAuditLogger",
    "AuditEventType",
    "setup_credential_logging",
]
