"""
Credential redaction and audit logging utilities.

SECURITY REQUIREMENTS:
- Secrets NEVER appear in logs (API keys, auth tokens, ciphertext blobs)
- ALLOWED in logs: tenant_id, provider, entity_type, field names
- All credential writes logged for audit trail

Audit Events:
- credential.stored
- credential.deleted
- credential.cache_invalidated
- credential.error

Usage:
    from taskifye.credentials.redaction import CredentialAuditLogger, AuditEventType

    audit = CredentialAuditLogger(tenant_id)
    audit.log(
        event_type=AuditEventType.CREDENTIAL_STORED,
        provider="pipedrive",
    )
"""

import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Dict

logger = logging.getLogger(__name__)

REDACTED_VALUE = "[REDACTED]"


class AuditEventType(str, Enum):
    """Credential audit event types."""
    CREDENTIAL_STORED = "credential.stored"
    CREDENTIAL_DELETED = "credential.deleted"
    CREDENTIAL_CACHE_INVALIDATED = "credential.cache_invalidated"
    CREDENTIAL_ERROR = "credential.error"


# Key names that indicate a secret value
SECRET_KEY_PATTERNS = [
    "token", "secret", "credential", "auth", "bearer",
    "api_key", "apikey", "password", "ciphertext", "encryption_key",
]

# Value patterns for secrets that leak into free text
CREDENTIAL_SECRET_PATTERNS = [
    re.compile(r"(api_token=)[^&\s]+", re.IGNORECASE),    # Pipedrive query auth
    re.compile(r"(bearer\s+)[A-Za-z0-9._~+/=-]+", re.IGNORECASE),
    re.compile(r"\b[0-9a-f]{32}:[0-9a-f]{32,}\b"),          # Stored ciphertext blobs
    re.compile(r"\b[0-9a-f]{40}\b"),                        # Pipedrive API tokens
    re.compile(r"\bsk-[A-Za-z0-9_-]{16,}\b"),              # OpenAI keys
]

# Keys that look secret-ish but are safe identifiers
_ALLOWED_KEYS = frozenset({
    "tenant_id", "provider", "entity_type", "account_name", "connector_name",
    "auth_status",
})


def is_credential_secret_key(key: str) -> bool:
    """
    Check if a key name indicates a credential secret.

    Args:
        key: The key name to check

    Returns:
        True if the key likely contains a secret
    """
    if key in _ALLOWED_KEYS:
        return False
    key_lower = key.lower()
    return any(pattern in key_lower for pattern in SECRET_KEY_PATTERNS)


def _redact_match(match: "re.Match[str]") -> str:
    # Keep a leading label such as 'api_token=' so logs stay readable
    if match.groups():
        return f"{match.group(1)}{REDACTED_VALUE}"
    return REDACTED_VALUE


def redact_credential_value(value: Any) -> Any:
    """
    Redact secret patterns from a credential value.

    Args:
        value: The value to redact

    Returns:
        Redacted value
    """
    if not isinstance(value, str):
        return value

    result = value
    for pattern in CREDENTIAL_SECRET_PATTERNS:
        result = pattern.sub(_redact_match, result)
    return result


def redact_credential_data(data: Any, _depth: int = 0) -> Any:
    """
    Recursively redact credential secrets from a data structure.

    SECURITY:
    - Always use this before logging credential-related data

    Args:
        data: Dictionary, list, or other data structure

    Returns:
        Copy of data with secrets redacted
    """
    # Prevent infinite recursion
    if _depth > 10:
        return data

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if is_credential_secret_key(str(key)):
                result[key] = REDACTED_VALUE
            else:
                result[key] = redact_credential_data(value, _depth + 1)
        return result

    if isinstance(data, list):
        return [redact_credential_data(item, _depth + 1) for item in data]

    if isinstance(data, str):
        return redact_credential_value(data)

    return data


class CredentialAuditLogger:
    """
    Structured audit logger for credential operations.

    SECURITY:
    - Secrets are NEVER logged
    - All credential writes are logged for audit compliance
    """

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        self.logger = logging.getLogger("credentials.audit")

    def log(
        self,
        event_type: AuditEventType,
        provider: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log an audit event.

        SECURITY:
        - metadata is automatically redacted
        - Secrets must NEVER be passed in metadata

        Args:
            event_type: Type of audit event
            provider: Integration name, None for tenant-wide events
            metadata: Additional context (will be redacted)
        """
        safe_metadata = redact_credential_data(metadata) if metadata else {}

        audit_record = {
            "event_type": event_type.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "tenant_id": self.tenant_id,
            "provider": provider,
            **safe_metadata,
        }

        self.logger.info(
            f"Credential audit: {event_type.value}",
            extra=audit_record
        )

    def log_error(self, provider: str, error: str) -> None:
        """Log a credential error; the message is redacted first."""
        self.log(
            event_type=AuditEventType.CREDENTIAL_ERROR,
            provider=provider,
            metadata={"error": redact_credential_value(error)},
        )


class CredentialLoggingFilter(logging.Filter):
    """
    Logging filter that redacts credential secrets from log records.

    Add this filter to loggers handling credential operations to ensure
    secrets never appear in logs.

    Usage:
        logger.addFilter(CredentialLoggingFilter())
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_credential_value(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = redact_credential_data(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(_redact_arg(arg) for arg in record.args)

        # Redact extra fields
        for key in list(record.__dict__.keys()):
            if key in _LOG_RECORD_ATTRIBUTES:
                continue
            if is_credential_secret_key(key):
                setattr(record, key, REDACTED_VALUE)
            elif isinstance(getattr(record, key), str):
                setattr(record, key, redact_credential_value(getattr(record, key)))

        return True


def _redact_arg(arg: Any) -> Any:
    # Objects such as httpx.URL render secrets through str()
    if arg is None or isinstance(arg, (bool, int, float)):
        return arg
    text = arg if isinstance(arg, str) else str(arg)
    redacted = redact_credential_value(text)
    return redacted if redacted != text else arg


# Built-in LogRecord attributes are left alone
_LOG_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


def setup_credential_logging() -> None:
    """
    Configure credential-safe logging.

    Call this during application startup to ensure all credential
    loggers have the redaction filter applied.
    """
    credential_filter = CredentialLoggingFilter()

    credential_loggers = [
        "credentials.audit",
        "taskifye.credentials",
        "taskifye.credentials.cache",
        "taskifye.credentials.store",
        "taskifye.credentials.encryption",
        "taskifye.integrations.pipedrive.client",
        "taskifye.integrations.pipedrive.field_discovery",
        "taskifye.integrations.pipedrive.provisioning",
        "taskifye.services.integration_gateway",
        "httpx",
    ]

    for logger_name in credential_loggers:
        target = logging.getLogger(logger_name)
        if not any(isinstance(f, CredentialLoggingFilter) for f in target.filters):
            target.addFilter(credential_filter)

    logger.info("Credential logging configured with redaction filter")
