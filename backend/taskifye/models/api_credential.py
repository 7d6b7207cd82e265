"""
ApiCredential model - Encrypted per-tenant integration secrets.

SECURITY REQUIREMENTS:
- Secrets are encrypted at rest using ENCRYPTION_KEY env var
- Only ciphertext is stored; plaintext lives in process memory only
- ciphertext is NEVER logged or returned in API responses
- Tenant-scoped access only

One row per (tenant, provider).
"""

import enum
import uuid

from sqlalchemy import Column, Enum, String, Text, UniqueConstraint

from taskifye.db_base import Base
from taskifye.models.base import TimestampMixin, TenantScopedMixin


class CredentialProvider(str, enum.Enum):
    """Supported integrations."""
    PIPEDRIVE = "pipedrive"
    TWILIO = "twilio"
    REACHINBOX = "reachinbox"
    QUICKBOOKS = "quickbooks"
    OPENAI = "openai"

    @classmethod
    def parse(cls, value: str) -> "CredentialProvider":
        """Coerce a provider name, raising ValueError for unknown names."""
        if isinstance(value, cls):
            return value
        return cls(str(value).lower())


class ApiCredential(Base, TimestampMixin, TenantScopedMixin):
    """
    Encrypted API secret for one tenant and provider.

    SECURITY:
    - ciphertext is '<hex iv>:<hex ciphertext>' from taskifye.utils.encryption
    - Never log or expose ciphertext
    """

    __tablename__ = "api_credentials"

    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Primary key (UUID)"
    )
    provider = Column(
        Enum(CredentialProvider),
        nullable=False,
        comment="Integration (pipedrive, twilio, ...)"
    )
    ciphertext = Column(
        Text,
        nullable=False,
        comment="Encrypted secret - NEVER log"
    )

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "provider",
            name="uq_api_credentials_tenant_provider"
        ),
    )

    def __repr__(self) -> str:
        # SECURITY: ciphertext deliberately omitted
        return (
            f"<ApiCredential(id={self.id}, tenant_id={self.tenant_id}, "
            f"provider={self.provider})>"
        )
