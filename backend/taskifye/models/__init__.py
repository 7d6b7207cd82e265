"""
Database models for tenant integration credentials.

All models follow strict tenant isolation patterns.
Tenant-scoped models inherit from TenantScopedMixin.
"""

from taskifye.models.base import TimestampMixin, TenantScopedMixin
from taskifye.models.api_credential import ApiCredential, CredentialProvider

__all__ = [
    "TimestampMixin",
    "TenantScopedMixin",
    "ApiCredential",
    "CredentialProvider",
]
