"""
Shared column mixins for ORM models.

Tenant-scoped models inherit from TenantScopedMixin so every row carries the
tenant_id it belongs to; queries MUST filter on it.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """created_at / updated_at columns maintained by the ORM."""

    created_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
        comment="Row creation time (UTC)"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
        comment="Last modification time (UTC)"
    )


class TenantScopedMixin:
    """tenant_id column for tenant isolation."""

    tenant_id = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Owning tenant - from request context only, never client input"
    )
