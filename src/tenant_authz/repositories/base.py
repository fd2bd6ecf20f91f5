from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from tenant_authz.domain.entities.audit import AuditFilters, AuditLogEntry
from tenant_authz.domain.entities.override import OverrideChange, PermissionOverride


class OverrideStore(ABC):
    """
    Tenant permission overrides, unique per (tenant_id, permission_name).

    Every method is tenant-scoped. Backend failures surface as StorageError.
    """

    @abstractmethod
    async def get_active(self, tenant_id: str, permission_name: str) -> Optional[PermissionOverride]:
        """The override the resolver should apply, or None."""

    @abstractmethod
    async def get(self, tenant_id: str, permission_name: str) -> Optional[PermissionOverride]:
        """Override regardless of `active`."""

    @abstractmethod
    async def list_for_tenant(self, tenant_id: str, *, include_inactive: bool = True) -> list[PermissionOverride]:
        pass

    @abstractmethod
    async def save(self, change: OverrideChange, *, now: datetime) -> PermissionOverride:
        """
        Create (expected_version is None) or update (expected_version matches).

        Raises ConflictError on a duplicate create or a stale version and
        NotFoundError when updating an override that does not exist.
        """


class AuditSink(ABC):
    """Append-only store of audit entries."""

    @abstractmethod
    async def reserve(self, tenant_id: str, now: datetime) -> tuple[int, datetime]:
        """
        Atomically claim the next sequence number for a tenant.

        Returns (seq, timestamp) where timestamp is `now` raised, if needed,
        to the last timestamp handed out for the tenant.
        """

    @abstractmethod
    async def insert(self, entry: AuditLogEntry) -> None:
        pass

    @abstractmethod
    async def query(
        self,
        tenant_id: str,
        filters: AuditFilters,
        *,
        limit: int,
        offset: int,
    ) -> tuple[list[AuditLogEntry], int]:
        """Entries newest first (timestamp desc, seq desc) and the total match count."""
