"""In-process stores for local runs and tests (storage_backend=memory)."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from tenant_authz.configs.logging_config import get_logger
from tenant_authz.domain.entities.audit import AuditFilters, AuditLogEntry
from tenant_authz.domain.entities.override import OverrideChange, PermissionOverride
from tenant_authz.errors import ConflictError, NotFoundError
from tenant_authz.repositories.base import AuditSink, OverrideStore
from tenant_authz.utils.time_utils import truncate_to_ms

log = get_logger(__name__)


class InMemoryOverrideRepository(OverrideStore):
    def __init__(self) -> None:
        self._items: dict[tuple[str, str], PermissionOverride] = {}

    async def get_active(self, tenant_id: str, permission_name: str) -> Optional[PermissionOverride]:
        override = self._items.get((tenant_id, permission_name))
        if override is None or not override.active:
            return None
        return override

    async def get(self, tenant_id: str, permission_name: str) -> Optional[PermissionOverride]:
        return self._items.get((tenant_id, permission_name))

    async def list_for_tenant(self, tenant_id: str, *, include_inactive: bool = True) -> list[PermissionOverride]:
        items = [
            o
            for (tid, _), o in self._items.items()
            if tid == tenant_id and (include_inactive or o.active)
        ]
        return sorted(items, key=lambda o: o.permission_name)

    async def save(self, change: OverrideChange, *, now: datetime) -> PermissionOverride:
        now = truncate_to_ms(now)
        key = (change.tenant_id, change.permission_name)
        existing = self._items.get(key)

        if change.expected_version is None:
            if existing is not None:
                raise ConflictError("override already exists; expected_version is required to update it")
            saved = PermissionOverride(
                tenant_id=change.tenant_id,
                permission_name=change.permission_name,
                roles_required=change.roles_required,
                auto_approve_roles=change.auto_approve_roles,
                active=change.active,
                version=1,
                created_at=now,
                updated_at=now,
            )
        else:
            if existing is None:
                raise NotFoundError("override not found")
            if existing.version != change.expected_version:
                raise ConflictError(
                    f"override was modified concurrently (expected version {change.expected_version}, "
                    f"current {existing.version})"
                )
            saved = existing.model_copy(
                update={
                    "roles_required": change.roles_required,
                    "auto_approve_roles": change.auto_approve_roles,
                    "active": change.active,
                    "version": existing.version + 1,
                    "updated_at": now,
                }
            )

        self._items[key] = saved
        log.info(
            "repo.memory.override.save tenant_id=%s permission=%s version=%s",
            saved.tenant_id,
            saved.permission_name,
            saved.version,
        )
        return saved


class InMemoryAuditRepository(AuditSink):
    def __init__(self) -> None:
        self._entries: list[AuditLogEntry] = []
        self._counters: dict[str, tuple[int, datetime]] = {}

    async def reserve(self, tenant_id: str, now: datetime) -> tuple[int, datetime]:
        now = truncate_to_ms(now)
        seq, last = self._counters.get(tenant_id, (0, now))
        reserved = (seq + 1, max(last, now))
        self._counters[tenant_id] = reserved
        return reserved

    async def insert(self, entry: AuditLogEntry) -> None:
        # stored copy is detached from the caller's nested dicts
        self._entries.append(entry.model_copy(deep=True))

    async def query(
        self,
        tenant_id: str,
        filters: AuditFilters,
        *,
        limit: int,
        offset: int,
    ) -> tuple[list[AuditLogEntry], int]:
        matching = [
            e
            for e in self._entries
            if e.tenant_id == tenant_id
            and (not filters.user_id or e.user_id == filters.user_id)
            and (not filters.resource or e.resource == filters.resource)
            and (not filters.action or e.action == filters.action)
        ]
        matching.sort(key=lambda e: (e.timestamp, e.seq), reverse=True)
        window = matching[offset : offset + limit]
        return [e.model_copy(deep=True) for e in window], len(matching)
