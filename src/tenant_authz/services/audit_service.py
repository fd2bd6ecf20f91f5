from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Optional
from uuid import uuid4

from tenant_authz.auth.models import Principal
from tenant_authz.configs.logging_config import get_logger
from tenant_authz.configs.settings import Settings
from tenant_authz.domain.entities.audit import AuditFilters, AuditLogEntry, AuditLogEntryCreate
from tenant_authz.errors import StorageError, ValidationError
from tenant_authz.repositories.base import AuditSink
from tenant_authz.utils.time_utils import utc_now

log = get_logger(__name__)


def entry_for(
    principal: Principal,
    *,
    action: str,
    resource: str,
    resource_id: Optional[str] = None,
    changes: Optional[dict[str, Any]] = None,
    metadata: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditLogEntryCreate:
    """Audit input whose tenant, user and role come from the validated principal."""
    return AuditLogEntryCreate(
        tenant_id=principal.tenant_id,
        user_id=principal.user_id,
        role=principal.role,
        action=action,
        resource=resource,
        resource_id=resource_id,
        changes=changes,
        metadata=metadata,
        ip_address=ip_address,
        user_agent=user_agent,
    )


class AuditRecorder:
    """
    Appends and reads audit entries.

    Ids and timestamps are assigned here, never by callers. Appends for the
    same tenant are serialized so sequence numbers are inserted in order;
    different tenants do not wait on each other.
    """

    def __init__(self, sink: AuditSink, settings: Settings, clock=utc_now):
        self._sink = sink
        self._clock = clock
        self._default_limit = settings.audit_default_limit
        self._max_limit = settings.audit_max_limit
        # tenant_id -> (lock, holders + waiters); dropped when the count reaches zero
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def _tenant_lock(self, tenant_id: str):
        lock, users = self._locks.get(tenant_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[tenant_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[tenant_id]
            if users == 1:
                del self._locks[tenant_id]
            else:
                self._locks[tenant_id] = (lock, users - 1)

    async def append(self, entry: AuditLogEntryCreate) -> AuditLogEntry:
        async with self._tenant_lock(entry.tenant_id):
            try:
                seq, timestamp = await self._sink.reserve(entry.tenant_id, self._clock())
                stored = AuditLogEntry(
                    id=str(uuid4()),
                    seq=seq,
                    timestamp=timestamp,
                    **entry.model_dump(),
                )
                await self._sink.insert(stored)
            except StorageError:
                log.error(
                    "audit.append failed tenant_id=%s user_id=%s action=%s resource=%s",
                    entry.tenant_id,
                    entry.user_id,
                    entry.action,
                    entry.resource,
                )
                raise
        log.info(
            "audit.append tenant_id=%s id=%s seq=%s action=%s resource=%s resource_id=%s",
            stored.tenant_id,
            stored.id,
            stored.seq,
            stored.action,
            stored.resource,
            stored.resource_id,
        )
        return stored

    async def query(
        self,
        tenant_id: str,
        filters: Optional[AuditFilters] = None,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> tuple[list[AuditLogEntry], int]:
        if not tenant_id:
            raise ValidationError("tenant_id is required")
        if limit is None:
            limit = self._default_limit
        if limit < 1 or limit > self._max_limit:
            raise ValidationError(f"limit must be between 1 and {self._max_limit}")
        if offset < 0:
            raise ValidationError("offset must not be negative")

        entries, total = await self._sink.query(
            tenant_id, filters or AuditFilters(), limit=limit, offset=offset
        )
        log.info(
            "audit.query tenant_id=%s returned=%s total=%s limit=%s offset=%s",
            tenant_id,
            len(entries),
            total,
            limit,
            offset,
        )
        return entries, total
