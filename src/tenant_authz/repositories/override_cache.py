from __future__ import annotations

from datetime import datetime
from typing import Optional
from urllib.parse import quote

import redis.asyncio as redis
from redis.exceptions import RedisError

from tenant_authz.configs.logging_config import get_logger
from tenant_authz.domain.entities.override import OverrideChange, PermissionOverride
from tenant_authz.repositories.base import OverrideStore

log = get_logger(__name__)

# cached marker for "no active override", so misses are cached too
_ABSENT = "__none__"


class CachedOverrideStore(OverrideStore):
    """
    Read-through Redis cache in front of an override store.

    Only the resolver's hot path (`get_active`) is cached. Writes made through
    this store drop the cached key immediately; writes made elsewhere become
    visible once the entry expires, so `ttl_seconds` bounds how long a
    revoked override keeps being applied.

    Redis failures never fail a lookup: the backing store is consulted
    instead. Backing store failures propagate.
    """

    def __init__(
        self,
        store: OverrideStore,
        client: redis.Redis,
        *,
        ttl_seconds: int,
        prefix: str = "authz:override",
    ):
        self._store = store
        self._client = client
        self._ttl = ttl_seconds
        self._prefix = prefix

    def _key(self, tenant_id: str, permission_name: str) -> str:
        # escaped: a ":" inside either part must not move the separator
        return f"{self._prefix}:{quote(tenant_id, safe='')}:{quote(permission_name, safe='')}"

    async def get_active(self, tenant_id: str, permission_name: str) -> Optional[PermissionOverride]:
        key = self._key(tenant_id, permission_name)
        try:
            cached = await self._client.get(key)
        except RedisError as e:
            log.warning("override_cache.get failed key=%s error=%s", key, str(e))
            cached = None

        if cached is not None:
            log.debug("override_cache.hit key=%s", key)
            if cached == _ABSENT:
                return None
            return PermissionOverride.model_validate_json(cached)

        override = await self._store.get_active(tenant_id, permission_name)
        value = override.model_dump_json() if override else _ABSENT
        try:
            await self._client.set(key, value, ex=self._ttl)
        except RedisError as e:
            log.warning("override_cache.set failed key=%s error=%s", key, str(e))
        return override

    async def get(self, tenant_id: str, permission_name: str) -> Optional[PermissionOverride]:
        return await self._store.get(tenant_id, permission_name)

    async def list_for_tenant(self, tenant_id: str, *, include_inactive: bool = True) -> list[PermissionOverride]:
        return await self._store.list_for_tenant(tenant_id, include_inactive=include_inactive)

    async def save(self, change: OverrideChange, *, now: datetime) -> PermissionOverride:
        saved = await self._store.save(change, now=now)
        await self.invalidate(change.tenant_id, change.permission_name)
        return saved

    async def invalidate(self, tenant_id: str, permission_name: str) -> None:
        key = self._key(tenant_id, permission_name)
        try:
            await self._client.delete(key)
        except RedisError as e:
            # entry still expires after the TTL
            log.warning("override_cache.invalidate failed key=%s error=%s", key, str(e))
