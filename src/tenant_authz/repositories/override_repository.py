from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from tenant_authz.configs.logging_config import get_logger
from tenant_authz.configs.settings import Settings
from tenant_authz.domain.entities.override import OverrideChange, PermissionOverride
from tenant_authz.errors import ConflictError, NotFoundError, StorageError
from tenant_authz.repositories.base import OverrideStore
from tenant_authz.utils.time_utils import truncate_to_ms

log = get_logger(__name__)


class OverrideRepository(OverrideStore):
    def __init__(self, db: AsyncIOMotorDatabase, settings: Settings):
        self._db = db
        self._settings = settings
        self._col = db[settings.overrides_collection]

    async def ensure_indexes(self) -> None:
        log.info("repo.override.ensure_indexes start")
        try:
            await self._col.create_index([("tenant_id", 1), ("permission_name", 1)], unique=True)
            await self._col.create_index([("tenant_id", 1), ("active", 1)])
        except PyMongoError as e:
            log.error("repo.override.ensure_indexes failed error=%s", str(e))
            raise StorageError("override store unavailable") from e
        log.info("repo.override.ensure_indexes done")

    async def get_active(self, tenant_id: str, permission_name: str) -> Optional[PermissionOverride]:
        doc = await self._find_one(
            {"tenant_id": tenant_id, "permission_name": permission_name, "active": True}
        )
        return PermissionOverride.from_document(doc) if doc else None

    async def get(self, tenant_id: str, permission_name: str) -> Optional[PermissionOverride]:
        doc = await self._find_one({"tenant_id": tenant_id, "permission_name": permission_name})
        return PermissionOverride.from_document(doc) if doc else None

    async def list_for_tenant(self, tenant_id: str, *, include_inactive: bool = True) -> list[PermissionOverride]:
        q: dict[str, Any] = {"tenant_id": tenant_id}
        if not include_inactive:
            q["active"] = True
        log.info("repo.override.list tenant_id=%s include_inactive=%s", tenant_id, include_inactive)
        try:
            cursor = self._col.find(q).sort([("permission_name", 1)])
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            log.error("repo.override.list failed tenant_id=%s error=%s", tenant_id, str(e))
            raise StorageError("override store unavailable") from e
        return [PermissionOverride.from_document(d) for d in docs]

    async def save(self, change: OverrideChange, *, now: datetime) -> PermissionOverride:
        now = truncate_to_ms(now)
        if change.expected_version is None:
            return await self._insert(change, now)
        return await self._update(change, now)

    async def _insert(self, change: OverrideChange, now: datetime) -> PermissionOverride:
        override = PermissionOverride(
            tenant_id=change.tenant_id,
            permission_name=change.permission_name,
            roles_required=change.roles_required,
            auto_approve_roles=change.auto_approve_roles,
            active=change.active,
            version=1,
            created_at=now,
            updated_at=now,
        )
        log.info(
            "repo.override.insert tenant_id=%s permission=%s",
            change.tenant_id,
            change.permission_name,
        )
        try:
            await self._col.insert_one(override.to_document())
        except DuplicateKeyError as e:
            log.info(
                "repo.override.insert duplicate tenant_id=%s permission=%s",
                change.tenant_id,
                change.permission_name,
            )
            raise ConflictError("override already exists; expected_version is required to update it") from e
        except PyMongoError as e:
            log.error("repo.override.insert failed tenant_id=%s error=%s", change.tenant_id, str(e))
            raise StorageError("override store unavailable") from e
        return override

    async def _update(self, change: OverrideChange, now: datetime) -> PermissionOverride:
        log.info(
            "repo.override.update tenant_id=%s permission=%s expected_version=%s",
            change.tenant_id,
            change.permission_name,
            change.expected_version,
        )
        try:
            doc = await self._col.find_one_and_update(
                {
                    "tenant_id": change.tenant_id,
                    "permission_name": change.permission_name,
                    "version": change.expected_version,
                },
                {
                    "$set": {
                        "roles_required": [r.value for r in change.roles_required],
                        "auto_approve_roles": [r.value for r in change.auto_approve_roles],
                        "active": change.active,
                        "updated_at": now,
                    },
                    "$inc": {"version": 1},
                },
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            log.error("repo.override.update failed tenant_id=%s error=%s", change.tenant_id, str(e))
            raise StorageError("override store unavailable") from e

        if doc:
            return PermissionOverride.from_document(doc)

        current = await self.get(change.tenant_id, change.permission_name)
        if current is None:
            log.info(
                "repo.override.update not_found tenant_id=%s permission=%s",
                change.tenant_id,
                change.permission_name,
            )
            raise NotFoundError("override not found")
        log.info(
            "repo.override.update stale tenant_id=%s permission=%s expected=%s current=%s",
            change.tenant_id,
            change.permission_name,
            change.expected_version,
            current.version,
        )
        raise ConflictError(
            f"override was modified concurrently (expected version {change.expected_version}, "
            f"current {current.version})"
        )

    async def _find_one(self, q: dict[str, Any]) -> Optional[dict[str, Any]]:
        try:
            return await self._col.find_one(q)
        except PyMongoError as e:
            log.error(
                "repo.override.find failed tenant_id=%s permission=%s error=%s",
                q.get("tenant_id"),
                q.get("permission_name"),
                str(e),
            )
            raise StorageError("override store unavailable") from e
