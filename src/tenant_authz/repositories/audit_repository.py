from __future__ import annotations

from datetime import datetime

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from tenant_authz.configs.logging_config import get_logger
from tenant_authz.configs.settings import Settings
from tenant_authz.domain.entities.audit import AuditFilters, AuditLogEntry
from tenant_authz.errors import StorageError
from tenant_authz.repositories.base import AuditSink
from tenant_authz.utils.time_utils import as_utc, truncate_to_ms

log = get_logger(__name__)

NEWEST_FIRST = [("timestamp", -1), ("seq", -1)]


class AuditRepository(AuditSink):
    """
    Mongo-backed audit sink.

    Entries are only ever inserted; this class has no update or delete path.
    A per-tenant counter document hands out sequence numbers and carries the
    highest timestamp issued so far, which keeps timestamps non-decreasing
    per tenant across processes.
    """

    def __init__(self, db: AsyncIOMotorDatabase, settings: Settings):
        self._db = db
        self._settings = settings
        self._col = db[settings.audit_collection]
        self._counters = db[settings.audit_counters_collection]

    async def ensure_indexes(self) -> None:
        log.info("repo.audit.ensure_indexes start")
        try:
            await self._col.create_index([("id", 1)], unique=True)
            await self._col.create_index([("tenant_id", 1), ("seq", 1)], unique=True)
            await self._col.create_index([("tenant_id", 1), ("timestamp", -1), ("seq", -1)])
            await self._col.create_index([("tenant_id", 1), ("user_id", 1), ("timestamp", -1)])
            await self._col.create_index([("tenant_id", 1), ("resource", 1), ("action", 1), ("timestamp", -1)])
        except PyMongoError as e:
            log.error("repo.audit.ensure_indexes failed error=%s", str(e))
            raise StorageError("audit sink unavailable") from e
        log.info("repo.audit.ensure_indexes done")

    async def reserve(self, tenant_id: str, now: datetime) -> tuple[int, datetime]:
        now = truncate_to_ms(now)
        try:
            doc = await self._counters.find_one_and_update(
                {"_id": tenant_id},
                {"$inc": {"seq": 1}, "$max": {"last_timestamp": now}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            log.error("repo.audit.reserve failed tenant_id=%s error=%s", tenant_id, str(e))
            raise StorageError("audit sink unavailable") from e
        return int(doc["seq"]), as_utc(doc["last_timestamp"])

    async def insert(self, entry: AuditLogEntry) -> None:
        log.info(
            "repo.audit.insert tenant_id=%s seq=%s action=%s resource=%s",
            entry.tenant_id,
            entry.seq,
            entry.action,
            entry.resource,
        )
        try:
            await self._col.insert_one(entry.to_document())
        except PyMongoError as e:
            log.error("repo.audit.insert failed tenant_id=%s error=%s", entry.tenant_id, str(e))
            raise StorageError("audit sink unavailable") from e

    async def query(
        self,
        tenant_id: str,
        filters: AuditFilters,
        *,
        limit: int,
        offset: int,
    ) -> tuple[list[AuditLogEntry], int]:
        q = filters.as_query(tenant_id)
        log.info(
            "repo.audit.query tenant_id=%s skip=%s limit=%s query_keys=%s",
            tenant_id,
            offset,
            limit,
            sorted(q.keys()),
        )
        try:
            cursor = self._col.find(q).sort(NEWEST_FIRST).skip(offset).limit(limit)
            docs = await cursor.to_list(length=limit)
            total = await self._col.count_documents(q)
        except PyMongoError as e:
            log.error("repo.audit.query failed tenant_id=%s error=%s", tenant_id, str(e))
            raise StorageError("audit sink unavailable") from e
        return [AuditLogEntry.from_document(d) for d in docs], total
