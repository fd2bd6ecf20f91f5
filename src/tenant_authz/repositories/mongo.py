from __future__ import annotations

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from tenant_authz.configs.logging_config import get_logger
from tenant_authz.configs.settings import Settings

log = get_logger(__name__)


def get_mongo_client(settings: Settings) -> AsyncIOMotorClient:
    log.info("mongo.client.create db=%s", settings.mongo_db)
    # tz_aware so audit and override timestamps come back as UTC datetimes
    return AsyncIOMotorClient(settings.mongo_uri, tz_aware=True)


def get_mongo_db(client: AsyncIOMotorClient, settings: Settings) -> AsyncIOMotorDatabase:
    log.info("mongo.db.select db=%s", settings.mongo_db)
    return client[settings.mongo_db]
