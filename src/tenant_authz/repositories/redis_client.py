from __future__ import annotations

import redis.asyncio as redis

from tenant_authz.configs.logging_config import get_logger
from tenant_authz.configs.settings import Settings

log = get_logger(__name__)


class RedisClient:
    """
    Owns the Redis connection used for the override cache.

    Built once at startup and handed to whatever needs it.
    """

    def __init__(self, settings: Settings):
        self._url = settings.redis_url
        self.client: redis.Redis | None = None

    async def connect(self) -> redis.Redis:
        try:
            log.info("redis.connect url=%s", self._url)
            self.client = redis.from_url(self._url, decode_responses=True)
            await self.client.ping()
            log.info("redis.connected")
        except Exception as e:
            log.error("redis.connect failed error=%s", str(e))
            raise
        return self.client

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None
