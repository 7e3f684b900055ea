# app/services/redis_client.py
"""
Shared Redis connection for worker coordination.

Redis holds two kinds of short-lived state: job heartbeats and the
per-client processing locks that keep two workers off the same client.
"""

import uuid

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_CONNECTIONS = 20

# Only the holder of the token may delete the lock
_RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

# Only the holder of the token may push the expiry out
_EXTEND_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class CoordinationRedisClient:
    def __init__(self, url: str | None = None):
        self.url = url
        self.pool: ConnectionPool | None = None
        self.client: redis.Redis | None = None
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return

        url = self.url or settings.REDIS_URL
        self.pool = ConnectionPool.from_url(
            url,
            max_connections=MAX_CONNECTIONS,
            retry_on_timeout=True,
            socket_connect_timeout=10,
            socket_timeout=10,
            health_check_interval=30,
            decode_responses=True,
        )
        self.client = redis.Redis(connection_pool=self.pool)

        try:
            await self.client.ping()
        except Exception as e:
            logger.error("Redis unreachable at startup", error=str(e))
            raise RuntimeError("Redis initialization failed") from e

        self._initialized = True
        logger.info("Redis connection pool ready", max_connections=MAX_CONNECTIONS)

    async def close(self) -> None:
        self._initialized = False
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            logger.info("Redis connection pool closed")
        except Exception as e:
            logger.error("Redis close failed", error=str(e))

    async def _require_client(self) -> redis.Redis:
        # Lazily connect so one-off scripts and tests need no lifespan
        if not self._initialized:
            await self.initialize()
        return self.client

    async def ping(self) -> bool:
        try:
            client = await self._require_client()
            return bool(await client.ping())
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def get(self, key: str) -> str | None:
        try:
            client = await self._require_client()
            return await client.get(key) or None
        except Exception as e:
            logger.error("Redis read failed", key=key[:40], error=str(e))
            return None

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        try:
            client = await self._require_client()
            return bool(await client.set(key, value, ex=ttl_s or None))
        except Exception as e:
            logger.error("Redis write failed", key=key[:40], error=str(e))
            return False

    async def acquire_lock(self, key: str, ttl_s: int) -> str | None:
        """
        SET NX EX a random token under ``key``.

        Returns the token when the lock was taken and None when someone else
        holds it. Connection failures propagate so an outage is never read as
        "lock held".
        """
        client = await self._require_client()
        token = uuid.uuid4().hex
        taken = await client.set(key, token, nx=True, ex=ttl_s)
        return token if taken else None

    async def extend_lock(self, key: str, token: str, ttl_s: int) -> bool:
        """
        Reset the expiry of a lock this caller still holds.

        Returns False when the lock expired or now belongs to someone else.
        Connection failures propagate, as in acquire_lock.
        """
        client = await self._require_client()
        return bool(await client.eval(_EXTEND_LOCK_SCRIPT, 1, key, token, ttl_s))

    async def release_lock(self, key: str, token: str) -> bool:
        try:
            client = await self._require_client()
            return bool(await client.eval(_RELEASE_LOCK_SCRIPT, 1, key, token))
        except Exception as e:
            logger.error("Redis lock release failed", key=key[:40], error=str(e))
            return False


fast_redis = CoordinationRedisClient()
