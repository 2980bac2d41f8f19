"""Redis cache backend."""

import logging
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..settings import CacheRedisSettings
from .base import CacheBackend, CacheBackendUnavailable, CacheError

logger = logging.getLogger(__name__)


class RedisCacheBackend(CacheBackend):
    """Response cache shared by every worker through one Redis database.

    Entries are written with ``SETEX`` so Redis owns expiry. The client is
    created on first use; a failed initial ``PING`` surfaces as
    `CacheBackendUnavailable` and the next call tries again.
    """

    def __init__(
        self,
        host: str,
        port: int = 6379,
        password: Optional[str] = None,
        db: int = 0,
        **kwargs,
    ):
        self.host = host
        self.port = port
        self.password = password
        self.db = db
        self.connection_kwargs = kwargs

        self._client: Optional[redis.Redis] = None
        self._hits = 0
        self._misses = 0

    @classmethod
    def from_settings(cls, settings: CacheRedisSettings) -> "RedisCacheBackend":
        """Backend for the `PLAYSTATS_CACHE_REDIS_*` settings."""
        if not settings.host:
            raise ValueError("Redis host must be configured")

        password = settings.password.get_secret_value() if settings.password else None
        return cls(settings.host, port=settings.port, password=password, db=settings.db)

    async def _connect(self) -> redis.Redis:
        if self._client is not None:
            return self._client

        # bytes in, bytes out: entries are serialized CachedResponse payloads
        client = redis.Redis(
            host=self.host,
            port=self.port,
            password=self.password,
            db=self.db,
            decode_responses=False,
            **self.connection_kwargs,
        )
        try:
            await client.ping()
        except RedisError as e:
            await client.aclose()
            logger.error(f"Redis at {self.host}:{self.port} unreachable: {e}")
            raise CacheBackendUnavailable(str(e)) from e

        self._client = client
        return client

    async def get(self, key: str) -> Optional[bytes]:
        """Stored entry for `key`, None on a miss."""
        client = await self._connect()
        try:
            payload = await client.get(key)
        except RedisError as e:
            raise CacheError(f"GET {key} failed: {e}") from e

        if payload is None:
            self._misses += 1
        else:
            self._hits += 1
        return payload

    async def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> bool:
        """Store `value`, returning False when Redis cannot be written."""
        try:
            client = await self._connect()
            if ttl is None:
                await client.set(key, value)
            else:
                await client.setex(key, ttl, value)
        except (CacheBackendUnavailable, RedisError) as e:
            logger.warning(f"Could not store {key}: {e}")
            return False

        return True

    async def health_check(self) -> dict[str, Any]:
        """Connection status and number of keys in the database."""
        status: dict[str, Any] = {
            "backend": "redis",
            "host": self.host,
            "port": self.port,
            "db": self.db,
        }
        try:
            client = await self._connect()
            await client.ping()
            status["entries"] = await client.dbsize()
        except (CacheBackendUnavailable, RedisError) as e:
            status.update(status="disconnected", error=str(e))
            return status

        status["status"] = "connected"
        return status

    async def get_stats(self) -> dict[str, Any]:
        """Hit rate over lookups made by this process."""
        lookups = self._hits + self._misses
        hit_rate = (self._hits / lookups) * 100 if lookups else 0.0
        return {
            "backend": "redis",
            "hit_rate": round(hit_rate, 2),
            "total_hits": self._hits,
            "total_misses": self._misses,
        }

    async def close(self) -> None:
        """Close the connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
