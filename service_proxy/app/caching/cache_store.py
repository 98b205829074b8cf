"""
Redis-backed cache store adapter.
"""

import asyncio
from typing import Optional

import redis.asyncio as redis

from shared.logging import get_logger
from shared.errors import CacheUnavailable, CacheWriteError


DEFAULT_CACHE_TIMEOUT = 0.5


class RedisCacheStore:
    """Key/value store with ``GET`` / ``SETEX`` semantics.

    One client (and its connection pool) is shared by every request. Each
    operation carries its own timeout so a hung Redis never hangs a request.
    """

    def __init__(self, redis_url: str, *, timeout_seconds: float = DEFAULT_CACHE_TIMEOUT):
        self.redis_url = redis_url
        self.timeout_seconds = timeout_seconds
        self.logger = get_logger("proxy.cache_store")
        self._redis: Optional[redis.Redis] = None

    @property
    def connected(self) -> bool:
        return self._redis is not None

    async def connect(self) -> None:
        """Create the shared client and check it responds.

        Never raises: the proxy must start even when Redis is down.
        """
        if self._redis is None:
            self.logger.info("Redis connecting", redis_url=self.redis_url)
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=self.timeout_seconds,
                socket_connect_timeout=self.timeout_seconds,
            )

        if await self.ping():
            self.logger.info("Redis connected", redis_url=self.redis_url)
        else:
            self.logger.error("Redis connection error, serving uncached until it recovers", redis_url=self.redis_url)

    async def close(self) -> None:
        """Close Redis connections."""
        if self._redis is None:
            return
        client, self._redis = self._redis, None
        try:
            await client.aclose()
        except Exception as exc:  # pragma: no cover - close is best effort
            self.logger.warning("Redis close failed", error=str(exc))

    async def ping(self) -> bool:
        """Return True when Redis responds to a ping."""
        if self._redis is None:
            return False
        try:
            return bool(await asyncio.wait_for(self._redis.ping(), timeout=self.timeout_seconds))
        except Exception as exc:
            self.logger.error("Redis health check failed", error=str(exc))
            return False

    async def get(self, key: str) -> Optional[str]:
        """Return the stored text for ``key`` or None when absent."""
        if self._redis is None:
            raise CacheUnavailable(key, "Cache store is not connected")
        try:
            return await asyncio.wait_for(self._redis.get(key), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise CacheUnavailable(key, "Cache read timed out", {"timeout": self.timeout_seconds}) from exc
        except Exception as exc:
            raise CacheUnavailable(key, f"Cache read failed: {exc}") from exc

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Store ``value`` under ``key`` expiring after ``ttl_seconds``."""
        if self._redis is None:
            raise CacheWriteError(key, "Cache store is not connected")
        try:
            return bool(
                await asyncio.wait_for(
                    self._redis.setex(key, ttl_seconds, value),
                    timeout=self.timeout_seconds,
                )
            )
        except asyncio.TimeoutError as exc:
            raise CacheWriteError(key, "Cache write timed out", {"timeout": self.timeout_seconds}) from exc
        except Exception as exc:
            raise CacheWriteError(key, f"Cache write failed: {exc}") from exc
