"""
Cache gate: answer a request from the cache before any upstream work.
"""

import json
from dataclasses import dataclass
from typing import Any, Optional, Union, TYPE_CHECKING

from shared.logging import get_logger
from shared.errors import CacheDecodeError, CacheUnavailable

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from .cache_store import RedisCacheStore


MISS_ABSENT = "absent"
MISS_UNAVAILABLE = "unavailable"
MISS_DECODE_ERROR = "decode_error"


@dataclass(frozen=True)
class CacheHit:
    key: str
    value: Any


@dataclass(frozen=True)
class CacheMiss:
    key: str
    reason: str = MISS_ABSENT


GateResult = Union[CacheHit, CacheMiss]


class CacheGate:
    """Single read against the store; fails open on any cache fault."""

    def __init__(self, store: "RedisCacheStore", metrics: Optional["MetricsCollector"] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("proxy.cache_gate")

    async def intercept(self, key: str) -> GateResult:
        """Look ``key`` up once. Never raises for cache faults."""
        if not key:
            raise ValueError("cache key must be a non-empty string")

        try:
            raw = await self.store.get(key)
            if not raw:
                return self._miss(key, MISS_ABSENT)
            value = self._decode(key, raw)
        except CacheUnavailable as exc:
            self.logger.warning("Cache unavailable, falling through to upstream", key=key, error=exc.message)
            return self._miss(key, MISS_UNAVAILABLE)
        except CacheDecodeError as exc:
            # Left in place; the next write or the TTL replaces it
            self.logger.warning("Discarding undecodable cache payload", key=key, error=exc.message)
            return self._miss(key, MISS_DECODE_ERROR)
        except Exception as exc:
            self.logger.error("Unexpected cache store failure, falling through to upstream", key=key, error=str(exc))
            return self._miss(key, MISS_UNAVAILABLE)

        self._record("hit")
        self.logger.debug("Cache hit", key=key)
        return CacheHit(key, value)

    @staticmethod
    def _decode(key: str, raw: Any) -> Any:
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise CacheDecodeError(key, f"Invalid JSON payload: {exc}") from exc

    def _miss(self, key: str, reason: str) -> CacheMiss:
        self._record("miss" if reason == MISS_ABSENT else reason)
        self.logger.debug("Cache miss", key=key, reason=reason)
        return CacheMiss(key, reason)

    def _record(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_cache_lookup(outcome)
