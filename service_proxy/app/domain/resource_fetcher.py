"""
Resource fetcher: authoritative upstream read plus cache write-back.
"""

import asyncio
import json
from typing import Any, Dict, Optional, Set, TYPE_CHECKING

from shared.logging import get_logger
from shared.errors import CacheWriteError

from ..caching.keys import ResourceRef
from ..caching.ttl_policy import TTLPolicy

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from ..adapters.upstream_client import UpstreamClient
    from ..caching.cache_store import RedisCacheStore


def serialize_payload(payload: Any) -> str:
    """Canonical stored text form of an upstream body."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


class ResourceFetcher:
    """Fetch a resource from upstream on a miss and repopulate the cache.

    Write-backs run as background tasks unless ``await_writes`` is set; in
    either case a failed write never reaches the caller. With ``coalesce``
    set, concurrent misses for one key share a single upstream call.
    """

    def __init__(
        self,
        upstream: "UpstreamClient",
        store: "RedisCacheStore",
        ttl_policy: TTLPolicy,
        *,
        await_writes: bool = False,
        coalesce: bool = False,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.upstream = upstream
        self.store = store
        self.ttl_policy = ttl_policy
        self.await_writes = await_writes
        self.coalesce = coalesce
        self.metrics = metrics
        self.logger = get_logger("proxy.resource_fetcher")

        self._pending_writes: Set[asyncio.Task] = set()
        self._inflight: Dict[str, asyncio.Task] = {}

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    async def fetch(self, ref: ResourceRef) -> Any:
        """Return the upstream body for ``ref``. Raises ``UpstreamError``."""
        if not self.coalesce:
            return await self._fetch_and_store(ref)

        key = ref.cache_key
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_store(ref))
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget_inflight(key, done))
        else:
            self.logger.debug("Joining in-flight upstream fetch", key=key)
        # A cancelled waiter must not cancel the shared fetch
        return await asyncio.shield(task)

    async def _fetch_and_store(self, ref: ResourceRef) -> Any:
        payload = await self.upstream.get_json(ref.upstream_path)

        key = ref.cache_key
        ttl = self.ttl_policy.ttl_for(ref.resource_class)
        serialized = serialize_payload(payload)

        if self.await_writes:
            await self._write_back(ref, key, serialized, ttl)
        else:
            task = asyncio.create_task(self._write_back(ref, key, serialized, ttl))
            self._pending_writes.add(task)
            task.add_done_callback(self._pending_writes.discard)

        return payload

    async def _write_back(self, ref: ResourceRef, key: str, serialized: str, ttl: int) -> None:
        resource_class = ref.resource_class.value
        try:
            await self.store.set_with_ttl(key, serialized, ttl)
        except CacheWriteError as exc:
            self.logger.warning("Cache write failed", key=key, ttl=ttl, error=exc.message)
            self._record_write(resource_class, "error")
            return
        except Exception as exc:
            self.logger.error("Unexpected cache write failure", key=key, ttl=ttl, error=str(exc))
            self._record_write(resource_class, "error")
            return

        self.logger.debug("Cached upstream resource", key=key, ttl=ttl)
        self._record_write(resource_class, "ok")

    async def drain(self, timeout: Optional[float] = None) -> int:
        """Wait for outstanding write-backs. Returns how many were left unfinished."""
        if not self._pending_writes:
            return 0

        pending = set(self._pending_writes)
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        if not_done:
            self.logger.warning("Cache writes still pending after drain", pending=len(not_done))
            for task in not_done:
                task.cancel()
        return len(not_done)

    def _forget_inflight(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the outcome retrieved when every waiter has gone away
        if not task.cancelled():
            task.exception()

    def _record_write(self, resource_class: str, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_cache_write(resource_class, outcome)
