"""
Cache-aside pipeline: gate first, fetcher on a miss.
"""

from dataclasses import dataclass
from typing import Any

from shared.logging import get_logger

from ..caching.cache_gate import CacheGate, CacheHit
from ..caching.keys import ResourceRef
from .resource_fetcher import ResourceFetcher


CACHE_HIT = "HIT"
CACHE_MISS = "MISS"


@dataclass(frozen=True)
class ServedResource:
    payload: Any
    cache_status: str
    key: str


class CacheAsidePipeline:
    """Serve a resource from the cache, falling through to upstream."""

    def __init__(self, gate: CacheGate, fetcher: ResourceFetcher):
        self.gate = gate
        self.fetcher = fetcher
        self.logger = get_logger("proxy.cache_aside")

    async def serve(self, ref: ResourceRef) -> ServedResource:
        key = ref.cache_key
        result = await self.gate.intercept(key)
        if isinstance(result, CacheHit):
            return ServedResource(result.value, CACHE_HIT, key)

        self.logger.debug("Fetching from upstream", key=key, reason=result.reason, path=ref.upstream_path)
        payload = await self.fetcher.fetch(ref)
        return ServedResource(payload, CACHE_MISS, key)
