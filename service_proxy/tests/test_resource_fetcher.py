"""
Unit tests for the resource fetcher and the cache-aside pipeline.
"""

import asyncio
import json

import pytest
import pytest_asyncio

from service_proxy.app.adapters.upstream_client import UpstreamClient
from service_proxy.app.caching.cache_gate import CacheGate
from service_proxy.app.caching.keys import ResourceRef
from service_proxy.app.caching.ttl_policy import TTLPolicy
from service_proxy.app.domain.cache_aside import CacheAsidePipeline
from service_proxy.app.domain.resource_fetcher import ResourceFetcher, serialize_payload
from shared.errors import UpstreamError
from shared.metrics import MetricsCollector
from shared.test_helpers import InMemoryCacheStore, UpstreamRecorder


PRODUCT_7 = {"id": 7, "title": "X"}
PRODUCTS = {"products": [{"id": 1}, {"id": 2}], "total": 2}


@pytest.fixture
def recorder():
    return (
        UpstreamRecorder()
        .add("/products", PRODUCTS)
        .add("/products/1", {"id": 1, "title": "One"})
        .add("/products/2", {"id": 2, "title": "Two"})
        .add("/products/7", PRODUCT_7)
    )


@pytest.fixture
def store():
    return InMemoryCacheStore()


@pytest.fixture
def metrics():
    return MetricsCollector("proxy")


@pytest_asyncio.fixture
async def upstream(recorder):
    client = UpstreamClient("products", "https://dummyjson.test", transport=recorder.transport())
    await client.start()
    yield client
    await client.close()


def make_fetcher(upstream, store, metrics=None, **kwargs):
    return ResourceFetcher(upstream, store, TTLPolicy(listing=15, item=60, generic=20), metrics=metrics, **kwargs)


class TestResourceFetcher:
    """Test cases for ResourceFetcher."""

    @pytest.mark.asyncio
    async def test_miss_populates_cache(self, upstream, store, metrics):
        fetcher = make_fetcher(upstream, store, metrics, await_writes=True)

        payload = await fetcher.fetch(ResourceRef.item("products", "7"))

        assert payload == PRODUCT_7
        assert store.decoded("products:7") == payload
        assert store.data["products:7"] == '{"id":7,"title":"X"}'
        assert store.ttl_for("products:7") == 60
        assert metrics.sample("cache_writes_total", resource_class="item", outcome="ok") == 1

    @pytest.mark.asyncio
    async def test_ttl_differs_by_resource_class(self, upstream, store):
        fetcher = make_fetcher(upstream, store, await_writes=True)

        await fetcher.fetch(ResourceRef.listing("products"))
        await fetcher.fetch(ResourceRef.item("products", "7"))

        assert store.ttl_for("products") == 15
        assert store.ttl_for("products:7") == 60

    @pytest.mark.asyncio
    async def test_distinct_items_get_distinct_entries(self, upstream, store):
        fetcher = make_fetcher(upstream, store, await_writes=True)

        await fetcher.fetch(ResourceRef.item("products", "1"))
        await fetcher.fetch(ResourceRef.item("products", "2"))

        assert store.decoded("products:1")["title"] == "One"
        assert store.decoded("products:2")["title"] == "Two"

    @pytest.mark.asyncio
    async def test_upstream_failure_propagates_without_write(self, upstream, recorder, store):
        recorder.add("/products/9", {"message": "boom"}, status_code=500)
        fetcher = make_fetcher(upstream, store, await_writes=True)

        with pytest.raises(UpstreamError):
            await fetcher.fetch(ResourceRef.item("products", "9"))

        assert store.writes == []
        assert "products:9" not in store.data

    @pytest.mark.asyncio
    async def test_write_failure_does_not_affect_response(self, upstream, store, metrics):
        store.fail_writes = True
        fetcher = make_fetcher(upstream, store, metrics, await_writes=True)

        payload = await fetcher.fetch(ResourceRef.item("products", "7"))

        assert payload == PRODUCT_7
        assert metrics.sample("cache_writes_total", resource_class="item", outcome="error") == 1

    @pytest.mark.asyncio
    async def test_background_write_completes_on_drain(self, upstream, store):
        fetcher = make_fetcher(upstream, store)

        payload = await fetcher.fetch(ResourceRef.listing("products"))

        assert payload == PRODUCTS
        assert await fetcher.drain(timeout=1.0) == 0
        assert fetcher.pending_writes == 0
        assert store.decoded("products") == PRODUCTS

    @pytest.mark.asyncio
    async def test_background_write_failure_is_swallowed(self, upstream, store):
        store.fail_writes = True
        fetcher = make_fetcher(upstream, store)

        assert await fetcher.fetch(ResourceRef.listing("products")) == PRODUCTS
        assert await fetcher.drain(timeout=1.0) == 0
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_concurrent_misses_each_call_upstream(self, upstream, recorder, store):
        fetcher = make_fetcher(upstream, store, await_writes=True)
        ref = ResourceRef.item("products", "7")

        results = await asyncio.gather(*(fetcher.fetch(ref) for _ in range(3)))

        assert results == [PRODUCT_7] * 3
        assert recorder.calls_to("/products/7") == 3
        assert len(store.writes) == 3

    @pytest.mark.asyncio
    async def test_coalescing_shares_one_upstream_call(self, upstream, recorder, store):
        fetcher = make_fetcher(upstream, store, await_writes=True, coalesce=True)
        ref = ResourceRef.item("products", "7")

        results = await asyncio.gather(*(fetcher.fetch(ref) for _ in range(3)))

        assert results == [PRODUCT_7] * 3
        assert recorder.calls_to("/products/7") == 1
        assert len(store.writes) == 1

        # Once settled the next miss goes upstream again
        await fetcher.fetch(ref)
        assert recorder.calls_to("/products/7") == 2

    @pytest.mark.asyncio
    async def test_coalescing_fans_out_failures(self, upstream, recorder, store):
        recorder.add("/products/9", {"message": "boom"}, status_code=502)
        fetcher = make_fetcher(upstream, store, coalesce=True)
        ref = ResourceRef.item("products", "9")

        results = await asyncio.gather(*(fetcher.fetch(ref) for _ in range(2)), return_exceptions=True)

        assert all(isinstance(result, UpstreamError) for result in results)
        assert recorder.calls_to("/products/9") == 1


class TestCacheAsidePipeline:
    """Test cases for CacheAsidePipeline."""

    @pytest.mark.asyncio
    async def test_hit_short_circuits_upstream(self, upstream, recorder, store):
        store.data["products:7"] = serialize_payload({"id": 7, "title": "cached"})
        pipeline = CacheAsidePipeline(CacheGate(store), make_fetcher(upstream, store, await_writes=True))

        served = await pipeline.serve(ResourceRef.item("products", "7"))

        assert served.cache_status == "HIT"
        assert served.payload == {"id": 7, "title": "cached"}
        assert recorder.calls == []
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, upstream, recorder, store):
        pipeline = CacheAsidePipeline(CacheGate(store), make_fetcher(upstream, store, await_writes=True))
        ref = ResourceRef.item("products", "7")

        first = await pipeline.serve(ref)
        second = await pipeline.serve(ref)

        assert first.cache_status == "MISS"
        assert second.cache_status == "HIT"
        assert first.payload == second.payload == PRODUCT_7
        assert recorder.calls_to("/products/7") == 1

    @pytest.mark.asyncio
    async def test_cache_outage_falls_through(self, upstream, recorder, store):
        store.fail_reads = True
        store.fail_writes = True
        pipeline = CacheAsidePipeline(CacheGate(store), make_fetcher(upstream, store, await_writes=True))

        served = await pipeline.serve(ResourceRef.listing("products"))

        assert served.cache_status == "MISS"
        assert served.payload == PRODUCTS
        assert recorder.calls_to("/products") == 1

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_overwritten(self, upstream, store):
        store.data["products"] = "{not json"
        pipeline = CacheAsidePipeline(CacheGate(store), make_fetcher(upstream, store, await_writes=True))

        served = await pipeline.serve(ResourceRef.listing("products"))

        assert served.payload == PRODUCTS
        assert json.loads(store.data["products"]) == PRODUCTS
