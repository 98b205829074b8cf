"""
Caching reverse proxy service.
"""

from typing import Any, Dict, Optional

import httpx
from fastapi import Response
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig

from service_proxy.app.adapters.upstream_client import UpstreamClient
from service_proxy.app.caching.cache_gate import CacheGate
from service_proxy.app.caching.cache_store import RedisCacheStore
from service_proxy.app.caching.keys import ResourceRef
from service_proxy.app.caching.ttl_policy import TTLPolicy
from service_proxy.app.domain.cache_aside import CacheAsidePipeline, ServedResource
from service_proxy.app.domain.resource_fetcher import ResourceFetcher


SERVICE_NAME = "proxy"
DEFAULT_PORT = 3000

TODOS_LIST = ResourceRef.generic("todos-list", "/todos")
PRODUCTS_LIST = ResourceRef.listing("products")


class ProxyService(BaseService):
    """Caching proxy service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        cache_store: Optional[RedisCacheStore] = None,
        upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(SERVICE_NAME, DEFAULT_PORT, config)

        self.cache_store = cache_store or RedisCacheStore(
            self.config.redis_url,
            timeout_seconds=self.config.cache_timeout_seconds,
        )
        self.ttl_policy = TTLPolicy.from_config(self.config)
        self.cache_gate = CacheGate(self.cache_store, metrics=self.metrics)

        self.upstreams: Dict[str, UpstreamClient] = {
            "products": self._build_upstream("products", self.config.products_upstream_url, upstream_transport),
            "todos": self._build_upstream("todos", self.config.todos_upstream_url, upstream_transport),
        }
        self.fetchers: Dict[str, ResourceFetcher] = {
            name: ResourceFetcher(
                upstream,
                self.cache_store,
                self.ttl_policy,
                await_writes=self.config.await_cache_writes,
                coalesce=self.config.coalesce_misses,
                metrics=self.metrics,
            )
            for name, upstream in self.upstreams.items()
        }
        self.pipelines: Dict[str, CacheAsidePipeline] = {
            name: CacheAsidePipeline(self.cache_gate, fetcher)
            for name, fetcher in self.fetchers.items()
        }

        self._setup_proxy_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.proxy_service = self

    def _build_upstream(
        self,
        name: str,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport],
    ) -> UpstreamClient:
        return UpstreamClient(
            name,
            base_url,
            timeout_seconds=self.config.upstream_timeout_seconds,
            failure_threshold=self.config.upstream_failure_threshold,
            recovery_timeout=self.config.upstream_recovery_timeout_seconds,
            metrics=self.metrics,
            transport=transport,
        )

    async def on_startup(self) -> None:
        await self.cache_store.connect()
        for upstream in self.upstreams.values():
            await upstream.start()
        self.logger.info(
            "Proxy started",
            upstreams={name: client.base_url for name, client in self.upstreams.items()},
            ttls=self.ttl_policy.as_dict(),
        )

    async def on_shutdown(self) -> None:
        for name, fetcher in self.fetchers.items():
            unfinished = await fetcher.drain(self.config.drain_timeout_seconds)
            if unfinished:
                self.logger.warning("Dropped pending cache writes on shutdown", upstream=name, dropped=unfinished)
        for upstream in self.upstreams.values():
            await upstream.close()
        await self.cache_store.close()
        self.logger.info("Proxy stopped")

    async def serve(self, upstream: str, ref: ResourceRef) -> Response:
        served = await self.pipelines[upstream].serve(ref)
        return self._render(served)

    @staticmethod
    def _render(served: ServedResource) -> JSONResponse:
        return JSONResponse(
            content=served.payload,
            headers={"X-Cache": served.cache_status},
        )

    def _setup_proxy_routes(self):
        """Set up proxied resource routes."""

        @self.app.get("/")
        async def todos_list():
            """Cached todo listing."""
            return await self.serve("todos", TODOS_LIST)

        @self.app.get("/products")
        async def products_list():
            """Cached product listing."""
            return await self.serve("products", PRODUCTS_LIST)

        @self.app.get("/products/{product_id}")
        async def product_detail(product_id: str):
            """Cached single product."""
            return await self.serve("products", ResourceRef.item("products", product_id))

    async def _check_dependencies(self) -> Dict[str, Any]:
        dependencies: Dict[str, Any] = {
            "cache": "ok" if await self.cache_store.ping() else "error",
        }
        for name, upstream in self.upstreams.items():
            dependencies[f"upstream_{name}"] = "ok" if not upstream.circuit_breaker.is_open() else "circuit_open"
        return dependencies


def create_app(config: Optional[ServiceConfig] = None, **kwargs):
    """Create FastAPI application."""
    service = ProxyService(config, **kwargs)
    return service.app


if __name__ == "__main__":
    service = ProxyService()
    service.run()
