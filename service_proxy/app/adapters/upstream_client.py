"""
HTTP client for upstream data sources.
"""

from typing import Any, Dict, Optional, TYPE_CHECKING

import httpx

from shared.logging import get_logger
from shared.errors import UpstreamError
from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class UpstreamClient:
    """Long-lived client for one upstream source.

    The underlying ``httpx.AsyncClient`` pools connections and is shared by
    all requests; it is created in ``start`` and released in ``close``.
    Each call is made at most once, there is no retry.
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        metrics: Optional["MetricsCollector"] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.name = name
        self.base_url = base_url.rstrip('/')
        self.timeout_seconds = timeout_seconds
        self.metrics = metrics
        self.logger = get_logger(f"proxy.upstream.{name}")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            name=f"upstream_{name}",
        )

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
            self.logger.info("Upstream client started", base_url=self.base_url)

    async def close(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            await client.aclose()
            self.logger.info("Upstream client closed", base_url=self.base_url)

    async def get_json(self, path: str) -> Any:
        """GET ``path`` and return the decoded JSON body."""
        if self._client is None:
            raise UpstreamError(self.name, "Upstream client is not started", status_code=503)

        if self.metrics:
            with self.metrics.time_upstream(self.name):
                return self._decode(path, await self._guarded_request(path))
        return self._decode(path, await self._guarded_request(path))

    async def _guarded_request(self, path: str) -> httpx.Response:
        try:
            return await self.circuit_breaker.call(self._request, path)
        except CircuitBreakerOpenException as exc:
            self.logger.warning("Upstream circuit open, failing fast", path=path)
            raise UpstreamError(
                self.name,
                "Upstream temporarily unavailable",
                details={"path": path, "circuit": self.circuit_breaker.get_state()["state"]},
                status_code=503,
            ) from exc

    async def _request(self, path: str) -> httpx.Response:
        """Issue the call. Only outages (transport, timeout, 5xx) raise here,
        so only they count against the circuit breaker."""
        try:
            response = await self._client.get(path)  # type: ignore[union-attr]
        except httpx.TimeoutException as exc:
            self.logger.error("Upstream request timed out", path=path, timeout=self.timeout_seconds)
            raise UpstreamError(self.name, "Upstream request timed out", details={"path": path}) from exc
        except httpx.HTTPError as exc:
            self.logger.error("Upstream transport error", path=path, error=str(exc))
            raise UpstreamError(self.name, f"Transport error: {exc}", details={"path": path}) from exc

        if response.is_server_error:
            self._log_failed_response(path, response)
            raise self._status_error(path, response)
        return response

    def _decode(self, path: str, response: httpx.Response) -> Any:
        if not response.is_success:
            # 4xx: the upstream is healthy, the resource is not servable
            self._log_failed_response(path, response)
            raise self._status_error(path, response)

        try:
            data = response.json()
        except ValueError as exc:
            self.logger.error("Upstream returned a non-JSON body", path=path)
            raise UpstreamError(self.name, "Upstream returned a non-JSON body", details={"path": path}) from exc

        self.logger.debug("Upstream resource retrieved", path=path)
        return data

    def _log_failed_response(self, path: str, response: httpx.Response) -> None:
        self.logger.error(
            "Upstream request failed",
            path=path,
            status_code=response.status_code,
            response=response.text[:500]
        )

    def _status_error(self, path: str, response: httpx.Response) -> UpstreamError:
        return UpstreamError(
            self.name,
            f"Unexpected status {response.status_code}",
            details={"path": path, "status_code": response.status_code}
        )

    def get_state(self) -> Dict[str, Any]:
        return {
            "base_url": self.base_url,
            "started": self._client is not None,
            "circuit": self.circuit_breaker.get_state(),
        }
