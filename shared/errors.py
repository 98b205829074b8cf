"""
Shared error handling for the caching proxy.

Only ``UpstreamError`` is ever surfaced to a caller. The cache errors are
raised by the store adapter and folded into a miss (reads) or a log line
(writes) before they can reach the HTTP layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from shared.logging import get_request_id


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ProxyException(Exception):
    """Base exception for proxy services."""

    status_code = 500

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=get_request_id(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class UpstreamError(ProxyException):
    """Upstream source failed: transport error, timeout or non-success status."""

    status_code = 502

    def __init__(
        self,
        service: str,
        message: str = "Upstream request failed",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.service = service
        super().__init__("UPSTREAM_ERROR", f"{service}: {message}", details, status_code)


class CacheError(ProxyException):
    """Base class for cache store faults."""

    def __init__(self, code: str, key: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.key = key
        super().__init__(code, message, {"key": key, **(details or {})})


class CacheUnavailable(CacheError):
    """Cache store connection, timeout or protocol error."""

    def __init__(self, key: str, message: str = "Cache store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_UNAVAILABLE", key, message, details)


class CacheDecodeError(CacheError):
    """Stored value could not be decoded."""

    def __init__(self, key: str, message: str = "Cached value could not be decoded", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_DECODE_ERROR", key, message, details)


class CacheWriteError(CacheError):
    """Cache store rejected or failed a write."""

    def __init__(self, key: str, message: str = "Cache write failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_WRITE_ERROR", key, message, details)
