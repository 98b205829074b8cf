"""
Shared configuration management for the caching proxy.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PROXY_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    json_logs: bool = Field(default=True)

    # Cache store
    redis_url: str = Field(default="redis://localhost:6379/0")
    cache_timeout_seconds: float = Field(default=0.5, gt=0)

    # Upstream sources
    products_upstream_url: str = Field(default="https://dummyjson.com")
    todos_upstream_url: str = Field(default="https://jsonplaceholder.typicode.com")
    upstream_timeout_seconds: float = Field(default=10.0, gt=0)
    upstream_failure_threshold: int = Field(default=5, ge=1)
    upstream_recovery_timeout_seconds: float = Field(default=30.0, ge=0)

    # Freshness per resource class
    ttl_listing_seconds: int = Field(default=15, gt=0)
    ttl_item_seconds: int = Field(default=60, gt=0)
    ttl_generic_seconds: int = Field(default=20, gt=0)

    # Write-back behaviour
    await_cache_writes: bool = Field(default=False)
    coalesce_misses: bool = Field(default=False)
    drain_timeout_seconds: float = Field(default=5.0, ge=0)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
