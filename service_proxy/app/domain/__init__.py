"""
Domain services for the proxy: resource fetching and the cache-aside flow.
"""

from .resource_fetcher import ResourceFetcher
from .cache_aside import CacheAsidePipeline, ServedResource

__all__ = ["CacheAsidePipeline", "ResourceFetcher", "ServedResource"]
