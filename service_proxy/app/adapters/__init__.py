"""
Adapters for upstream data sources.
"""

from .upstream_client import UpstreamClient

__all__ = ["UpstreamClient"]
