"""
Proxy caching package.

Cache keys are pure functions of the requested resource, TTLs are fixed per
resource class, and expiry is left entirely to the store.
"""

from .keys import ResourceClass, ResourceRef
from .ttl_policy import TTLPolicy
from .cache_store import RedisCacheStore
from .cache_gate import CacheGate, CacheHit, CacheMiss, GateResult

__all__ = [
    "CacheGate",
    "CacheHit",
    "CacheMiss",
    "GateResult",
    "RedisCacheStore",
    "ResourceClass",
    "ResourceRef",
    "TTLPolicy",
]
