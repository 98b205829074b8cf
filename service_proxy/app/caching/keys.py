"""
Cache key derivation for proxied resources.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ResourceClass(str, Enum):
    """Freshness classes; each carries its own TTL."""

    LISTING = "listing"
    ITEM = "item"
    GENERIC = "generic"


@dataclass(frozen=True)
class ResourceRef:
    """Identity of a cacheable upstream resource."""

    resource_class: ResourceClass
    collection: str
    item_id: Optional[str] = None
    key: Optional[str] = None
    path: Optional[str] = None

    def __post_init__(self):
        if not self.collection:
            raise ValueError("collection must be a non-empty string")
        if self.resource_class is ResourceClass.ITEM and not self.item_id:
            raise ValueError("item resources require a non-empty item_id")
        if self.resource_class is ResourceClass.GENERIC and not (self.key and self.path):
            raise ValueError("generic resources require an explicit key and path")

    @classmethod
    def listing(cls, collection: str) -> "ResourceRef":
        return cls(ResourceClass.LISTING, collection)

    @classmethod
    def item(cls, collection: str, item_id) -> "ResourceRef":
        return cls(ResourceClass.ITEM, collection, item_id=str(item_id) if item_id is not None else None)

    @classmethod
    def generic(cls, key: str, path: str) -> "ResourceRef":
        """A resource cached under an explicit key, e.g. ``todos-list`` for ``/todos``."""
        collection = path.strip("/").split("/", 1)[0] if path else ""
        return cls(ResourceClass.GENERIC, collection or key, key=key, path=path)

    @property
    def cache_key(self) -> str:
        if self.resource_class is ResourceClass.GENERIC:
            return self.key  # type: ignore[return-value]
        if self.resource_class is ResourceClass.ITEM:
            return f"{self.collection}:{self.item_id}"
        return self.collection

    @property
    def upstream_path(self) -> str:
        if self.path:
            return self.path if self.path.startswith("/") else f"/{self.path}"
        if self.resource_class is ResourceClass.ITEM:
            return f"/{self.collection}/{self.item_id}"
        return f"/{self.collection}"
