"""
Per-resource-class TTL table.
"""

from dataclasses import dataclass
from typing import Dict

from shared.config import BaseConfig

from .keys import ResourceClass


DEFAULT_LISTING_TTL = 15
DEFAULT_ITEM_TTL = 60
DEFAULT_GENERIC_TTL = 20


@dataclass(frozen=True)
class TTLPolicy:
    """TTL in seconds for each resource class, fixed at write time."""

    listing: int = DEFAULT_LISTING_TTL
    item: int = DEFAULT_ITEM_TTL
    generic: int = DEFAULT_GENERIC_TTL

    def __post_init__(self):
        for name, value in self.as_dict().items():
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ValueError(f"TTL for {name} must be a positive integer, got {value!r}")

    @classmethod
    def from_config(cls, config: BaseConfig) -> "TTLPolicy":
        return cls(
            listing=config.ttl_listing_seconds,
            item=config.ttl_item_seconds,
            generic=config.ttl_generic_seconds,
        )

    def ttl_for(self, resource_class: ResourceClass) -> int:
        return getattr(self, ResourceClass(resource_class).value)

    def as_dict(self) -> Dict[str, int]:
        return {"listing": self.listing, "item": self.item, "generic": self.generic}
