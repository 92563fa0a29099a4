"""Storage module: the in-memory metadata cache."""

from .cache import CacheEntry, MetadataCache

__all__ = [
    "CacheEntry",
    "MetadataCache",
]
