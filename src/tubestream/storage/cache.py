"""In-memory metadata cache with lazy TTL expiry."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from ..interfaces import VideoMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    payload: VideoMetadata
    expires_at: float


class MetadataCache:
    """Maps source URL to metadata until the entry's TTL runs out.

    Expiry is checked on read; there is no sweep and no size bound, so
    the map grows with the number of distinct URLs seen. Safe under the
    single-threaded event loop without locking.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @staticmethod
    def normalize_key(url: str) -> str:
        return url.strip()

    def get(self, url: str) -> VideoMetadata | None:
        key = self.normalize_key(url)
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() > entry.expires_at:
            self._entries.pop(key, None)
            logger.debug("Metadata cache entry expired: %s", key)
            return None

        return entry.payload

    def put(self, url: str, payload: VideoMetadata) -> None:
        self._entries[self.normalize_key(url)] = CacheEntry(
            payload=payload,
            expires_at=self._clock() + self.ttl_seconds,
        )

    def __len__(self) -> int:
        return len(self._entries)
