"""Metadata service - cache-aware lookups shared by the API, relay and CLI."""

import logging

from .exceptions import InvalidURLError, TubeStreamError
from .ingestion.validation import is_valid_url
from .interfaces import MediaExtractor, VideoMetadata
from .storage.cache import MetadataCache

logger = logging.getLogger(__name__)


class MetadataService:
    """Service layer for video metadata."""

    def __init__(
        self,
        extractor: MediaExtractor,
        cache: MetadataCache,
        allowed_hosts: list[str] | None = None,
    ):
        self.extractor = extractor
        self.cache = cache
        self.allowed_hosts = allowed_hosts

    def validate(self, url: str) -> str:
        """Return the stripped URL, or raise InvalidURLError."""
        if not is_valid_url(url, self.allowed_hosts):
            raise InvalidURLError()
        return url.strip()

    async def get_info(self, url: str) -> VideoMetadata:
        """
        Get metadata for a URL, fetching through the extractor on a miss.

        Raises:
            UpstreamBlockedError, ToolUnavailableError, ExtractionFailedError:
                as classified by the extractor; nothing is cached on failure.
        """
        cached = self.cache.get(url)
        if cached is not None:
            logger.debug("Metadata cache hit: %s", url)
            return cached

        logger.debug("Metadata cache miss: %s", url)
        info = await self.extractor.fetch_metadata(url)
        self.cache.put(url, info)
        return info

    async def lookup(self, url: str) -> VideoMetadata | None:
        """Best-effort variant of get_info; failures return None."""
        try:
            return await self.get_info(url)
        except TubeStreamError as e:
            logger.warning("Metadata lookup failed for %s (%s): %s", url, e.kind.value, e)
            return None
