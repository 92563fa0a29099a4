"""TubeStream - stream YouTube downloads through yt-dlp without storing media."""

__version__ = "0.1.0"

from .interfaces import DownloadRequest, MediaExtractor, Rendition, VideoMetadata
from .service import MetadataService

__all__ = [
    "DownloadRequest",
    "MediaExtractor",
    "Rendition",
    "VideoMetadata",
    "MetadataService",
]
