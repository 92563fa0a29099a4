"""Interfaces (Protocols) and value types shared across the package."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .ingestion.process import MediaStream

AUDIO_ONLY_LABEL = "Audio Only"


@dataclass(frozen=True)
class Rendition:
    """One selectable quality variant of a video."""

    label: str
    height: int  # 0 means audio only
    container_hint: str = "mp4"

    @property
    def is_audio_only(self) -> bool:
        return self.height == 0

    def to_dict(self) -> dict:
        return {"label": self.label, "height": self.height, "ext": self.container_hint}


@dataclass(frozen=True)
class VideoMetadata:
    """Video metadata as reported by the extractor."""

    title: str
    thumbnail: str
    duration_label: str
    channel: str
    renditions: tuple[Rendition, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "thumbnail": self.thumbnail,
            "duration": self.duration_label,
            "channel": self.channel,
            "formats": [r.to_dict() for r in self.renditions],
        }


@dataclass(frozen=True)
class DownloadRequest:
    """One download, scoped to a single HTTP request."""

    source_url: str
    rendition_selector: str | None = None


class MediaExtractor(Protocol):
    """Protocol for the external tool that extracts metadata and media."""

    @property
    def tool_path(self) -> str:
        """Executable the extractor invokes."""
        ...

    async def fetch_metadata(self, url: str) -> VideoMetadata:
        """Get video metadata without downloading."""
        ...

    async def stream_media(self, url: str, format_spec: str) -> "MediaStream":
        """Start writing the selected rendition to a pipe."""
        ...
