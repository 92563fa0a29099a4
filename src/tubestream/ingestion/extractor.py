"""yt-dlp adapter: metadata dumps and media streams."""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from ..config import Settings, settings as default_settings
from ..exceptions import ExtractionFailedError, ToolUnavailableError, classify_failure
from ..interfaces import VideoMetadata
from .process import MediaStream
from .renditions import format_duration, select_renditions

logger = logging.getLogger(__name__)

TOOL_NAME = "yt-dlp.exe" if os.name == "nt" else "yt-dlp"

STREAM_RETRIES = 3
FRAGMENT_RETRIES = 3
EXTRACTOR_RETRIES = 1


def resolve_binary_path(configured: str = "") -> str:
    """Pick the yt-dlp executable.

    Order: explicit path, the console script installed next to this
    interpreter by the yt-dlp package, then the bare name for PATH lookup.
    """
    if configured:
        return configured

    scripts_dir = Path(sys.executable).parent
    bundled = scripts_dir / TOOL_NAME
    if bundled.exists():
        return str(bundled)

    return TOOL_NAME


class YtDlpExtractor:
    """Runs yt-dlp as a child process."""

    def __init__(
        self,
        binary_path: str = "",
        cookies: str = "",
        cookies_from_browser: str = "",
        concurrent_fragments: int = 8,
        chunk_size: int = 64 * 1024,
        terminate_timeout: float = 5.0,
    ):
        self._tool_path = resolve_binary_path(binary_path)
        self.cookies = cookies
        self.cookies_from_browser = cookies_from_browser
        self.concurrent_fragments = concurrent_fragments
        self.chunk_size = chunk_size
        self.terminate_timeout = terminate_timeout

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "YtDlpExtractor":
        settings = settings or default_settings
        return cls(
            binary_path=settings.yt_dlp_path,
            cookies=settings.yt_dlp_cookies,
            cookies_from_browser=settings.yt_dlp_cookies_from_browser,
            concurrent_fragments=settings.ytdlp_concurrent_fragments,
            chunk_size=settings.stream_chunk_size,
            terminate_timeout=settings.terminate_timeout,
        )

    @property
    def tool_path(self) -> str:
        return self._tool_path

    def auth_args(self) -> list[str]:
        """Cookie flags; an explicit cookie file beats the browser profile."""
        if self.cookies:
            return ["--cookies", self.cookies]
        if self.cookies_from_browser:
            return ["--cookies-from-browser", self.cookies_from_browser]
        return []

    def metadata_command(self, url: str) -> list[str]:
        return [
            self._tool_path,
            "--dump-single-json",
            "--skip-download",
            "--no-warnings",
            "--no-playlist",
            "--no-check-formats",
            *self.auth_args(),
            "--",
            url,
        ]

    def stream_command(self, url: str, format_spec: str) -> list[str]:
        return [
            self._tool_path,
            "-f", format_spec,
            "-o", "-",
            "--no-warnings",
            "--no-playlist",
            "--retries", str(STREAM_RETRIES),
            "--fragment-retries", str(FRAGMENT_RETRIES),
            "--extractor-retries", str(EXTRACTOR_RETRIES),
            "--concurrent-fragments", str(self.concurrent_fragments),
            *self.auth_args(),
            "--",
            url,
        ]

    async def _spawn(self, command: list[str]):
        try:
            return await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Could not start %s: %s", self._tool_path, e)
            raise ToolUnavailableError() from e

    async def fetch_metadata(self, url: str) -> VideoMetadata:
        """Get video metadata without downloading."""
        logger.info("Fetching metadata for %s", url)
        process = await self._spawn(self.metadata_command(url))
        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            error = classify_failure(message)
            logger.warning(
                "yt-dlp metadata failed (exit %s, %s): %s",
                process.returncode,
                error.kind.value,
                message,
            )
            raise error

        try:
            data = json.loads(stdout)
        except ValueError as e:
            raise ExtractionFailedError(f"yt-dlp returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ExtractionFailedError("yt-dlp returned unexpected output")

        return build_metadata(data)

    async def stream_media(self, url: str, format_spec: str) -> MediaStream:
        """Start yt-dlp writing the selected rendition to stdout."""
        command = self.stream_command(url, format_spec)
        logger.info("Streaming %s with format %s", url, format_spec)
        process = await self._spawn(command)
        return MediaStream(
            process,
            chunk_size=self.chunk_size,
            terminate_timeout=self.terminate_timeout,
        )


def build_metadata(data: dict) -> VideoMetadata:
    """Build VideoMetadata from a yt-dlp info dict."""
    return VideoMetadata(
        title=data.get("title") or "Unknown",
        thumbnail=data.get("thumbnail") or "",
        duration_label=format_duration(data.get("duration") or 0),
        channel=data.get("channel") or data.get("uploader") or "Unknown",
        renditions=tuple(select_renditions(data.get("formats") or [])),
    )
