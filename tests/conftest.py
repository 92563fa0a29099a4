import asyncio

import pytest

from tubestream.config import Settings
from tubestream.ingestion.process import MediaStream
from tubestream.ingestion.renditions import select_renditions
from tubestream.interfaces import VideoMetadata

VIDEO_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, target_height=1080, terminate_timeout=0.5)


def make_metadata(title: str = "My Video") -> VideoMetadata:
    return VideoMetadata(
        title=title,
        thumbnail="https://i.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg",
        duration_label="3:33",
        channel="Rick Astley",
        renditions=tuple(
            select_renditions(
                [
                    {"height": 720, "vcodec": "avc1"},
                    {"height": 1080, "vcodec": "avc1"},
                ]
            )
        ),
    )


class FakeProcess:
    """Stand-in for asyncio.subprocess.Process backed by StreamReaders.

    Must be created inside a running event loop.
    """

    def __init__(self, ignore_sigterm: bool = False):
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.pid = 4242
        self.returncode = None
        self.signals: list[str] = []
        self.ignore_sigterm = ignore_sigterm
        self._exited = asyncio.Event()

    def feed(self, data: bytes) -> None:
        if self.returncode is None:
            self.stdout.feed_data(data)

    def finish(self, code: int = 0, stderr: bytes = b"") -> None:
        if stderr:
            self.stderr.feed_data(stderr)
        self._exit(code)

    def _exit(self, code: int) -> None:
        if self.returncode is None:
            self.stdout.feed_eof()
            self.stderr.feed_eof()
            self.returncode = code
            self._exited.set()

    def terminate(self) -> None:
        self.signals.append("SIGTERM")
        if not self.ignore_sigterm:
            self._exit(-15)

    def kill(self) -> None:
        self.signals.append("SIGKILL")
        self._exit(-9)

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    async def communicate(self) -> tuple[bytes, bytes]:
        stdout = await self.stdout.read()
        stderr = await self.stderr.read()
        await self.wait()
        return stdout, stderr


class FakeExtractor:
    """MediaExtractor that never spawns anything."""

    tool_path = "/usr/local/bin/yt-dlp"

    def __init__(
        self,
        metadata: VideoMetadata | None = None,
        metadata_error: Exception | None = None,
        chunks: list[bytes] | None = None,
        exit_code: int = 0,
        stderr: bytes = b"",
    ):
        self.metadata = metadata or make_metadata()
        self.metadata_error = metadata_error
        self.chunks = chunks if chunks is not None else [b"media-bytes"]
        self.exit_code = exit_code
        self.stderr = stderr
        self.metadata_calls: list[str] = []
        self.stream_calls: list[tuple[str, str]] = []
        self.processes: list[FakeProcess] = []

    async def fetch_metadata(self, url: str) -> VideoMetadata:
        self.metadata_calls.append(url)
        if self.metadata_error is not None:
            raise self.metadata_error
        return self.metadata

    async def stream_media(self, url: str, format_spec: str) -> MediaStream:
        self.stream_calls.append((url, format_spec))
        process = FakeProcess()
        for chunk in self.chunks:
            process.feed(chunk)
        process.finish(self.exit_code, self.stderr)
        self.processes.append(process)
        return MediaStream(process, terminate_timeout=0.5)
