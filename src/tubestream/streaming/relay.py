"""Streaming relay: pipe yt-dlp stdout straight into an HTTP response."""

import asyncio
import logging
import re
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote

import anyio
from starlette.requests import ClientDisconnect
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from ..exceptions import StreamingFailureError, TubeStreamError, classify_failure
from ..ingestion.process import MediaStream
from ..ingestion.renditions import (
    AUDIO_FORMAT_SPEC,
    parse_rendition_selector,
    video_format_spec,
)
from ..interfaces import DownloadRequest
from ..service import MetadataService

logger = logging.getLogger(__name__)

DEFAULT_BASENAME = "video"
MAX_FILENAME_LENGTH = 100

_HOSTILE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_WHITESPACE = re.compile(r"\s+")


class RelayState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    CACHE_LOOKUP = "cache_lookup"
    PROCESS_SPAWNED = "process_spawned"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


TERMINAL_STATES = frozenset({RelayState.COMPLETED, RelayState.ABORTED, RelayState.FAILED})


def sanitize_filename(name: str | None, default: str = DEFAULT_BASENAME) -> str:
    """Make a title safe to use as a download file name."""
    cleaned = _HOSTILE_CHARS.sub("", str(name or ""))
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    cleaned = cleaned[:MAX_FILENAME_LENGTH].strip()
    return cleaned or default


@dataclass(frozen=True)
class DownloadPlan:
    format_spec: str
    content_type: str
    filename: str
    height: int | None  # None for audio only

    @property
    def content_disposition(self) -> str:
        return f"attachment; filename*=UTF-8''{quote(self.filename, safe='')}"


def plan_download(title: str | None, height: int | None) -> DownloadPlan:
    """Pick format chain, content type and file name for one download."""
    base = sanitize_filename(title)
    if height is None:
        return DownloadPlan(
            format_spec=AUDIO_FORMAT_SPEC,
            content_type="audio/mp4",
            filename=f"{base}.m4a",
            height=None,
        )
    return DownloadPlan(
        format_spec=video_format_spec(height),
        content_type="video/mp4",
        filename=f"{base}-{height}p.mp4",
        height=height,
    )


class RelaySession:
    """One download from spawn to close.

    Tracks the relay state and the number of bytes handed to the server.
    """

    def __init__(self, request: DownloadRequest):
        self.request = request
        self.state = RelayState.IDLE
        self.plan: DownloadPlan | None = None
        self.stream: MediaStream | None = None
        self.bytes_sent = 0
        self._first_chunk = b""

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Disposition": self.plan.content_disposition,
            "Cache-Control": "no-store",
        }

    async def prime(
        self,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
        poll_interval: float = 0.5,
    ) -> None:
        """Wait for the first chunk before any header is committed.

        A tool that dies without output is reported as a typed error here,
        while the client can still get a proper JSON response.
        """
        read = asyncio.ensure_future(self.stream.read())
        try:
            while True:
                done, _ = await asyncio.wait(
                    {read}, timeout=poll_interval if is_disconnected else None
                )
                if done:
                    break
                if await is_disconnected():
                    self.state = RelayState.ABORTED
                    logger.info("Client left before first byte: %s", self.request.source_url)
                    raise ClientDisconnect()
        except BaseException:
            read.cancel()
            raise

        try:
            self._first_chunk = read.result()
        except OSError as e:
            self.state = RelayState.FAILED
            raise StreamingFailureError() from e

        if not self._first_chunk:
            code = await self.stream.wait()
            if code != 0:
                self.state = RelayState.FAILED
                message = self.stream.error_output
                logger.warning("yt-dlp exited %s before output: %s", code, message)
                raise classify_failure(message) if message else StreamingFailureError()

    async def body(self) -> AsyncIterator[bytes]:
        self.state = RelayState.STREAMING
        try:
            if self._first_chunk:
                self.bytes_sent += len(self._first_chunk)
                yield self._first_chunk
                async for chunk in self.stream.chunks():
                    self.bytes_sent += len(chunk)
                    yield chunk
            code = await self.stream.wait()
        except (asyncio.CancelledError, GeneratorExit):
            self.state = RelayState.ABORTED
            logger.info(
                "Client disconnected after %d bytes, stopping yt-dlp: %s",
                self.bytes_sent,
                self.request.source_url,
            )
            raise
        except OSError as e:
            self.state = RelayState.FAILED
            raise StreamingFailureError(f"Output stream error: {e}") from e
        finally:
            await self.stream.aclose()

        if code != 0:
            self.state = RelayState.FAILED
            raise StreamingFailureError(
                f"yt-dlp exited with status {code}: {self.stream.error_output}"
            )

        self.state = RelayState.COMPLETED
        logger.info("Streamed %d bytes for %s", self.bytes_sent, self.request.source_url)

    async def close(self) -> None:
        if self.state not in TERMINAL_STATES:
            self.state = RelayState.ABORTED
        if self.stream is not None:
            await self.stream.aclose()


class RelayResponse(StreamingResponse):
    """StreamingResponse that owns a relay session and always closes it."""

    def __init__(self, session: RelaySession):
        super().__init__(
            session.body(),
            media_type=session.plan.content_type,
            headers=session.headers,
        )
        self.session = session

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        # Always watch for http.disconnect, whatever ASGI version the
        # server speaks, so the child dies as soon as the client goes away.
        try:
            async with anyio.create_task_group() as task_group:

                async def relay() -> None:
                    try:
                        await self.stream_response(send)
                    except StreamingFailureError as e:
                        # Headers are gone already; leaving the response
                        # unfinished makes the server drop the connection.
                        logger.warning(
                            "Stream failed after %d bytes for %s: %s",
                            self.session.bytes_sent,
                            self.session.request.source_url,
                            e,
                        )
                    except OSError as e:
                        logger.info(
                            "Lost client for %s: %s", self.session.request.source_url, e
                        )
                    task_group.cancel_scope.cancel()

                async def watch() -> None:
                    await self.listen_for_disconnect(receive)
                    task_group.cancel_scope.cancel()

                task_group.start_soon(relay)
                task_group.start_soon(watch)
        finally:
            with anyio.CancelScope(shield=True):
                await self.body_iterator.aclose()
                await self.session.close()


class StreamingRelay:
    """Turns a download request into a primed relay session."""

    def __init__(
        self,
        service: MetadataService,
        default_height: int = 1080,
        poll_interval: float = 0.5,
    ):
        self.service = service
        self.default_height = default_height
        self.poll_interval = poll_interval

    async def open(
        self,
        request: DownloadRequest,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> RelaySession:
        session = RelaySession(request)

        try:
            session.state = RelayState.VALIDATING
            url = self.service.validate(request.source_url)

            # Only the title is needed, and only for the file name.
            session.state = RelayState.CACHE_LOOKUP
            info = await self.service.lookup(url)
            title = info.title if info is not None else DEFAULT_BASENAME

            height = parse_rendition_selector(request.rendition_selector, self.default_height)
            session.plan = plan_download(title, height)
            session.stream = await self.service.extractor.stream_media(
                url, session.plan.format_spec
            )
            session.state = RelayState.PROCESS_SPAWNED
        except TubeStreamError:
            session.state = RelayState.FAILED
            raise

        try:
            await session.prime(is_disconnected, self.poll_interval)
        except BaseException:
            await session.close()
            raise

        return session
