"""Handle for one running yt-dlp child process."""

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator

import anyio

logger = logging.getLogger(__name__)


class MediaStream:
    """Owns a child process whose stdout carries media bytes.

    stderr is drained in the background so the child never stalls on a
    full pipe; the last lines are kept for error classification.
    ``aclose()`` is idempotent and must run on every exit path.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        chunk_size: int = 64 * 1024,
        terminate_timeout: float = 5.0,
        stderr_lines: int = 50,
    ):
        self._process = process
        self.chunk_size = chunk_size
        self.terminate_timeout = terminate_timeout
        self._stderr_tail: deque[str] = deque(maxlen=stderr_lines)
        self._stderr_task: asyncio.Task | None = None
        self._closed = False

        if process.stderr is not None:
            self._stderr_task = asyncio.create_task(self._drain_stderr())

    @property
    def pid(self) -> int | None:
        return getattr(self._process, "pid", None)

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def error_output(self) -> str:
        """Tail of the child's stderr."""
        return "\n".join(self._stderr_tail)

    async def _drain_stderr(self) -> None:
        while True:
            line = await self._process.stderr.readline()
            if not line:
                break
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                self._stderr_tail.append(text)

    async def read(self) -> bytes:
        """Read up to one chunk; b"" means EOF."""
        return await self._process.stdout.read(self.chunk_size)

    async def chunks(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.read()
            if not chunk:
                return
            yield chunk

    def terminate(self) -> bool:
        """Send SIGTERM if the child is still running. Does not wait."""
        if self._process.returncode is not None:
            return False
        try:
            self._process.terminate()
        except ProcessLookupError:
            return False
        return True

    async def wait(self) -> int:
        """Wait for exit and for stderr to be fully collected."""
        code = await self._process.wait()
        if self._stderr_task is not None:
            await self._stderr_task
        return code

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self.terminate():
            logger.debug("Sent SIGTERM to yt-dlp pid=%s", self.pid)

        # Reaping must finish even when the caller is being cancelled.
        with anyio.CancelScope(shield=True):
            try:
                with anyio.fail_after(self.terminate_timeout):
                    await self._process.wait()
            except TimeoutError:
                logger.warning(
                    "yt-dlp pid=%s ignored SIGTERM for %.1fs, killing",
                    self.pid,
                    self.terminate_timeout,
                )
                try:
                    self._process.kill()
                except ProcessLookupError:
                    pass
                await self._process.wait()

        if self._stderr_task is not None and not self._stderr_task.done():
            self._stderr_task.cancel()

    async def __aenter__(self) -> "MediaStream":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
