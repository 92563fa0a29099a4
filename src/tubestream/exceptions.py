"""Error taxonomy shared by the extractor, the relay and the HTTP layer."""

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    UPSTREAM_BLOCKED = "upstream_blocked"
    TOOL_UNAVAILABLE = "tool_unavailable"
    EXTRACTION_FAILED = "extraction_failed"
    STREAMING_FAILURE = "streaming_failure"


class TubeStreamError(Exception):
    """Base class for request-scoped failures.

    Each subclass carries the kind tag and HTTP status the API maps it to,
    so callers branch on ``kind`` rather than on message text.
    """

    kind: ErrorKind = ErrorKind.EXTRACTION_FAILED
    status_code: int = 400
    default_message: str = "Request failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidURLError(TubeStreamError):
    """Raised when a URL is malformed or its host is not allowed."""

    kind = ErrorKind.INVALID_INPUT
    status_code = 400
    default_message = "Please provide a valid YouTube URL."


class UpstreamBlockedError(TubeStreamError):
    """Raised when the source site refuses anonymous access."""

    kind = ErrorKind.UPSTREAM_BLOCKED
    status_code = 403
    default_message = (
        "YouTube blocked anonymous access. "
        "Set YT_DLP_COOKIES or YT_DLP_COOKIES_FROM_BROWSER."
    )


class ToolUnavailableError(TubeStreamError):
    """Raised when the yt-dlp executable cannot be spawned."""

    kind = ErrorKind.TOOL_UNAVAILABLE
    status_code = 500
    default_message = (
        "yt-dlp binary not found on server. "
        "Set YT_DLP_PATH or install the yt-dlp package."
    )


class ExtractionFailedError(TubeStreamError):
    """Raised for any other yt-dlp failure; carries the tool's message."""

    kind = ErrorKind.EXTRACTION_FAILED
    status_code = 400
    default_message = "Failed to fetch video info"


class StreamingFailureError(TubeStreamError):
    """Raised when the media stream breaks."""

    kind = ErrorKind.STREAMING_FAILURE
    status_code = 500
    default_message = "Failed to stream output."


_BLOCKED_MARKERS = ("sign in to confirm",)
_MISSING_TOOL_MARKERS = (
    "command not found",
    "is not recognized as an internal or external command",
)


def classify_failure(message: str) -> TubeStreamError:
    """Map raw yt-dlp error text to a typed error."""
    text = (message or "").strip()
    lowered = text.lower()

    if any(marker in lowered for marker in _BLOCKED_MARKERS):
        return UpstreamBlockedError()
    if any(marker in lowered for marker in _MISSING_TOOL_MARKERS):
        return ToolUnavailableError()
    return ExtractionFailedError(text or None)
