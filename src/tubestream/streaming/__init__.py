"""Streaming module: relays yt-dlp output to HTTP clients."""

from .relay import RelayResponse, RelaySession, RelayState, StreamingRelay, sanitize_filename

__all__ = [
    "RelayResponse",
    "RelaySession",
    "RelayState",
    "StreamingRelay",
    "sanitize_filename",
]
