"""Ingestion module: URL validation, rendition selection and the yt-dlp adapter."""

from .extractor import YtDlpExtractor, resolve_binary_path
from .process import MediaStream
from .renditions import format_duration, select_renditions
from .validation import is_valid_url

__all__ = [
    "YtDlpExtractor",
    "resolve_binary_path",
    "MediaStream",
    "format_duration",
    "select_renditions",
    "is_valid_url",
]
