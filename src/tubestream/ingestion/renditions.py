"""Rendition selection and yt-dlp format strings."""

import math
import re
from collections.abc import Iterable, Mapping
from typing import Any

from ..interfaces import AUDIO_ONLY_LABEL, Rendition

AUDIO_SELECTOR = "audio"
AUDIO_FORMAT_SPEC = "bestaudio[ext=m4a]/bestaudio/best"

_LEADING_INT = re.compile(r"\s*([+-]?[0-9]+)")

AUDIO_RENDITION = Rendition(label=AUDIO_ONLY_LABEL, height=0, container_hint="audio")


def _height_and_vcodec(fmt: Any) -> tuple[Any, str]:
    if isinstance(fmt, Rendition):
        # Our own output: anything with a height carries video.
        return fmt.height, "none" if fmt.is_audio_only else fmt.container_hint
    if isinstance(fmt, Mapping):
        return fmt.get("height"), str(fmt.get("vcodec") or "none")
    return None, "none"


def _usable_height(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        height = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(height) or height <= 0:
        return None
    return int(height)


def select_renditions(formats: Iterable[Any] | None) -> list[Rendition]:
    """Turn raw yt-dlp format dicts into one choice per resolution.

    Entries without a usable height or without a video track are dropped,
    the first entry for each height wins, the result is sorted tallest
    first and always ends with a single audio-only option.
    """
    seen: set[str] = set()
    result: list[Rendition] = []

    for fmt in formats or ():
        raw_height, vcodec = _height_and_vcodec(fmt)
        height = _usable_height(raw_height)
        if height is None or vcodec == "none":
            continue

        label = f"{height}p"
        if label in seen:
            continue

        seen.add(label)
        result.append(Rendition(label=label, height=height, container_hint="mp4"))

    result.sort(key=lambda r: r.height, reverse=True)
    result.append(AUDIO_RENDITION)
    return result


def format_duration(seconds: Any) -> str:
    """Format seconds as M:SS (125 -> "2:05")."""
    try:
        total = float(seconds)
    except (TypeError, ValueError):
        total = 0.0
    if not math.isfinite(total) or total < 0:
        total = 0.0

    mins = int(total // 60)
    secs = int(total % 60)
    return f"{mins}:{secs:02d}"


def video_format_spec(height: int) -> str:
    """Format chain for a muxed video no taller than ``height``.

    Exact mp4 first, then any container under the height, then whatever
    yt-dlp considers best.
    """
    return (
        f"best[height<={height}][ext=mp4][acodec!=none][vcodec!=none]"
        f"/best[height<={height}][acodec!=none][vcodec!=none]"
        "/best"
    )


def parse_rendition_selector(value: str | None, default_height: int) -> int | None:
    """Return the requested height, or None for audio only.

    Only the leading integer counts, so "720p" means 720. Audio must be
    spelled exactly "audio".
    """
    if value == AUDIO_SELECTOR:
        return None
    match = _LEADING_INT.match(value or "")
    if match is None:
        return default_height
    height = int(match.group(1))
    return height if height > 0 else default_height
