"""Best-effort field resolution over drifting upstream payloads.

No provider agrees on field names or encodings, so every resolver tries an
ordered list of known variants and falls back instead of raising. Nothing
in here throws on malformed input.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

# Values above this are taken to be milliseconds. This is a heuristic:
# no provider documents the unit, and a 2h47m episode in seconds would be
# misread as milliseconds.
MILLISECONDS_THRESHOLD = 10_000

EPISODE_COUNT_FIELDS = (
    "total_episode",
    "totalEpisode",
    "totalEpisodes",
    "episodeCount",
    "episode_count",
    "episodesCount",
    "episodes_count",
    "chapterCount",
    "chapter_count",
    "shortPlayEpisodeCount",
    "videoCount",
    "serial_count",
    "episodes",
)

TOTAL_DURATION_FIELDS = (
    "totalDuration",
    "total_duration",
    "totalTime",
    "total_time",
    "totalPlayTime",
    "total_play_time",
    "fullDuration",
    "full_duration",
    "videoDuration",
    "video_duration",
    "timeLength",
    "playTime",
    "play_time",
    "durationText",
    "duration",
)

EPISODE_DURATION_FIELDS = (
    "duration",
    "time",
    "videoDuration",
    "video_duration",
    "timeLength",
    "playTime",
    "play_time",
    "seconds",
    "length",
)

NEW_FLAG_FIELDS = ("is_new", "isNew", "new", "is_latest", "isLatest")

RELEASE_DATE_FIELDS = (
    "release_date",
    "releaseDate",
    "publish_time",
    "publishTime",
    "shelfTime",
    "create_time",
)

_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%d-%m-%Y %H:%M:%S",
    "%Y%m%d",
    "%b %d %Y",
    "%d %b %Y",
    "%B %d, %Y",
)

_LEADING_INT = re.compile(r"^\s*(\d+)")
_DIGITS = re.compile(r"^\d+$")


def _is_blank(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (int, float)) and value == 0:
        return True
    text = str(value).strip()
    return text == "" or text == "0"


def first_present(raw: Mapping[str, Any], names: Iterable[str]) -> Any:
    """Return the first non-empty, non-zero value among ``names``.

    Args:
        raw: Upstream object (any mapping; non-mappings yield None)
        names: Field name variants, most specific first

    Returns:
        The raw value, or None when no variant carries data
    """
    if not isinstance(raw, Mapping):
        return None
    for name in names:
        value = raw.get(name)
        if isinstance(value, (dict, list)):
            continue
        if not _is_blank(value):
            return value
    return None


def resolve_episode_count(raw: Mapping[str, Any]) -> Optional[int]:
    """Episode count, or None for "unknown" (never 0)."""
    value = first_present(raw, EPISODE_COUNT_FIELDS)
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            return None
        count = int(value)
    else:
        match = _LEADING_INT.match(str(value))
        if not match:
            return None
        count = int(match.group(1))
    return count if count > 0 else None


def resolve_total_duration(raw: Mapping[str, Any]) -> Optional[str]:
    """Total duration as free text, or None for "unknown"."""
    value = first_present(raw, TOTAL_DURATION_FIELDS)
    if value is None:
        return None
    return str(value).strip()


def coerce_flag(value: Any) -> bool:
    """Permissive boolean: True, 1, "1" and "true" (any case) are truthy."""
    if value is True:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return value == 1
    return str(value).strip().lower() in ("1", "true")


def resolve_new_flag(raw: Mapping[str, Any]) -> bool:
    if not isinstance(raw, Mapping):
        return False
    return any(coerce_flag(raw.get(name)) for name in NEW_FLAG_FIELDS if name in raw)


def _parse_epoch(value: Any) -> Optional[datetime]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        if not _DIGITS.match(value) or len(value) < 9:
            return None
        value = int(value)
    if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
        return None
    seconds = value / 1000 if value > 100_000_000_000 else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_text_date(text: str) -> Optional[datetime]:
    candidate = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        parsed = None
    if parsed is None:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_release_date(value: Any) -> Optional[datetime]:
    """Parse an upstream release date; None when it cannot be understood.

    Direct parsing is tried first, then the text is retried with ``.`` and
    ``/`` separators rewritten to ``-``. Epoch numbers (seconds or millis)
    are accepted as well.
    """
    epoch = _parse_epoch(value)
    if epoch is not None:
        return epoch
    raw = str(value or "").strip()
    if not raw:
        return None
    parsed = _parse_text_date(raw)
    if parsed is not None:
        return parsed
    normalized = raw.replace(".", "-").replace("/", "-")
    parsed = _parse_text_date(normalized)
    if parsed is None:
        logger.debug(f"Unparseable release date: {raw!r}")
    return parsed


def resolve_release_date(raw: Mapping[str, Any]) -> Optional[datetime]:
    return parse_release_date(first_present(raw, RELEASE_DATE_FIELDS))


def to_seconds(value: Any) -> Optional[int]:
    """Numeric duration to whole seconds (millis above the threshold).

    Returns None for anything that is not a finite number or a digit string.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        raw = value.strip()
        if not _DIGITS.match(raw):
            return None
        value = int(raw)
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    if value > MILLISECONDS_THRESHOLD:
        return int(value // 1000)
    return int(math.floor(value))


def format_clock(total_seconds: int) -> str:
    minutes, seconds = divmod(max(0, int(total_seconds)), 60)
    return f"{minutes}:{seconds:02d}"


def normalize_duration(value: Any) -> str:
    """Render an upstream duration as ``M:SS``; text passes through."""
    seconds = to_seconds(value)
    if seconds is not None:
        return format_clock(seconds)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return ""


def resolve_episode_duration(raw: Mapping[str, Any]) -> str:
    return normalize_duration(first_present(raw, EPISODE_DURATION_FIELDS))


def pick_text(raw: Mapping[str, Any], *names: str) -> str:
    """First non-empty string-ish field among ``names`` (trimmed)."""
    if not isinstance(raw, Mapping):
        return ""
    for name in names:
        value = raw.get(name)
        if value is None or isinstance(value, (dict, list, bool)):
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def dig(raw: Any, *path: Any) -> Any:
    """Walk nested dicts/lists, returning None on the first missing step."""
    current = raw
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or not -len(current) <= step < len(current):
                return None
            current = current[step]
        else:
            if not isinstance(current, Mapping):
                return None
            current = current.get(step)
        if current is None:
            return None
    return current
