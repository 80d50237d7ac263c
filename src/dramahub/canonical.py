"""Canonical catalog and watch-progress model shared by every provider.

Adapters build these from heterogeneous upstream payloads; the rest of the
package never looks at raw provider shapes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Platform(str, Enum):
    """Supported upstream catalog providers."""

    DRAMABOX = "dramabox"
    MELOLO = "melolo"
    NETSHORT = "netshort"
    REELIFE = "reelife"

    @classmethod
    def parse(cls, value: Any, default: Optional["Platform"] = None) -> Optional["Platform"]:
        """Coerce a stored/remote platform value, falling back to ``default``."""
        if isinstance(value, Platform):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return default


DEFAULT_PLATFORM = Platform.DRAMABOX
PLACEHOLDER_POSTER = "/images/placeholder-poster.svg"
UNTITLED = "Untitled"
UNKNOWN_TITLE = "Unknown Title"
NOT_AVAILABLE = "Not available"
GUEST_USER_KEY = "guest"
NEW_BADGE_WINDOW = timedelta(days=45)

_NUMERIC_ID_TITLE = re.compile(r"^\d{8,}$")
_SHORT_EPISODE_ID = re.compile(r"^\d{1,4}$")


def is_invalid_title(title: Any, drama_id: Optional[str] = None) -> bool:
    """Whether an upstream title is a placeholder that must not be stored."""
    normalized = str(title or "").strip()
    if not normalized:
        return True
    if normalized == UNKNOWN_TITLE:
        return True
    if drama_id and normalized == str(drama_id):
        return True
    return bool(_NUMERIC_ID_TITLE.match(normalized))


def is_usable_poster(poster: Any) -> bool:
    """Whether a poster URL is real artwork rather than a placeholder."""
    value = str(poster or "").strip()
    if not value:
        return False
    if value == PLACEHOLDER_POSTER:
        return False
    if "/images/placeholder-" in value:
        return False
    return "Poster Unavailable" not in value


def positive_int(value: Any) -> Optional[int]:
    """Floor a finite positive number, otherwise None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value != value or value in (float("inf"), float("-inf")) or value <= 0:
        return None
    return int(value)


@dataclass(frozen=True)
class Drama:
    """A catalog entry as produced by a provider adapter."""

    id: str
    title: str
    poster: str = PLACEHOLDER_POSTER
    release_date: Optional[datetime] = None
    total_episode_count: Optional[int] = None
    total_duration: Optional[str] = None
    upstream_new: bool = False
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def identity_key(self) -> str:
        """Key used when merging list snapshots (latest wins)."""
        return self.id or f"{self.title}-{self.poster}"

    def show_new_badge(self, now: Optional[datetime] = None) -> bool:
        """Upstream "new" flag OR released within the last 45 days."""
        if self.upstream_new:
            return True
        if self.release_date is None:
            return False
        now = _as_utc(now or datetime.now(timezone.utc))
        age = now - _as_utc(self.release_date)
        return timedelta(0) <= age <= NEW_BADGE_WINDOW

    def episode_label(self) -> str:
        if self.total_episode_count:
            return f"{self.total_episode_count} Eps"
        return NOT_AVAILABLE

    def duration_label(self) -> str:
        value = str(self.total_duration or "").strip()
        if value and value != "0":
            return value
        return NOT_AVAILABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "poster": self.poster,
            "releaseDate": self.release_date.isoformat() if self.release_date else None,
            "totalEpisodeCount": self.total_episode_count,
            "totalDuration": self.total_duration,
            "isNew": self.upstream_new,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Drama":
        release = data.get("releaseDate")
        try:
            release_date = datetime.fromisoformat(release) if release else None
        except (TypeError, ValueError):
            release_date = None
        count = data.get("totalEpisodeCount")
        return cls(
            id=str(data.get("id") or data.get("bookId") or ""),
            title=str(data.get("title") or ""),
            poster=str(data.get("poster") or PLACEHOLDER_POSTER),
            release_date=release_date,
            total_episode_count=count if isinstance(count, int) and count > 0 else None,
            total_duration=data.get("totalDuration") or None,
            upstream_new=bool(data.get("isNew", False)),
        )


@dataclass(frozen=True)
class Episode:
    """A playable episode; ``url`` may still need secondary resolution."""

    id: str
    title: str
    duration: str = ""
    url: str = ""
    number: Optional[int] = None


@dataclass
class ContinueWatchingEntry:
    """One row of the continue-watching ledger."""

    platform: Platform
    drama_id: str
    drama_title: str
    drama_poster: str
    episode_id: str
    progress: int
    timestamp: int  # epoch millis of the last write
    episode_no: Optional[int] = None

    @property
    def scoped_key(self) -> str:
        return scoped_key(self.platform, self.drama_id)

    def episode_label(self) -> str:
        """Episode number for display, or "?" when it cannot be told."""
        if self.episode_no:
            return str(self.episode_no)
        raw = str(self.episode_id or "").strip()
        if _SHORT_EPISODE_ID.match(raw):
            return raw
        return "?"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "platform": self.platform.value,
            "dramaId": self.drama_id,
            "dramaTitle": self.drama_title,
            "dramaPoster": self.drama_poster,
            "episodeId": self.episode_id,
            "progress": self.progress,
            "timestamp": self.timestamp,
        }
        if self.episode_no is not None:
            data["episodeNo"] = self.episode_no
        return data

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        default_platform: Platform = DEFAULT_PLATFORM,
        now_ms: Optional[int] = None,
    ) -> "ContinueWatchingEntry":
        """Build an entry from a persisted/remote dict without validating titles."""
        timestamp = positive_int(data.get("timestamp"))
        if timestamp is None:
            timestamp = now_ms if now_ms is not None else now_millis()
        progress = data.get("progress")
        try:
            progress = int(float(progress or 0))
        except (TypeError, ValueError, OverflowError):
            progress = 0
        return cls(
            platform=Platform.parse(data.get("platform"), default_platform),
            drama_id=str(data.get("dramaId") or "").strip(),
            drama_title=str(data.get("dramaTitle") or ""),
            drama_poster=str(data.get("dramaPoster") or ""),
            episode_id=str(data.get("episodeId") or "1"),
            progress=progress,
            timestamp=int(timestamp),
            episode_no=positive_int(data.get("episodeNo")),
        )


@dataclass(frozen=True)
class SavedDrama:
    """A My-List snapshot tagged with the platform it was saved on."""

    drama: Drama
    platform: Platform

    def to_dict(self) -> Dict[str, Any]:
        return {**self.drama.to_dict(), "_platform": self.platform.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_platform: Platform = DEFAULT_PLATFORM) -> "SavedDrama":
        return cls(
            drama=Drama.from_dict(data),
            platform=Platform.parse(data.get("_platform"), default_platform),
        )


@dataclass(frozen=True)
class UserProfile:
    """A signed-in user as provided by the identity collaborator."""

    name: str
    email: str
    uid: Optional[str] = None
    picture: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"name": self.name, "email": self.email}
        if self.uid:
            data["uid"] = self.uid
        if self.picture:
            data["picture"] = self.picture
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["UserProfile"]:
        if not data or not isinstance(data, dict) or not data.get("email"):
            return None
        return cls(
            name=str(data.get("name") or ""),
            email=str(data["email"]),
            uid=data.get("uid") or None,
            picture=data.get("picture") or None,
        )


@dataclass(frozen=True)
class IssueReport:
    """A user-submitted playback or account problem."""

    title: str
    description: str
    platform: str
    page: str = ""

    @property
    def is_complete(self) -> bool:
        """Title, description and platform are all non-blank."""
        return all(str(v or "").strip() for v in (self.title, self.description, self.platform))

    def to_dict(self, now_ms: Optional[int] = None) -> Dict[str, Any]:
        """Stored layout; every new report starts ``open``."""
        return {
            "title": str(self.title).strip(),
            "description": str(self.description).strip(),
            "platform": str(self.platform).strip(),
            "page": str(self.page or "").strip() or "unknown",
            "status": "open",
            "createdAt": now_ms if now_ms is not None else now_millis(),
        }


def user_key(user: Optional[UserProfile]) -> str:
    """Ledger segment for a user: lowercased email, or "guest"."""
    if user and user.email:
        return user.email.strip().lower()
    return GUEST_USER_KEY


def scoped_key(platform: Platform, drama_id: str) -> str:
    return f"{Platform.parse(platform, DEFAULT_PLATFORM).value}:{drama_id}"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def now_millis() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)
