"""Reelife adapter.

Homepage modules arrive as ``data.modules[].items``. Episode titles are
inconsistent upstream ("EP01", "第1集", "1", "Episode 01") and are always
normalized to ``Episode <n>``.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ..canonical import Drama, Episode, Platform, positive_int
from ..fields import dig, pick_text, resolve_episode_duration
from ..playback import normalize_playback_url
from .base import ProviderAdapter, build_drama, extract_list, path_segment

logger = logging.getLogger(__name__)

ID_FIELDS = ("id", "book_id", "drama_id")
TITLE_FIELDS = ("name", "title", "book_name")
POSTER_FIELDS = ("cover", "cover_url", "poster", "thumb")
URL_FIELDS = ("video_url", "play_url", "url")

_EPISODE_NUMBER = re.compile(r"(\d+)")


def episode_number(raw: Dict[str, Any], position: int) -> int:
    """Episode number from the explicit field, the title, or list position."""
    for key in ("episode", "serial_number", "episode_no", "sort"):
        value = raw.get(key)
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value)
        number = positive_int(value)
        if number:
            return number
    match = _EPISODE_NUMBER.search(pick_text(raw, "title", "name"))
    if match and int(match.group(1)) > 0:
        return int(match.group(1))
    return position + 1


def map_item(raw: Any) -> Optional[Drama]:
    return build_drama(raw, ID_FIELDS, TITLE_FIELDS, POSTER_FIELDS)


def module_sections(payload: Any) -> List[List[Dict[str, Any]]]:
    modules = dig(payload, "data", "modules")
    if not isinstance(modules, list):
        return []
    rows = []
    for module in modules:
        items = module.get("items") if isinstance(module, dict) else None
        if isinstance(items, list):
            items = [i for i in items if isinstance(i, dict)]
            if items:
                rows.append(items)
    return rows


def map_chapter_list(payload: Any) -> List[Episode]:
    episodes = []
    for position, raw in enumerate(extract_list(payload)):
        number = episode_number(raw, position)
        episodes.append(Episode(
            id=pick_text(raw, "id", "chapter_id", "episode_id") or str(number),
            title=f"Episode {number}",
            duration=resolve_episode_duration(raw),
            url=normalize_playback_url(pick_text(raw, *URL_FIELDS)),
            number=number,
        ))
    return episodes


class ReelifeAdapter(ProviderAdapter):
    """Reelife: module-based homepage, chapters resolved through /play."""

    platform = Platform.REELIFE
    base_path = "/api/reelife"
    resolves_video_lazily = True
    ROWS = {"trending": 0, "latest": 1, "foryou": 2, "vip": 3}

    def home_request(self, page: int) -> Tuple[str, Dict[str, Any]]:
        return "/home", {"page": max(page, 1)}

    def map_drama(self, raw: Any) -> Optional[Drama]:
        return map_item(raw)

    def sections(self, payload: Any) -> List[List[Dict[str, Any]]]:
        return module_sections(payload)

    def list_items(self, payload: Any) -> List[Dict[str, Any]]:
        rows = module_sections(payload)
        if rows:
            return [item for row in rows for item in row]
        return extract_list(payload)

    def map_episodes(self, payload: Any, drama_id: str) -> List[Episode]:
        return map_chapter_list(payload)

    def search(self, query: str) -> List[Drama]:
        return self.normalize_list(self.get_json("/search", {"keyword": query}))

    def fetch_detail(self, drama_id: str) -> Optional[Drama]:
        payload = self.get_json(f"/book/{path_segment(drama_id)}", lookup=True)
        detail = dig(payload, "data") if isinstance(dig(payload, "data"), dict) else payload
        if not isinstance(detail, dict):
            return None
        return map_item({"id": drama_id, **detail})

    def fetch_episodes(self, drama_id: str) -> List[Episode]:
        return self.map_episodes(self.get_json(f"/chapters/{path_segment(drama_id)}", lookup=True), drama_id)

    def fetch_video_url(self, episode_id: str, drama_id: Optional[str] = None) -> str:
        payload = self.get_json(f"/play/{path_segment(episode_id)}", {"bookId": drama_id})
        data = dig(payload, "data")
        if isinstance(data, str):
            return normalize_playback_url(data)
        return normalize_playback_url(pick_text(data if isinstance(data, dict) else payload, *URL_FIELDS))
