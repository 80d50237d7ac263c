"""Melolo adapter.

Payload shape:
  home    /home?offset=N   -> data.cell.cell_data[].books[]  (curated rows)
  search  /search?q=       -> data.search_data[].books[] | data.list
  detail  /detail/{id}     -> data (book) + videos | data.episode_list
  video   /video/{vid}     -> data | results | url

Books carry ``book_id``/``book_name``/``thumb_url``/``serial_count``.
Episode durations arrive as raw numbers in either seconds or milliseconds.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..canonical import Drama, Episode, Platform
from ..fields import dig, pick_text, resolve_episode_duration
from ..playback import normalize_playback_url
from .base import ProviderAdapter, build_drama, extract_list, path_segment

logger = logging.getLogger(__name__)

PAGE_SIZE = 20

ID_FIELDS = ("book_id", "bookId", "id", "series_id")
TITLE_FIELDS = ("book_name", "bookName", "title", "name", "series_title")
POSTER_FIELDS = ("thumb_url", "cover", "poster", "coverWap", "series_cover")


def map_book(raw: Any) -> Optional[Drama]:
    return build_drama(raw, ID_FIELDS, TITLE_FIELDS, POSTER_FIELDS)


def home_sections(payload: Any) -> List[List[Dict[str, Any]]]:
    cells = dig(payload, "data", "cell", "cell_data")
    if not isinstance(cells, list):
        return []
    rows = []
    for cell in cells:
        books = cell.get("books") if isinstance(cell, dict) else None
        if isinstance(books, list):
            books = [b for b in books if isinstance(b, dict)]
            if books:
                rows.append(books)
    return rows


def episode_list(payload: Any) -> List[Dict[str, Any]]:
    for path in (("videos",), ("data", "videos"), ("data", "episode_list"), ("episode_list",), ("data", "video_list")):
        found = dig(payload, *path)
        if isinstance(found, list):
            return [ep for ep in found if isinstance(ep, dict)]
    return []


def map_episode_list(payload: Any) -> List[Episode]:
    episodes = []
    for index, ep in enumerate(episode_list(payload)):
        number = index + 1
        episode_id = pick_text(ep, "vid", "id", "episode_id") or str(number)
        label = pick_text(ep, "episode", "sort") or str(number)
        episodes.append(Episode(
            id=episode_id,
            title=pick_text(ep, "title", "name", "episodeName") or f"Episode {label}",
            duration=resolve_episode_duration(ep),
            url="",
            number=number,
        ))
    return episodes


def video_url_from(payload: Any) -> str:
    if not isinstance(payload, dict):
        return normalize_playback_url(payload if isinstance(payload, str) else "")
    for key in ("data", "results", "url"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return normalize_playback_url(value)
        if isinstance(value, dict):
            nested = pick_text(value, "url", "main_url", "video_url", "play_url")
            if nested:
                return normalize_playback_url(nested)
    return ""


class MeloloAdapter(ProviderAdapter):
    """Melolo: one homepage payload bundles every curated row."""

    platform = Platform.MELOLO
    base_path = "/api/melolo"
    resolves_video_lazily = True

    def home_request(self, page: int) -> Tuple[str, Dict[str, Any]]:
        return "/home", {"offset": (max(page, 1) - 1) * PAGE_SIZE}

    def map_drama(self, raw: Any) -> Optional[Drama]:
        return map_book(raw)

    def sections(self, payload: Any) -> List[List[Dict[str, Any]]]:
        return home_sections(payload)

    def list_items(self, payload: Any) -> List[Dict[str, Any]]:
        rows = home_sections(payload)
        if rows:
            return [book for row in rows for book in row]
        search_rows = dig(payload, "data", "search_data")
        if isinstance(search_rows, list):
            return [
                book
                for row in search_rows if isinstance(row, dict)
                for book in (row.get("books") or []) if isinstance(book, dict)
            ]
        return extract_list(payload)

    def map_episodes(self, payload: Any, drama_id: str) -> List[Episode]:
        return map_episode_list(payload)

    def search(self, query: str) -> List[Drama]:
        return self.normalize_list(self.get_json("/search", {"q": query}))

    def fetch_detail(self, drama_id: str) -> Optional[Drama]:
        payload = self.get_json(f"/detail/{path_segment(drama_id)}", lookup=True)
        detail = payload.get("data") if isinstance(payload, dict) and isinstance(payload.get("data"), dict) else payload
        if not isinstance(detail, dict):
            return None
        return map_book({"book_id": drama_id, **detail})

    def fetch_episodes(self, drama_id: str) -> List[Episode]:
        return self.map_episodes(self.get_json(f"/detail/{path_segment(drama_id)}", lookup=True), drama_id)

    def fetch_video_url(self, episode_id: str, drama_id: Optional[str] = None) -> str:
        return video_url_from(self.get_json(f"/video/{path_segment(episode_id)}"))
