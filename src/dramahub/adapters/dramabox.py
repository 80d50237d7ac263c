"""DramaBox adapter.

DramaBox exposes one endpoint per curated row, so only the VIP payload
(``data.columnVoList[].bookList``) goes through section extraction.
Episodes ("chapters") carry their CDN URLs directly; no secondary
resolution call is needed.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..canonical import Drama, Episode, Platform
from ..fields import dig, pick_text, resolve_episode_duration
from ..playback import normalize_playback_url
from .base import ProviderAdapter, build_drama, extract_list, path_segment

logger = logging.getLogger(__name__)

DEFAULT_DUB_CLASSIFIER = "terpopuler"

ID_FIELDS = ("bookId", "book_id", "id")
TITLE_FIELDS = ("bookName", "book_name", "title", "name")
POSTER_FIELDS = ("coverWap", "cover", "bookCover", "poster")


def map_book(raw: Any) -> Optional[Drama]:
    return build_drama(raw, ID_FIELDS, TITLE_FIELDS, POSTER_FIELDS)


def column_sections(payload: Any) -> List[List[Dict[str, Any]]]:
    columns = dig(payload, "data", "columnVoList")
    if not isinstance(columns, list):
        return []
    rows = []
    for column in columns:
        books = column.get("bookList") if isinstance(column, dict) else None
        if isinstance(books, list):
            books = [b for b in books if isinstance(b, dict)]
            if books:
                rows.append(books)
    return rows


def chapter_url(chapter: Dict[str, Any]) -> str:
    """Default-quality CDN URL of a chapter, else the first one listed."""
    direct = pick_text(chapter, "videoPath", "videoUrl", "url")
    if direct:
        return normalize_playback_url(direct)
    candidates = []
    for cdn in chapter.get("cdnList") or []:
        if not isinstance(cdn, dict):
            continue
        for path in cdn.get("videoPathList") or []:
            if isinstance(path, dict) and pick_text(path, "videoPath"):
                candidates.append(path)
    if not candidates:
        return ""
    preferred = next((p for p in candidates if p.get("isDefault") in (1, True, "1")), candidates[0])
    return normalize_playback_url(preferred["videoPath"])


def map_chapters(payload: Any) -> List[Episode]:
    chapters = extract_list(payload)
    episodes = []
    for position, chapter in enumerate(chapters):
        index = chapter.get("chapterIndex")
        number = index + 1 if isinstance(index, int) and not isinstance(index, bool) and index >= 0 else position + 1
        episodes.append(Episode(
            id=pick_text(chapter, "chapterId", "id") or str(number),
            title=pick_text(chapter, "chapterName", "title") or f"Episode {number}",
            duration=resolve_episode_duration(chapter),
            url=chapter_url(chapter),
            number=number,
        ))
    return episodes


class DramaboxAdapter(ProviderAdapter):
    """DramaBox: dedicated endpoints per row, chapters with inline URLs."""

    platform = Platform.DRAMABOX
    base_path = "/api/dramabox"

    def home_request(self, page: int) -> Tuple[str, Dict[str, Any]]:
        return "/foryou", {"page": max(page, 1)}

    def map_drama(self, raw: Any) -> Optional[Drama]:
        return map_book(raw)

    def sections(self, payload: Any) -> List[List[Dict[str, Any]]]:
        return column_sections(payload)

    def map_episodes(self, payload: Any, drama_id: str) -> List[Episode]:
        return map_chapters(payload)

    def fetch_trending(self) -> List[Drama]:
        return self.normalize_list(self.get_json("/trending")) or self.fetch_homepage(1)

    def fetch_latest(self) -> List[Drama]:
        return self.normalize_list(self.get_json("/latest")) or self.fetch_homepage(1)

    def fetch_for_you(self) -> List[Drama]:
        return self.fetch_homepage(1)

    def fetch_vip(self) -> List[Drama]:
        return self.row(self.get_json("/vip"), 0) or self.fetch_homepage(1)

    def fetch_dubbed(self, page: int = 1, classifier: Optional[str] = None) -> List[Drama]:
        params = {"classify": classifier or DEFAULT_DUB_CLASSIFIER, "page": max(page, 1)}
        return self.normalize_list(self.get_json("/dubindo", params))

    def fetch_random(self) -> List[Drama]:
        dramas = self.normalize_list(self.get_json("/randomdrama"))
        return dramas or super().fetch_random()

    def search(self, query: str) -> List[Drama]:
        return self.normalize_list(self.get_json("/search", {"query": query}))

    def fetch_detail(self, drama_id: str) -> Optional[Drama]:
        payload = self.get_json(f"/detail/{path_segment(drama_id)}", lookup=True)
        detail = dig(payload, "data", "book") or dig(payload, "data") or payload
        if not isinstance(detail, dict):
            return None
        return map_book({"bookId": drama_id, **detail})

    def fetch_episodes(self, drama_id: str) -> List[Episode]:
        return self.map_episodes(self.get_json(f"/allepisode/{path_segment(drama_id)}", lookup=True), drama_id)

    def fetch_video_url(self, episode_id: str, drama_id: Optional[str] = None) -> str:
        if not drama_id:
            logger.debug(f"dramabox: cannot resolve episode {episode_id} without a drama id")
            return ""
        for episode in self.fetch_episodes(drama_id):
            if episode.id == str(episode_id):
                return episode.url
        return ""
