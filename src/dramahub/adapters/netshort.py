"""NetShort adapter.

Homepage rows arrive as ``data.contentInfos[].shortPlayList``; the detail
payload embeds the episode list (``shortPlayEpisodeInfos``). Episode play
vouchers expire, so the playable URL is re-resolved per episode.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..canonical import Drama, Episode, Platform, positive_int
from ..fields import dig, pick_text, resolve_episode_duration
from ..playback import normalize_playback_url
from .base import ProviderAdapter, build_drama, extract_list, path_segment

logger = logging.getLogger(__name__)

ID_FIELDS = ("shortPlayId", "short_play_id", "id")
TITLE_FIELDS = ("shortPlayName", "short_play_name", "title", "name")
POSTER_FIELDS = ("shortPlayCover", "coverUrl", "cover", "poster")
URL_FIELDS = ("playVoucher", "playUrl", "videoUrl", "url")


def map_short_play(raw: Any) -> Optional[Drama]:
    return build_drama(raw, ID_FIELDS, TITLE_FIELDS, POSTER_FIELDS)


def content_sections(payload: Any) -> List[List[Dict[str, Any]]]:
    contents = dig(payload, "data", "contentInfos")
    if not isinstance(contents, list):
        return []
    rows = []
    for content in contents:
        plays = content.get("shortPlayList") if isinstance(content, dict) else None
        if isinstance(plays, list):
            plays = [p for p in plays if isinstance(p, dict)]
            if plays:
                rows.append(plays)
    return rows


def map_episode_infos(payload: Any) -> List[Episode]:
    infos = dig(payload, "data", "shortPlayEpisodeInfos")
    if not isinstance(infos, list):
        infos = dig(payload, "shortPlayEpisodeInfos")
    if not isinstance(infos, list):
        infos = extract_list(payload)
    episodes = []
    for position, info in enumerate(i for i in infos if isinstance(i, dict)):
        number = positive_int(info.get("episodeNo")) or position + 1
        episodes.append(Episode(
            id=pick_text(info, "episodeId", "id") or str(number),
            title=pick_text(info, "episodeName", "title") or f"Episode {number}",
            duration=resolve_episode_duration(info),
            url=normalize_playback_url(pick_text(info, *URL_FIELDS)),
            number=number,
        ))
    return episodes


class NetshortAdapter(ProviderAdapter):
    """NetShort: section-based homepage, per-episode voucher resolution."""

    platform = Platform.NETSHORT
    base_path = "/api/netshort"
    resolves_video_lazily = True
    ROWS = {"trending": 0, "latest": 1, "foryou": 2, "vip": 3}

    def home_request(self, page: int) -> Tuple[str, Dict[str, Any]]:
        return "/theaters", {"page": max(page, 1)}

    def map_drama(self, raw: Any) -> Optional[Drama]:
        return map_short_play(raw)

    def sections(self, payload: Any) -> List[List[Dict[str, Any]]]:
        return content_sections(payload)

    def list_items(self, payload: Any) -> List[Dict[str, Any]]:
        plays = dig(payload, "data", "shortPlayList")
        if isinstance(plays, list):
            return [p for p in plays if isinstance(p, dict)]
        rows = content_sections(payload)
        if rows:
            return [play for row in rows for play in row]
        return extract_list(payload)

    def map_episodes(self, payload: Any, drama_id: str) -> List[Episode]:
        return map_episode_infos(payload)

    def search(self, query: str) -> List[Drama]:
        return self.normalize_list(self.get_json("/search", {"query": query}))

    def fetch_detail(self, drama_id: str) -> Optional[Drama]:
        payload = self.get_json(f"/detail/{path_segment(drama_id)}", lookup=True)
        detail = dig(payload, "data") if isinstance(dig(payload, "data"), dict) else payload
        if not isinstance(detail, dict):
            return None
        return map_short_play({"shortPlayId": drama_id, **detail})

    def fetch_episodes(self, drama_id: str) -> List[Episode]:
        return self.map_episodes(self.get_json(f"/detail/{path_segment(drama_id)}", lookup=True), drama_id)

    def fetch_video_url(self, episode_id: str, drama_id: Optional[str] = None) -> str:
        payload = self.get_json(f"/episode/{path_segment(episode_id)}", {"shortPlayId": drama_id})
        data = dig(payload, "data")
        if isinstance(data, str):
            return normalize_playback_url(data)
        return normalize_playback_url(pick_text(data if isinstance(data, dict) else payload, *URL_FIELDS))
