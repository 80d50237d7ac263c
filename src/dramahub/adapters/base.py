"""Shared machinery for provider adapters.

Each provider adapter fetches raw payloads from its upstream and maps them
into the canonical ``Drama``/``Episode`` model. Everything that is not a
payload shape lives here: the HTTP helper, the per-page homepage cache and
the curated-row (section) extraction rule.
"""

from __future__ import annotations

import logging
import random
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

import requests

from ..canonical import Drama, Episode, PLACEHOLDER_POSTER, Platform
from ..errors import UpstreamUnavailable
from ..fields import (
    dig,
    pick_text,
    resolve_episode_count,
    resolve_new_flag,
    resolve_release_date,
    resolve_total_duration,
)
from ..http_utils import DEFAULT_TIMEOUT, retry_on_transient
from ..playback import normalize_playback_url

logger = logging.getLogger(__name__)

HOME_CACHE_TTL_SECONDS = 30.0

# Envelopes tried, in order, when a provider-specific list is missing.
LIST_ENVELOPES: Tuple[Tuple[str, ...], ...] = (
    ("data", "list"),
    ("data", "items"),
    ("data", "records"),
    ("data",),
    ("results",),
    ("list",),
    ("items",),
)


class HomePageCache:
    """Homepage payloads keyed by page number with a fixed freshness window.

    Entries are only superseded by time, never evicted by size, and live for
    the lifetime of the process.
    """

    def __init__(self, ttl_seconds: float = HOME_CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[int, Tuple[float, Any]] = {}

    def get(self, page: int) -> Optional[Any]:
        entry = self._entries.get(page)
        if entry is None:
            return None
        stored_at, data = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            return None
        return data

    def put(self, page: int, data: Any) -> None:
        self._entries[page] = (self._clock(), data)

    def __len__(self) -> int:
        return len(self._entries)


HomeCacheKey = Tuple[Platform, str, str, str]

_home_caches: Dict[HomeCacheKey, HomePageCache] = {}


def shared_home_cache(
    platform: Platform,
    base_url: str = "",
    lang: str = "",
    code: str = "",
    ttl_seconds: float = HOME_CACHE_TTL_SECONDS,
) -> HomePageCache:
    """Process-wide homepage cache for one provider endpoint.

    Adapters that differ in host, language or access code get separate
    caches since the upstream answers differ.
    """
    key = (Platform(platform), base_url.rstrip("/"), lang, code)
    cache = _home_caches.get(key)
    if cache is None:
        cache = HomePageCache(ttl_seconds=ttl_seconds)
        _home_caches[key] = cache
    return cache


def path_segment(value: Any) -> str:
    """Quote an upstream id for use as one URL path segment."""
    return quote(str(value), safe="")


def extract_list(payload: Any) -> List[Dict[str, Any]]:
    """Find the item list in a payload by checking the common envelopes."""
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    for path in LIST_ENVELOPES:
        found = dig(payload, *path)
        if isinstance(found, list):
            return [item for item in found if isinstance(item, dict)]
    return []


def unique_by_id(dramas: Iterable[Drama]) -> List[Drama]:
    """Deduplicate by identity key; later snapshots win, first position kept."""
    merged: Dict[str, Drama] = {}
    for drama in dramas:
        merged[drama.identity_key] = drama
    return list(merged.values())


def build_drama(
    raw: Mapping[str, Any],
    id_fields: Sequence[str],
    title_fields: Sequence[str],
    poster_fields: Sequence[str],
) -> Optional[Drama]:
    """Map one upstream object with the shared field-resolution policy.

    Returns None when no identifier can be found; every other field falls
    back to "unknown" instead of failing.
    """
    if not isinstance(raw, Mapping):
        return None
    drama_id = pick_text(raw, *id_fields)
    if not drama_id:
        return None
    poster = normalize_playback_url(pick_text(raw, *poster_fields)) or PLACEHOLDER_POSTER
    known = set(id_fields) | set(title_fields) | set(poster_fields)
    return Drama(
        id=drama_id,
        title=pick_text(raw, *title_fields),
        poster=poster,
        release_date=resolve_release_date(raw),
        total_episode_count=resolve_episode_count(raw),
        total_duration=resolve_total_duration(raw),
        upstream_new=resolve_new_flag(raw),
        extra={k: v for k, v in raw.items() if k not in known},
    )


class ProviderAdapter(ABC):
    """Adapter contract shared by all four providers.

    Subclasses provide the payload mapping (``map_drama``, ``sections``,
    ``list_items``, ``map_episodes``) and the endpoints; the fetch methods
    here apply the caching and row rules uniformly.

    Network and decode failures raise ``UpstreamUnavailable``. Malformed
    fields never raise.
    """

    platform: Platform
    base_path: str = ""

    # Curated row name -> index into the homepage section array.
    ROWS: Dict[str, int] = {"trending": 1, "latest": 2, "foryou": 3, "vip": 4}

    # Whether episode URLs need a secondary ``fetch_video_url`` call.
    resolves_video_lazily = False

    def __init__(
        self,
        base_url: str,
        code: str = "",
        lang: str = "id",
        session: Optional[requests.Session] = None,
        home_cache: Optional[HomePageCache] = None,
        timeout: Tuple[float, float] = DEFAULT_TIMEOUT,
        rng: Optional[random.Random] = None,
        lookup_session: Optional[requests.Session] = None,
    ):
        """Initialize adapter.

        Args:
            base_url: API host, e.g. ``https://api.example.com``
            code: API access code sent with every request
            lang: Catalog language
            session: HTTP session for homepage, row, search and video calls
            home_cache: Homepage cache (default: process-wide per endpoint)
            timeout: (connect, read) timeout
            rng: Random source for ``fetch_random``
            lookup_session: Session for detail and episode-list lookups,
                typically a requests-cache session (default: ``session``)
        """
        self.base_url = base_url.rstrip("/")
        self.code = code
        self.lang = lang
        self.session = session or requests.Session()
        self.lookup_session = lookup_session or self.session
        if home_cache is None:
            home_cache = shared_home_cache(self.platform, self.base_url, lang, code)
        self.home_cache = home_cache
        self.timeout = timeout
        self.rng = rng or random.Random()

    # --- HTTP ---

    def default_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"lang": self.lang}
        if self.code:
            params["code"] = self.code
        return params

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None, lookup: bool = False) -> Any:
        """GET ``base_url + base_path + path`` and decode JSON.

        Args:
            path: Endpoint path below ``base_path`` (ids already quoted)
            params: Extra query parameters; None values are dropped
            lookup: Send through ``lookup_session`` (detail/episode lists)

        Raises:
            UpstreamUnavailable: On connection errors, non-2xx status or a
                body that is not JSON
        """
        url = f"{self.base_url}{self.base_path}{path}"
        query = self.default_params()
        query.update({k: v for k, v in (params or {}).items() if v is not None})
        session = self.lookup_session if lookup else self.session
        try:
            response = retry_on_transient(session.get, url, params=query, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise UpstreamUnavailable(self.platform.value, path, str(e)) from e
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailable(self.platform.value, path, f"invalid JSON: {e}") from e

    def home_payload(self, page: int = 1) -> Any:
        """Homepage payload for ``page``, served from the cache when fresh."""
        cached = self.home_cache.get(page)
        if cached is not None:
            logger.debug(f"{self.platform.value} home page {page}: cache")
            return cached
        path, params = self.home_request(page)
        data = self.get_json(path, params)
        self.home_cache.put(page, data)
        return data

    # --- payload mapping (per provider) ---

    @abstractmethod
    def home_request(self, page: int) -> Tuple[str, Dict[str, Any]]:
        """Path and params of the homepage endpoint for ``page``."""

    @abstractmethod
    def map_drama(self, raw: Any) -> Optional[Drama]:
        """Map one upstream catalog object (total over optional fields)."""

    def sections(self, payload: Any) -> List[List[Dict[str, Any]]]:
        """Curated rows bundled in a homepage payload (non-empty rows only)."""
        return []

    def list_items(self, payload: Any) -> List[Dict[str, Any]]:
        """Flat item list of a catalog payload."""
        items = extract_list(payload)
        if items:
            return items
        return [item for row in self.sections(payload) for item in row]

    @abstractmethod
    def map_episodes(self, payload: Any, drama_id: str) -> List[Episode]:
        """Map an episode-list payload."""

    # --- normalization helpers ---

    def normalize_list(self, payload: Any) -> List[Drama]:
        dramas = (self.map_drama(item) for item in self.list_items(payload))
        return unique_by_id(d for d in dramas if d is not None)

    def row(self, payload: Any, index: int) -> List[Drama]:
        """Select a curated row by index, clamped to the available rows.

        Falls back to the full homepage list when the row is empty, so a
        row is never empty while any catalog data exists.
        """
        rows = self.sections(payload)
        selected: List[Drama] = []
        if rows:
            clamped = max(0, min(index, len(rows) - 1))
            selected = [d for d in (self.map_drama(item) for item in rows[clamped]) if d is not None]
        return selected or self.normalize_list(payload)

    # --- public contract ---

    def fetch_homepage(self, page: int = 1) -> List[Drama]:
        return self.normalize_list(self.home_payload(page))

    def fetch_trending(self) -> List[Drama]:
        return self.row(self.home_payload(1), self.ROWS["trending"])

    def fetch_latest(self) -> List[Drama]:
        return self.row(self.home_payload(1), self.ROWS["latest"])

    def fetch_for_you(self) -> List[Drama]:
        return self.row(self.home_payload(1), self.ROWS["foryou"])

    def fetch_vip(self) -> List[Drama]:
        return self.row(self.home_payload(1), self.ROWS["vip"])

    def fetch_dubbed(self, page: int = 1, classifier: Optional[str] = None) -> List[Drama]:
        return self.fetch_homepage(page)

    def fetch_random(self) -> List[Drama]:
        dramas = self.fetch_homepage(1)
        self.rng.shuffle(dramas)
        return dramas

    @abstractmethod
    def search(self, query: str) -> List[Drama]:
        ...

    @abstractmethod
    def fetch_detail(self, drama_id: str) -> Optional[Drama]:
        ...

    @abstractmethod
    def fetch_episodes(self, drama_id: str) -> List[Episode]:
        ...

    @abstractmethod
    def fetch_video_url(self, episode_id: str, drama_id: Optional[str] = None) -> str:
        """Resolve a playable URL for an episode ("" when none)."""
