"""Catalog service - the caller side of the provider adapters.

Picks the adapter for the active platform, turns ``UpstreamUnavailable``
into empty results, merges paged homepage results and resolves playable
episode URLs. Every load captures a relevance token so a result that
arrives after the user moved on (platform switch, newer request for the
same view) is discarded instead of applied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, TypeVar

from .adapters import ProviderAdapter, create_adapter
from .adapters.base import unique_by_id
from .canonical import Drama, Episode, Platform
from .errors import UpstreamUnavailable
from .playback import normalize_playback_url
from .state import AppState

logger = logging.getLogger(__name__)

T = TypeVar("T")

SORT_ORDERS = ("latest", "az", "za")
ROWS = ("trending", "latest", "foryou", "vip", "dubbed", "random")


@dataclass(frozen=True)
class LoadToken:
    """Captured at the start of a load; compared when the result arrives."""

    view: str
    generation: int
    platform: Platform


class RelevanceGuard:
    """Hands out load tokens and tells whether one is still current."""

    def __init__(self, platform: Callable[[], Platform]):
        self._platform = platform
        self._generations: Dict[str, int] = {}

    def begin(self, view: str) -> LoadToken:
        generation = self._generations.get(view, 0) + 1
        self._generations[view] = generation
        return LoadToken(view, generation, self._platform())

    def is_current(self, token: LoadToken) -> bool:
        return (
            self._generations.get(token.view) == token.generation
            and token.platform == self._platform()
        )

    def invalidate_all(self) -> None:
        for view in self._generations:
            self._generations[view] += 1


def sort_dramas(dramas: Iterable[Drama], order: str = "latest") -> List[Drama]:
    """Sort a list for display.

    ``latest`` keeps upstream order; ``az``/``za`` sort by title,
    case-insensitively.
    """
    items = list(dramas)
    if order == "az":
        return sorted(items, key=lambda d: d.title.casefold())
    if order == "za":
        return sorted(items, key=lambda d: d.title.casefold(), reverse=True)
    if order != "latest":
        raise ValueError(f"Unknown sort order: {order}")
    return items


def merge_pages(current: Iterable[Drama], incoming: Iterable[Drama]) -> List[Drama]:
    """Merge a new page into the accumulated list by identity key."""
    return unique_by_id([*current, *incoming])


class CatalogService:
    """Catalog reads for the active platform with stale-result protection."""

    def __init__(
        self,
        state: AppState,
        adapter_factory: Callable[[Platform], ProviderAdapter] = create_adapter,
    ):
        """Initialize service.

        Args:
            state: Shared application state (source of the active platform)
            adapter_factory: Builds the adapter for a platform
        """
        self.state = state
        self.adapter_factory = adapter_factory
        self._adapters: Dict[Platform, ProviderAdapter] = {}
        self.guard = RelevanceGuard(lambda: self.state.platform)
        self.home_items: List[Drama] = []
        self.home_page = 0
        self._unsubscribe = state.subscribe(self._on_state_change)

    def _on_state_change(self, state: AppState, keys: List[str]) -> None:
        if "platform" in keys:
            logger.debug(f"Platform switched to {state.platform.value}, dropping in-flight loads")
            self.guard.invalidate_all()
            self.home_items = []
            self.home_page = 0

    def close(self) -> None:
        self._unsubscribe()

    def adapter(self, platform: Optional[Platform] = None) -> ProviderAdapter:
        platform = Platform.parse(platform, None) or self.state.platform
        adapter = self._adapters.get(platform)
        if adapter is None:
            adapter = self.adapter_factory(platform)
            self._adapters[platform] = adapter
        return adapter

    def _load(self, view: str, fetch: Callable[[ProviderAdapter], T], empty: T) -> Optional[T]:
        """Run ``fetch`` against the active adapter.

        Returns:
            The result, ``empty`` when the provider is unavailable, or None
            when the result went stale while loading
        """
        token = self.guard.begin(view)
        try:
            result = fetch(self.adapter(token.platform))
        except UpstreamUnavailable as e:
            logger.warning(f"Provider unavailable for {view}: {e}")
            result = empty
        if not self.guard.is_current(token):
            logger.debug(f"Discarding stale {view} result ({token.platform.value})")
            return None
        return result

    # --- views ---

    def homepage(self, page: int = 1) -> List[Drama]:
        """Load one homepage page; pages after the first accumulate.

        Returns:
            The accumulated homepage list
        """
        page = max(1, int(page))
        dramas = self._load("home", lambda a: a.fetch_homepage(page), [])
        if dramas is None:
            return self.home_items
        if page == 1:
            self.home_items = unique_by_id(dramas)
        else:
            self.home_items = merge_pages(self.home_items, dramas)
        self.home_page = page
        return self.home_items

    def row(self, name: str, page: int = 1, classifier: Optional[str] = None) -> List[Drama]:
        """Load a curated row (trending, latest, foryou, vip, dubbed, random)."""
        fetchers: Dict[str, Callable[[ProviderAdapter], List[Drama]]] = {
            "trending": lambda a: a.fetch_trending(),
            "latest": lambda a: a.fetch_latest(),
            "foryou": lambda a: a.fetch_for_you(),
            "vip": lambda a: a.fetch_vip(),
            "dubbed": lambda a: a.fetch_dubbed(page, classifier),
            "random": lambda a: a.fetch_random(),
        }
        if name not in fetchers:
            raise ValueError(f"Unknown row: {name}")
        return self._load(f"row:{name}", fetchers[name], []) or []

    def search(self, query: str) -> List[Drama]:
        query = (query or "").strip()
        if not query:
            return []
        return self._load("search", lambda a: a.search(query), []) or []

    def detail(self, drama_id: str) -> Optional[Drama]:
        return self._load(f"detail:{drama_id}", lambda a: a.fetch_detail(drama_id), None)

    def episodes(self, drama_id: str) -> List[Episode]:
        return self._load(f"episodes:{drama_id}", lambda a: a.fetch_episodes(drama_id), []) or []

    def resolve_playback_url(self, episode: Episode, drama_id: Optional[str] = None) -> str:
        """Playable, normalized URL for an episode ("" when none is known).

        Providers with lazily resolved URLs get a secondary lookup first;
        the episode's own URL is the fallback.
        """
        adapter = self.adapter()
        resolved = ""
        if adapter.resolves_video_lazily or not episode.url:
            resolved = self._load(
                f"video:{drama_id}", lambda a: a.fetch_video_url(episode.id, drama_id), ""
            ) or ""
        return normalize_playback_url(resolved or episode.url)
