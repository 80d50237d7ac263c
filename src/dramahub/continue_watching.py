"""Continue-watching store: the per-user, per-platform progress ledger.

The ledger maps ``userKey -> "platform:dramaId" -> entry``; there is never
more than one entry per triple. Writes go to local state first and are then
pushed to the remote store on a fire-and-forget basis.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .canonical import (
    PLACEHOLDER_POSTER,
    UNTITLED,
    ContinueWatchingEntry,
    Drama,
    Platform,
    SavedDrama,
    is_invalid_title,
    is_usable_poster,
    now_millis,
    positive_int,
    scoped_key,
    user_key,
)
from .state import AppState
from .sync_bridge import SyncQueue

logger = logging.getLogger(__name__)

MIN_PROGRESS_SECONDS = 1


def resolve_title(incoming: Any, previous: Any, drama_id: str) -> str:
    """Incoming title unless it is a placeholder; then previous; then fallback."""
    if not is_invalid_title(incoming, drama_id):
        return str(incoming).strip()
    if not is_invalid_title(previous, drama_id):
        return str(previous).strip()
    return UNTITLED


def resolve_poster(incoming: Any, previous: Any) -> str:
    """Incoming poster unless it is a placeholder; then previous; then placeholder."""
    if is_usable_poster(incoming):
        return str(incoming).strip()
    if is_usable_poster(previous):
        return str(previous).strip()
    return PLACEHOLDER_POSTER


def _valid_progress(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    if value < MIN_PROGRESS_SECONDS:
        return None
    return int(value)


class ContinueWatchingStore:
    """Ledger operations for the active user and platform."""

    def __init__(
        self,
        state: AppState,
        sync: Optional[SyncQueue] = None,
        clock_ms: Callable[[], int] = now_millis,
        auto_drain: bool = True,
    ):
        """Initialize store.

        Args:
            state: Shared application state
            sync: Outbound sync queue (None: local only)
            clock_ms: Epoch-millis clock (injectable for tests)
            auto_drain: Drain the sync queue right after each local write
        """
        self.state = state
        self.sync = sync
        self.clock_ms = clock_ms
        self.auto_drain = auto_drain

    # --- helpers ---

    @property
    def user_key(self) -> str:
        return user_key(self.state.user)

    def _ledger(self) -> Dict[str, Dict[str, ContinueWatchingEntry]]:
        return self.state.get("continueWatching")

    def _segment(self) -> Dict[str, ContinueWatchingEntry]:
        return self._ledger().get(self.user_key, {})

    def _write_segment(self, segment: Optional[Dict[str, ContinueWatchingEntry]]) -> None:
        ledger = dict(self._ledger())
        if segment is None:
            ledger.pop(self.user_key, None)
        else:
            ledger[self.user_key] = segment
        self.state.set(continueWatching=ledger)

    def _uid(self) -> Optional[str]:
        user = self.state.user
        return user.uid if user else None

    def _after_write(self) -> None:
        if self.sync is not None and self.auto_drain:
            self.sync.drain()

    # --- operations ---

    def update_progress(
        self,
        drama: Drama,
        episode_id: Any,
        progress_seconds: Any,
        platform: Optional[Platform] = None,
        episode_no: Any = None,
    ) -> Optional[ContinueWatchingEntry]:
        """Create or overwrite the entry for ``drama`` on ``platform``.

        Sub-threshold progress and dramas without an id are dropped
        silently (returns None). Title and poster never regress to
        placeholders when a good value is already stored.

        Returns:
            The stored entry, or None when the update was dropped
        """
        progress = _valid_progress(progress_seconds)
        if drama is None or progress is None:
            return None
        drama_id = str(drama.id or "").strip()
        if not drama_id:
            return None

        active = Platform.parse(platform, None) or self.state.platform
        key = scoped_key(active, drama_id)
        segment = dict(self._segment())
        existing = segment.get(key)

        timestamp = self.clock_ms()
        if existing is not None:
            timestamp = max(timestamp, existing.timestamp)

        entry = ContinueWatchingEntry(
            platform=active,
            drama_id=drama_id,
            drama_title=resolve_title(drama.title, existing.drama_title if existing else None, drama_id),
            drama_poster=resolve_poster(drama.poster, existing.drama_poster if existing else None),
            episode_id=str(episode_id),
            progress=progress,
            timestamp=timestamp,
            episode_no=positive_int(episode_no) or (existing.episode_no if existing else None),
        )
        segment[key] = entry
        self._write_segment(segment)

        if self.sync is not None and self.sync.enqueue_push(self._uid(), entry):
            self._after_write()
        return entry

    def get_for_current_user(
        self,
        catalog: Optional[Iterable[Union[SavedDrama, Drama]]] = None,
    ) -> List[ContinueWatchingEntry]:
        """Entries of the active user on the active platform, newest first.

        Placeholder posters are backfilled from ``catalog`` when a usable
        poster for the same drama and platform is known. The catalog may mix
        My-List snapshots and freshly loaded dramas (taken to be on the
        active platform); it defaults to the My-List.
        """
        platform = self.state.platform
        posters: Dict[str, str] = {}
        for item in catalog if catalog is not None else self.state.get("myList"):
            drama, item_platform = (item.drama, item.platform) if isinstance(item, SavedDrama) else (item, platform)
            if item_platform == platform and is_usable_poster(drama.poster):
                posters.setdefault(drama.id, drama.poster)

        results = []
        for entry in self._segment().values():
            if entry.platform != platform:
                continue
            title = entry.drama_title if not is_invalid_title(entry.drama_title, entry.drama_id) else UNTITLED
            poster = entry.drama_poster
            if not is_usable_poster(poster):
                poster = posters.get(entry.drama_id, PLACEHOLDER_POSTER)
            results.append(replace(entry, drama_title=title, drama_poster=poster))
        return sorted(results, key=lambda e: e.timestamp, reverse=True)

    def get_entry(self, drama_id: str, platform: Optional[Platform] = None) -> Optional[ContinueWatchingEntry]:
        active = Platform.parse(platform, None) or self.state.platform
        return self._segment().get(scoped_key(active, drama_id))

    def resume_position(self, drama_id: str, episode_id: Any, platform: Optional[Platform] = None) -> int:
        """Seconds to resume at: stored progress if it is the same episode, else 0."""
        entry = self.get_entry(drama_id, platform)
        if entry is None or str(entry.episode_id) != str(episode_id):
            return 0
        return max(0, int(entry.progress))

    def clear_for_current_user(self) -> int:
        """Remove every entry of the active user on all platforms.

        Returns:
            Number of entries removed locally
        """
        removed = len(self._segment())
        self._write_segment(None)
        if self.sync is not None and self.sync.enqueue_clear(self._uid()):
            self._after_write()
        logger.info(f"Cleared {removed} continue-watching entries for {self.user_key}")
        return removed

    def replace_for_current_user(self, entries: Iterable[Union[ContinueWatchingEntry, Dict[str, Any]]]) -> int:
        """Replace the active user's segment with pulled entries (pull wins).

        Entries are revalidated: no drama id or sub-threshold progress means
        dropped, placeholder titles and posters are replaced by the fallback
        label and placeholder poster.

        Returns:
            Number of entries kept
        """
        now_ms = self.clock_ms()
        segment: Dict[str, ContinueWatchingEntry] = {}
        for item in entries or []:
            if isinstance(item, dict):
                item = ContinueWatchingEntry.from_dict(item, now_ms=now_ms)
            if not isinstance(item, ContinueWatchingEntry):
                continue
            drama_id = str(item.drama_id or "").strip()
            progress = _valid_progress(item.progress)
            if not drama_id or progress is None:
                continue
            entry = replace(
                item,
                drama_id=drama_id,
                drama_title=resolve_title(item.drama_title, None, drama_id),
                drama_poster=resolve_poster(item.drama_poster, None),
                episode_id=str(item.episode_id or "1"),
                episode_no=positive_int(item.episode_no),
                progress=progress,
                timestamp=int(item.timestamp or now_ms),
            )
            segment[entry.scoped_key] = entry
        self._write_segment(segment)
        logger.info(f"Replaced continue watching for {self.user_key} with {len(segment)} entries")
        return len(segment)
