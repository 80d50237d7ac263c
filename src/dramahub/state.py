"""Application state service.

One ``AppState`` is constructed at startup and passed to everything that
reads or writes user state (continue-watching store, My-List, session
workflow). It exposes ``get``/``set``/``subscribe`` and persists itself
through the Repository with debounced writes.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from .canonical import (
    DEFAULT_PLATFORM,
    ContinueWatchingEntry,
    Platform,
    SavedDrama,
    UserProfile,
)
from .migration import STORAGE_VERSION, migrate_state
from .repository import Repository

logger = logging.getLogger(__name__)

Listener = Callable[["AppState", List[str]], None]

# Ledger type: userKey -> "platform:dramaId" -> entry
Ledger = Dict[str, Dict[str, ContinueWatchingEntry]]


class AppState:
    """In-memory authoritative state with debounced local persistence.

    Keys:
        myList: List[SavedDrama]
        continueWatching: Ledger
        user: Optional[UserProfile]
        platform: Platform
    """

    KEYS = ("myList", "continueWatching", "user", "platform")

    def __init__(
        self,
        repository: Optional[Repository] = None,
        debounce_seconds: float = 1.0,
        default_platform: Platform = DEFAULT_PLATFORM,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize empty state.

        Args:
            repository: Where to persist (None keeps state in memory only)
            debounce_seconds: Minimum interval between two writes
            default_platform: Platform used until one is chosen
            clock: Monotonic clock (injectable for tests)
        """
        self.repository = repository
        self.debounce_seconds = debounce_seconds
        self.default_platform = default_platform
        self._clock = clock
        self._data: Dict[str, Any] = {
            "myList": [],
            "continueWatching": {},
            "user": None,
            "platform": default_platform,
        }
        self._listeners: List[Listener] = []
        self._dirty = False
        self._last_write: Optional[float] = None

    @classmethod
    def load(cls, repository: Repository, **kwargs: Any) -> "AppState":
        """Load persisted state, migrating older documents forward."""
        state = cls(repository=repository, **kwargs)
        stored = repository.load_state()
        if stored is None:
            return state
        version, document = stored
        migrated = migrate_state(document, version)
        state._hydrate(migrated)
        if version < STORAGE_VERSION:
            repository.save_state(STORAGE_VERSION, state.to_document())
            state._last_write = state._clock()
        return state

    # --- state service interface ---

    def get(self, key: str) -> Any:
        if key not in self.KEYS:
            raise KeyError(key)
        return self._data[key]

    def set(self, **changes: Any) -> None:
        """Replace one or more keys, notify listeners and schedule a write."""
        unknown = set(changes) - set(self.KEYS)
        if unknown:
            raise KeyError(", ".join(sorted(unknown)))
        if not changes:
            return
        self._data.update(changes)
        self._notify(sorted(changes))
        self._dirty = True
        self._persist_debounced()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(state, changed_keys)``; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # --- convenience accessors ---

    @property
    def user(self) -> Optional[UserProfile]:
        return self._data["user"]

    @property
    def platform(self) -> Platform:
        return self._data["platform"]

    # --- persistence ---

    @property
    def dirty(self) -> bool:
        return self._dirty

    def flush(self) -> bool:
        """Write pending changes now. Returns True if a write happened."""
        if not self._dirty or self.repository is None:
            return False
        self.repository.save_state(STORAGE_VERSION, self.to_document())
        self._dirty = False
        self._last_write = self._clock()
        return True

    def close(self) -> None:
        self.flush()

    def _persist_debounced(self) -> None:
        if self.repository is None:
            return
        now = self._clock()
        if self._last_write is None or now - self._last_write >= self.debounce_seconds:
            self.flush()
        else:
            logger.debug("State write deferred (debounce)")

    def _notify(self, keys: List[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(self, keys)
            except Exception as e:
                logger.error(f"State listener failed for {keys}: {e}")

    # --- (de)serialization ---

    def to_document(self) -> Dict[str, Any]:
        user = self._data["user"]
        return {
            "myList": [item.to_dict() for item in self._data["myList"]],
            "continueWatching": {
                key: {scoped: entry.to_dict() for scoped, entry in segment.items()}
                for key, segment in self._data["continueWatching"].items()
            },
            "user": user.to_dict() if user else None,
            "platform": self._data["platform"].value,
        }

    def _hydrate(self, document: Optional[Dict[str, Any]]) -> None:
        if not document:
            return
        platform = Platform.parse(document.get("platform"), self.default_platform)
        my_list = [
            SavedDrama.from_dict(item, platform)
            for item in document.get("myList") or []
            if isinstance(item, dict)
        ]
        ledger: Ledger = {}
        for key, segment in (document.get("continueWatching") or {}).items():
            if not isinstance(segment, dict):
                continue
            entries = {}
            for scoped, raw in segment.items():
                if not isinstance(raw, dict):
                    continue
                entry = ContinueWatchingEntry.from_dict(raw, platform)
                if entry.drama_id:
                    entries[entry.scoped_key] = entry
            ledger[key] = entries
        self._data.update({
            "myList": my_list,
            "continueWatching": ledger,
            "user": UserProfile.from_dict(document.get("user")),
            "platform": platform,
        })
