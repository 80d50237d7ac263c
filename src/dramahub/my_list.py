"""My-List: dramas the user saved, each tagged with its platform."""

from __future__ import annotations

import logging
from typing import List, Optional

from .canonical import Drama, Platform, SavedDrama
from .state import AppState

logger = logging.getLogger(__name__)


class MyList:
    """Saved-drama collection over the shared application state."""

    def __init__(self, state: AppState):
        self.state = state

    def _all(self) -> List[SavedDrama]:
        return list(self.state.get("myList"))

    def _platform(self, platform: Optional[Platform]) -> Platform:
        return Platform.parse(platform, None) or self.state.platform

    def items(self, platform: Optional[Platform] = None) -> List[SavedDrama]:
        """Saved dramas on ``platform`` (default: the active one), oldest first."""
        active = self._platform(platform)
        return [saved for saved in self._all() if saved.platform == active]

    def contains(self, drama_id: str, platform: Optional[Platform] = None) -> bool:
        active = self._platform(platform)
        return any(s.drama.id == drama_id and s.platform == active for s in self._all())

    def add(self, drama: Drama, platform: Optional[Platform] = None) -> bool:
        """Save a drama snapshot. Adding the same id twice is a no-op.

        Returns:
            True if the drama was added
        """
        if not drama.id:
            return False
        active = self._platform(platform)
        if self.contains(drama.id, active):
            return False
        self.state.set(myList=self._all() + [SavedDrama(drama, active)])
        logger.info(f"Added {drama.id} to my list ({active.value})")
        return True

    def remove(self, drama_id: str, platform: Optional[Platform] = None) -> bool:
        active = self._platform(platform)
        current = self._all()
        kept = [s for s in current if not (s.drama.id == drama_id and s.platform == active)]
        if len(kept) == len(current):
            return False
        self.state.set(myList=kept)
        logger.info(f"Removed {drama_id} from my list ({active.value})")
        return True

    def clear_platform(self, platform: Optional[Platform] = None) -> int:
        """Remove every saved drama on one platform; returns how many were removed."""
        active = self._platform(platform)
        current = self._all()
        kept = [s for s in current if s.platform != active]
        removed = len(current) - len(kept)
        if removed:
            self.state.set(myList=kept)
        return removed

    def clear_all(self) -> int:
        removed = len(self._all())
        if removed:
            self.state.set(myList=[])
        return removed
