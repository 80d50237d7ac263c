"""Session Workflow - sign-in and sign-out around the continue-watching ledger.

Flow on sign-in:
  1. Store the user profile (the ledger segment switches to the user's email)
  2. Save the profile remotely (best-effort)
  3. Pull the remote entries for the user
  4. Replace the user's local segment with them (pull wins)

Remote failures never abort the sign-in: the local ledger stays
authoritative and the failure is logged and recorded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..canonical import UserProfile
from ..continue_watching import ContinueWatchingStore
from ..errors import SyncFailure
from ..repository import Repository
from ..state import AppState
from ..sync_bridge import NullSyncBridge, SyncBridge

logger = logging.getLogger(__name__)


@dataclass
class SessionResult:
    """Result of a sign-in or pull."""
    profile_saved: bool = False
    pulled: int = 0
    applied: int = 0
    errors: List[str] = field(default_factory=list)


class SessionWorkflow:
    """Orchestrates session start and end.

    Coordinates between:
    - AppState: the signed-in user
    - ContinueWatchingStore: the local ledger
    - SyncBridge: the remote store
    - Repository: records pull outcomes (optional)
    """

    def __init__(
        self,
        state: AppState,
        store: ContinueWatchingStore,
        bridge: Optional[SyncBridge] = None,
        repository: Optional[Repository] = None,
    ):
        self.state = state
        self.store = store
        self.bridge = bridge or NullSyncBridge()
        self.repo = repository

    def sign_in(
        self,
        profile: UserProfile,
        progress_callback: Optional[Callable[[str], None]] = None,
    ) -> SessionResult:
        """Make ``profile`` the active user and load their remote ledger.

        Args:
            profile: Signed-in user (``uid`` enables remote sync)
            progress_callback: Optional callback for progress updates

        Returns:
            SessionResult with what was saved and pulled
        """
        def log_progress(msg: str):
            logger.info(msg)
            if progress_callback:
                progress_callback(msg)

        self.state.set(user=profile)
        log_progress(f"Signed in as {profile.email.strip().lower()}")

        result = SessionResult()
        if not profile.uid:
            log_progress("No remote account id, staying local-only")
            return result

        try:
            self.bridge.save_profile(profile.uid, profile)
            result.profile_saved = True
        except SyncFailure as e:
            result.errors.append(str(e))
            logger.error(f"Failed to save profile for {profile.uid}: {e}")

        pull = self.pull()
        result.pulled = pull.pulled
        result.applied = pull.applied
        result.errors.extend(pull.errors)
        return result

    def pull(self) -> SessionResult:
        """Pull the active user's remote entries and replace the local segment."""
        result = SessionResult()
        user = self.state.user
        if user is None or not user.uid:
            logger.info("Not signed in with a remote account, nothing to pull")
            return result

        try:
            entries = self.bridge.pull(user.uid)
        except SyncFailure as e:
            result.errors.append(str(e))
            logger.error(f"Failed to pull continue watching for {user.uid}: {e}")
            self._record(user.uid, "failed", str(e))
            return result

        result.pulled = len(entries)
        result.applied = self.store.replace_for_current_user(entries)
        self._record(user.uid, "success", f"{result.applied} entries applied")
        return result

    def sign_out(self) -> None:
        """Forget the user; the ledger falls back to the guest segment."""
        user = self.state.user
        self.state.set(user=None)
        if user is not None:
            logger.info(f"Signed out {user.email}")

    def _record(self, user_id: str, status: str, notes: Optional[str] = None) -> None:
        if self.repo is not None:
            self.repo.log_sync("pull", status, user_id=user_id, notes=notes)
