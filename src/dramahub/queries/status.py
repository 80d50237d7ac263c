"""Status Query - local ledger and sync health.

Provides an overview of the local state (ledger size per user and
platform, My-List size) and the outcome of recent remote sync jobs.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from ..canonical import user_key
from ..repository import Repository
from ..state import AppState


@dataclass
class SyncStats:
    """Statistics about local state and remote sync."""
    user_key: str
    platform: str
    ledger_entries: int
    entries_by_platform: Dict[str, int] = field(default_factory=dict)
    my_list_items: int = 0
    sync_jobs: int = 0
    sync_succeeded: int = 0
    sync_failed: int = 0
    last_sync: Optional[datetime] = None
    last_sync_status: Optional[str] = None

    @property
    def success_rate(self) -> float:
        """Percentage of sync jobs that succeeded."""
        if self.sync_jobs == 0:
            return 0.0
        return (self.sync_succeeded / self.sync_jobs) * 100


@dataclass
class SyncIssue:
    """A potential issue with the sync system."""
    severity: str  # "warning", "error"
    message: str
    context: Optional[str] = None


class StatusQuery:
    """Query for local state and sync health."""

    def __init__(self, state: AppState, repository: Optional[Repository] = None, remote_enabled: bool = False):
        """Initialize query.

        Args:
            state: Application state
            repository: Data repository (default: the state's repository)
            remote_enabled: Whether a remote store is configured
        """
        self.state = state
        self.repo = repository or state.repository
        self.remote_enabled = remote_enabled

    def get_stats(self) -> SyncStats:
        key = user_key(self.state.user)
        segment = self.state.get("continueWatching").get(key, {})
        stats = SyncStats(
            user_key=key,
            platform=self.state.platform.value,
            ledger_entries=len(segment),
            entries_by_platform=dict(Counter(e.platform.value for e in segment.values())),
            my_list_items=len(self.state.get("myList")),
        )
        if self.repo is not None:
            counts = self.repo.get_sync_stats()
            stats.sync_jobs = counts.get("total", 0)
            stats.sync_succeeded = counts.get("success", 0)
            stats.sync_failed = counts.get("failed", 0)
            last = self.repo.get_last_sync()
            if last is not None:
                stats.last_sync = last.timestamp
                stats.last_sync_status = last.status
        return stats

    def get_issues(self) -> List[SyncIssue]:
        issues = []
        stats = self.get_stats()
        user = self.state.user

        if not self.remote_enabled:
            issues.append(SyncIssue(
                severity="warning",
                message="No remote store configured, progress is kept on this device only",
                context="Set [firebase] project_id in settings.toml",
            ))
        elif user is None or not user.uid:
            issues.append(SyncIssue(
                severity="warning",
                message="Not signed in with a remote account, progress is not synced",
                context="Run 'login EMAIL --uid UID'",
            ))

        if stats.last_sync_status == "failed":
            issues.append(SyncIssue(
                severity="error",
                message="Last sync job failed",
                context="Run 'sync failures' to see the errors",
            ))

        return issues

    def health_check(self) -> Dict:
        stats = self.get_stats()
        issues = self.get_issues()

        errors = [i for i in issues if i.severity == "error"]
        warnings = [i for i in issues if i.severity == "warning"]

        if errors:
            status = "unhealthy"
        elif warnings:
            status = "degraded"
        else:
            status = "healthy"

        return {
            "status": status,
            "stats": stats,
            "issues": issues,
            "errors": len(errors),
            "warnings": len(warnings),
        }
