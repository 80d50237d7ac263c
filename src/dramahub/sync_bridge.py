"""Remote sync for the continue-watching ledger.

The core only depends on the ``SyncBridge`` protocol. ``FirestoreSyncBridge``
implements it over the Firestore REST API; ``NullSyncBridge`` is used when
no remote is configured. ``SyncQueue`` is the outbound side: jobs are
fire-and-forget, failures are logged and recorded, never raised.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Tuple

import requests

from .canonical import (
    DEFAULT_PLATFORM,
    PLACEHOLDER_POSTER,
    UNTITLED,
    ContinueWatchingEntry,
    IssueReport,
    UserProfile,
    now_millis,
)
from .errors import SyncFailure
from .http_utils import SYNC_TIMEOUT, retry_on_transient

logger = logging.getLogger(__name__)

FIRESTORE_API = "https://firestore.googleapis.com/v1"
PULL_PAGE_SIZE = 300


class SyncBridge(Protocol):
    """Remote store contract. Every method raises SyncFailure on error."""

    def push(self, user_id: str, entry: ContinueWatchingEntry) -> None: ...
    def pull(self, user_id: str) -> List[ContinueWatchingEntry]: ...
    def clear(self, user_id: str) -> None: ...
    def save_profile(self, user_id: str, profile: UserProfile) -> None: ...
    def save_issue_report(self, user_id: str, report: IssueReport) -> Optional[str]: ...


class NullSyncBridge:
    """Bridge used when no remote store is configured (local-only mode)."""

    def push(self, user_id: str, entry: ContinueWatchingEntry) -> None:
        logger.debug(f"No remote configured, not pushing {entry.scoped_key}")

    def pull(self, user_id: str) -> List[ContinueWatchingEntry]:
        return []

    def clear(self, user_id: str) -> None:
        pass

    def save_profile(self, user_id: str, profile: UserProfile) -> None:
        pass

    def save_issue_report(self, user_id: str, report: IssueReport) -> Optional[str]:
        return None


# --- Firestore value codec ---

def encode_value(value: Any) -> Dict[str, Any]:
    """Python value -> Firestore typed value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    return {"stringValue": str(value)}


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {str(k): encode_value(v) for k, v in data.items()}


def decode_value(value: Dict[str, Any]) -> Any:
    """Firestore typed value -> Python value (unknown types decode to None)."""
    if not isinstance(value, dict):
        return None
    if "stringValue" in value:
        return value["stringValue"]
    if "integerValue" in value:
        try:
            return int(value["integerValue"])
        except (TypeError, ValueError):
            return None
    if "doubleValue" in value:
        try:
            number = float(value["doubleValue"])
        except (TypeError, ValueError):
            return None
        return number if math.isfinite(number) else None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "mapValue" in value:
        mapping = value["mapValue"]
        return decode_fields(mapping.get("fields") if isinstance(mapping, dict) else None)
    if "arrayValue" in value:
        array = value["arrayValue"]
        values = array.get("values") if isinstance(array, dict) else None
        return [decode_value(v) for v in values] if isinstance(values, list) else []
    if "timestampValue" in value:
        return value["timestampValue"]
    return None


def decode_fields(fields: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not isinstance(fields, dict):
        return {}
    return {k: decode_value(v) for k, v in fields.items()}


def document_id(entry: ContinueWatchingEntry) -> str:
    return f"{entry.platform.value}__{entry.drama_id}"


def normalize_remote_entry(data: Dict[str, Any], now_ms: Optional[int] = None) -> Optional[ContinueWatchingEntry]:
    """Pulled document -> entry with defaults; None when it has no drama id."""
    if not isinstance(data, dict):
        return None
    entry = ContinueWatchingEntry.from_dict(data, DEFAULT_PLATFORM, now_ms=now_ms)
    if not entry.drama_id:
        return None
    entry.drama_title = entry.drama_title or UNTITLED
    entry.drama_poster = entry.drama_poster or PLACEHOLDER_POSTER
    return entry


class FirestoreSyncBridge:
    """SyncBridge over the Firestore REST API.

    Layout:
        users/{uid}                                    profile
        users/{uid}/continueWatching/{platform}__{id}  ledger entries
        users/{uid}/reports/{auto id}                    issue reports
    """

    def __init__(
        self,
        project_id: str,
        api_key: Optional[str] = None,
        id_token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Tuple[float, float] = SYNC_TIMEOUT,
    ):
        """Initialize bridge.

        Args:
            project_id: Firebase project id
            api_key: Web API key (sent as ``key``)
            id_token: Firebase ID token of the signed-in user
            session: HTTP session
            timeout: (connect, read) timeout
        """
        if not project_id:
            raise ValueError("project_id is required")
        self.project_id = project_id
        self.api_key = api_key
        self.id_token = id_token
        self.session = session or requests.Session()
        self.timeout = timeout
        self.documents_url = f"{FIRESTORE_API}/projects/{project_id}/databases/(default)/documents"

    def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        params = kwargs.pop("params", None) or []
        params = list(params.items()) if isinstance(params, dict) else list(params)
        if self.api_key:
            params.append(("key", self.api_key))
        headers = {"Accept": "application/json"}
        if self.id_token:
            headers["Authorization"] = f"Bearer {self.id_token}"
        try:
            response = retry_on_transient(
                self.session.request, method, url,
                params=params, headers=headers, timeout=self.timeout, **kwargs,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise SyncFailure(operation, str(e)) from e
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise SyncFailure(operation, f"invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise SyncFailure(operation, f"unexpected response body: {type(data).__name__}")
        return data

    def _collection_url(self, user_id: str) -> str:
        return f"{self.documents_url}/users/{user_id}/continueWatching"

    def _merge_write(self, operation: str, url: str, data: Dict[str, Any]) -> None:
        # Listing every field in updateMask gives merge semantics.
        params = [("updateMask.fieldPaths", name) for name in data]
        self._request(operation, "PATCH", url, params=params, json={"fields": encode_fields(data)})

    def push(self, user_id: str, entry: ContinueWatchingEntry) -> None:
        url = f"{self._collection_url(user_id)}/{document_id(entry)}"
        self._merge_write("push", url, entry.to_dict())
        logger.debug(f"Pushed {entry.scoped_key} for {user_id}")

    def _list_documents(self, user_id: str) -> List[Dict[str, Any]]:
        documents: List[Dict[str, Any]] = []
        page_token = None
        while True:
            params = {"pageSize": PULL_PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token
            data = self._request("pull", "GET", self._collection_url(user_id), params=params)
            found = data.get("documents")
            if isinstance(found, list):
                documents.extend(d for d in found if isinstance(d, dict))
            page_token = data.get("nextPageToken")
            if not page_token or not isinstance(page_token, str):
                return documents

    def pull(self, user_id: str) -> List[ContinueWatchingEntry]:
        now_ms = now_millis()
        entries = []
        for document in self._list_documents(user_id):
            entry = normalize_remote_entry(decode_fields(document.get("fields")), now_ms)
            if entry is not None:
                entries.append(entry)
        logger.info(f"Pulled {len(entries)} continue-watching entries for {user_id}")
        return entries

    def clear(self, user_id: str) -> None:
        names = [d["name"] for d in self._list_documents(user_id) if isinstance(d.get("name"), str) and d["name"]]
        if not names:
            return
        commit_url = f"{FIRESTORE_API}/projects/{self.project_id}/databases/(default)/documents:commit"
        self._request("clear", "POST", commit_url, json={"writes": [{"delete": n} for n in names]})
        logger.info(f"Cleared {len(names)} remote entries for {user_id}")

    def save_profile(self, user_id: str, profile: UserProfile) -> None:
        if not profile.name or not profile.email:
            logger.debug("Profile without name or email, not saving")
            return
        data: Dict[str, Any] = {
            "name": profile.name.strip(),
            "email": profile.email.strip().lower(),
            "updatedAt": now_millis(),
        }
        if profile.picture:
            data["picture"] = profile.picture.strip()
        self._merge_write("save_profile", f"{self.documents_url}/users/{user_id}", data)

    def save_issue_report(self, user_id: str, report: IssueReport) -> Optional[str]:
        """Store a report under ``users/{uid}/reports`` with a server-assigned id.

        Args:
            user_id: Signed-in user's uid
            report: Report to store

        Returns:
            Id of the created document, or None when the report was skipped
            (no uid, or a blank title, description or platform)

        Raises:
            SyncFailure: When the write fails
        """
        if not user_id or not report.is_complete:
            logger.debug("Incomplete issue report, not saving")
            return None
        url = f"{self.documents_url}/users/{user_id}/reports"
        created = self._request(
            "save_issue_report", "POST", url, json={"fields": encode_fields(report.to_dict())},
        )
        name = created.get("name")
        report_id = name.rsplit("/", 1)[-1] if isinstance(name, str) and name else None
        logger.info(f"Saved issue report {report_id} for {user_id}")
        return report_id


# --- outbound queue ---

@dataclass
class SyncJob:
    operation: str  # push | clear
    user_id: str
    entry: Optional[ContinueWatchingEntry] = None
    queued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def target(self) -> Optional[str]:
        return self.entry.scoped_key if self.entry else None


@dataclass
class DrainResult:
    succeeded: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


class SyncQueue:
    """Fire-and-forget outbound queue in front of a SyncBridge.

    Pushes for the same user and scoped key collapse to the newest one.
    Failed jobs are logged, recorded in the sync log and dropped; the next
    natural sync opportunity (a newer push, a session pull) catches up.
    """

    def __init__(self, bridge: SyncBridge, repository=None):
        """Initialize queue.

        Args:
            bridge: Remote store
            repository: Repository used to record outcomes (optional)
        """
        self.bridge = bridge
        self.repository = repository
        self._pending: List[SyncJob] = []
        self.last_error: Optional[str] = None

    @property
    def pending(self) -> List[SyncJob]:
        return list(self._pending)

    def enqueue_push(self, user_id: Optional[str], entry: ContinueWatchingEntry) -> bool:
        """Queue a push; returns False (and skips) for users without a uid."""
        if not user_id:
            return False
        self._pending = [
            job for job in self._pending
            if not (job.operation == "push" and job.user_id == user_id and job.target == entry.scoped_key)
        ]
        self._pending.append(SyncJob("push", user_id, entry))
        return True

    def enqueue_clear(self, user_id: Optional[str]) -> bool:
        """Queue a remote bulk delete; pending pushes for the user are dropped."""
        if not user_id:
            return False
        self._pending = [job for job in self._pending if job.user_id != user_id]
        self._pending.append(SyncJob("clear", user_id))
        return True

    def drain(self) -> DrainResult:
        """Run every pending job once. Never raises."""
        result = DrainResult()
        jobs, self._pending = self._pending, []
        for job in jobs:
            try:
                if job.operation == "push":
                    self.bridge.push(job.user_id, job.entry)
                else:
                    self.bridge.clear(job.user_id)
            except SyncFailure as e:
                result.failed += 1
                result.errors.append(str(e))
                self.last_error = str(e)
                logger.error(f"Failed to {job.operation} continue watching for {job.user_id}: {e}")
                self._record(job, "failed", str(e))
                continue
            result.succeeded += 1
            self._record(job, "success")
        return result

    def _record(self, job: SyncJob, status: str, notes: Optional[str] = None) -> None:
        if self.repository is not None:
            self.repository.log_sync(job.operation, status, user_id=job.user_id, target=job.target, notes=notes)
