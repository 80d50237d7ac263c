"""Repository - single data access layer for local persistence.

Implements the Repository pattern over the Peewee models: the persisted
state document and the sync outcome log.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from peewee import PeeweeException

from .models import StoredState, SyncLog, database, init_db

logger = logging.getLogger(__name__)

STORAGE_NAME = "dramahub-storage"


class Repository:
    """Loads and saves the state document; records sync outcomes."""

    def __init__(self, db_path: Optional[Path] = None, name: str = STORAGE_NAME):
        """Initialize repository and ensure DB is ready.

        Args:
            db_path: SQLite file (default: ~/.config/dramahub/dramahub.db)
            name: Storage key of the state document
        """
        init_db(db_path)
        self.name = name

    # --- State document ---

    def load_state(self) -> Optional[Tuple[int, Dict[str, Any]]]:
        """Return ``(version, document)`` or None when nothing is stored.

        A corrupt document is logged and treated as absent.
        """
        row = StoredState.get_or_none(StoredState.name == self.name)
        if row is None:
            return None
        try:
            document = json.loads(row.payload)
        except ValueError as e:
            logger.error(f"Stored state {self.name} is not valid JSON, ignoring it: {e}")
            return None
        if not isinstance(document, dict):
            logger.error(f"Stored state {self.name} is not an object, ignoring it")
            return None
        return int(row.version or 0), document

    def save_state(self, version: int, document: Dict[str, Any]) -> None:
        """Create or replace the state document."""
        payload = json.dumps(document, ensure_ascii=False, sort_keys=True)
        now = datetime.now(timezone.utc)
        with database.atomic():
            (StoredState
             .insert(name=self.name, version=version, payload=payload, updated_at=now)
             .on_conflict(
                 conflict_target=[StoredState.name],
                 update={
                     StoredState.version: version,
                     StoredState.payload: payload,
                     StoredState.updated_at: now,
                 },
             )
             .execute())
        logger.debug(f"Saved state {self.name} (v{version}, {len(payload)} bytes)")

    # --- Sync log ---

    def log_sync(
        self,
        operation: str,
        status: str,
        user_id: Optional[str] = None,
        target: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> None:
        """Record a sync outcome; failures to record are only logged."""
        try:
            SyncLog.create(
                operation=operation,
                status=status,
                user_id=user_id,
                target=target,
                notes=notes,
            )
        except PeeweeException as e:
            logger.error(f"Failed to record sync {operation} ({status}): {e}")

    def get_sync_failures(self, limit: int = 20) -> List[SyncLog]:
        """Most recent failed sync jobs, newest first."""
        return list(
            SyncLog.select()
            .where(SyncLog.status == 'failed')
            .order_by(SyncLog.id.desc())
            .limit(limit)
        )

    def get_sync_stats(self) -> Dict[str, int]:
        return {
            'total': SyncLog.select().count(),
            'success': SyncLog.select().where(SyncLog.status == 'success').count(),
            'failed': SyncLog.select().where(SyncLog.status == 'failed').count(),
            'skipped': SyncLog.select().where(SyncLog.status == 'skipped').count(),
        }

    def get_last_sync(self) -> Optional[SyncLog]:
        return SyncLog.select().order_by(SyncLog.id.desc()).first()
