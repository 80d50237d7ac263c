"""Peewee ORM models - local persistence for DramaHub."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from peewee import (
    AutoField,
    CharField,
    DateTimeField,
    IntegerField,
    Model,
    SqliteDatabase,
    TextField,
)


def default_db_path() -> Path:
    """Get database path, creating parent directories if needed."""
    p = Path.home() / ".config" / "dramahub" / "dramahub.db"
    p.parent.mkdir(parents=True, exist_ok=True)
    return p


# Deferred: bound to a file by init_db()
database = SqliteDatabase(None, pragmas={
    'journal_mode': 'wal',
    'foreign_keys': 1,
})


class BaseModel(Model):
    """Base model with database binding."""

    class Meta:
        database = database


class StoredState(BaseModel):
    """A persisted state document (the ledger lives in here).

    ``payload`` holds the JSON document ``{myList, continueWatching, user,
    platform}``; ``version`` is its schema version.
    """

    name = CharField(primary_key=True)
    version = IntegerField(default=0)
    payload = TextField()
    updated_at = DateTimeField(default=lambda: datetime.now(timezone.utc))

    class Meta:
        table_name = 'stored_state'


class SyncLog(BaseModel):
    """Outcome of each remote sync job, for observing failed pushes."""

    id = AutoField()
    timestamp = DateTimeField(default=lambda: datetime.now(timezone.utc))
    operation = CharField()  # push, pull, clear, save_profile
    user_id = CharField(null=True)
    target = CharField(null=True)  # scoped key for pushes
    status = CharField()  # success, failed, skipped
    notes = TextField(null=True)

    class Meta:
        table_name = 'sync_log'


ALL_MODELS = [StoredState, SyncLog]


def init_db(path: Optional[Path] = None) -> None:
    """Bind the database (once) and create tables."""
    if database.database is None or path is not None:
        if not database.is_closed():
            database.close()
        database.init(str(path or default_db_path()))
    database.connect(reuse_if_open=True)
    database.create_tables(ALL_MODELS, safe=True)


def close_db() -> None:
    """Close database connection."""
    if not database.is_closed():
        database.close()
