"""Forward migration of the persisted state document.

Older documents stored the continue-watching ledger in one of two shapes:

  flat    {dramaId: entry}                      (single platform, no users)
  nested  {userKey: {scopedKey|dramaId: entry}}

Both are rewritten to ``{userKey: {"platform:dramaId": entry}}``. Missing
platform information defaults to the document's configured platform.
Entries without a recoverable drama id are dropped. Documents already at
the current version are returned untouched, so migrating twice is a no-op.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .canonical import (
    DEFAULT_PLATFORM,
    GUEST_USER_KEY,
    PLACEHOLDER_POSTER,
    UNTITLED,
    ContinueWatchingEntry,
    Platform,
    is_invalid_title,
    is_usable_poster,
    now_millis,
)

logger = logging.getLogger(__name__)

STORAGE_VERSION = 4

_ENTRY_MARKERS = ("episodeId", "dramaTitle")


def _looks_like_entry(value: Any) -> bool:
    return isinstance(value, dict) and any(marker in value for marker in _ENTRY_MARKERS)


def is_flat_ledger(ledger: Dict[str, Any]) -> bool:
    """Flat when there is at least one value and every value looks like an entry."""
    values = list(ledger.values())
    return bool(values) and all(_looks_like_entry(v) for v in values)


def _split_scoped_key(key: str) -> tuple:
    if ":" in key:
        prefix, rest = key.split(":", 1)
        return Platform.parse(prefix), rest
    return None, key


def migrate_entry(
    drama_id: str,
    value: Dict[str, Any],
    default_platform: Platform,
    key_platform: Optional[Platform] = None,
    now_ms: Optional[int] = None,
) -> Optional[ContinueWatchingEntry]:
    """Rebuild one legacy entry; None when no drama id can be recovered."""
    drama_id = str(value.get("dramaId") or drama_id or "").strip()
    if not drama_id:
        return None
    entry = ContinueWatchingEntry.from_dict(
        {**value, "dramaId": drama_id},
        default_platform=key_platform or default_platform,
        now_ms=now_ms,
    )
    if not is_invalid_title(entry.drama_title, drama_id):
        entry.drama_title = entry.drama_title.strip()
    else:
        entry.drama_title = UNTITLED
    if not is_usable_poster(entry.drama_poster):
        entry.drama_poster = PLACEHOLDER_POSTER
    return entry


def migrate_ledger(
    legacy: Any,
    default_platform: Platform = DEFAULT_PLATFORM,
    now_ms: Optional[int] = None,
) -> Dict[str, Dict[str, Dict[str, Any]]]:
    """Rewrite a flat or nested legacy ledger into the scoped shape."""
    if not isinstance(legacy, dict) or not legacy:
        return {}
    now_ms = now_ms if now_ms is not None else now_millis()
    migrated: Dict[str, Dict[str, Dict[str, Any]]] = {}

    if is_flat_ledger(legacy):
        records: Dict[str, Dict[str, Any]] = {}
        for drama_id, value in legacy.items():
            entry = migrate_entry(drama_id, value, default_platform, now_ms=now_ms)
            if entry is not None:
                records[entry.scoped_key] = entry.to_dict()
        if records:
            migrated[GUEST_USER_KEY] = records
        logger.info(f"Migrated flat ledger: {len(records)} entries")
        return migrated

    for user, segment in legacy.items():
        if not isinstance(segment, dict):
            continue
        records = {}
        for key, value in segment.items():
            if not isinstance(value, dict):
                logger.debug(f"Dropping non-entry ledger value under {user}/{key}")
                continue
            key_platform, key_drama_id = _split_scoped_key(str(key))
            entry = migrate_entry(key_drama_id, value, default_platform, key_platform, now_ms=now_ms)
            if entry is None:
                logger.debug(f"Dropping ledger entry {user}/{key}: no drama id")
                continue
            records[entry.scoped_key] = entry.to_dict()
        if records:
            migrated[str(user)] = records
    logger.info(f"Migrated nested ledger: {sum(len(r) for r in migrated.values())} entries")
    return migrated


def migrate_state(
    document: Optional[Dict[str, Any]],
    version: int,
    current_version: int = STORAGE_VERSION,
    now_ms: Optional[int] = None,
) -> Optional[Dict[str, Any]]:
    """Bring a persisted document up to ``current_version``.

    Args:
        document: Persisted state document (may be None)
        version: Version the document was stored with
        current_version: Version the running code writes
        now_ms: Timestamp for entries missing one (default: now)

    Returns:
        The migrated document (a new dict), or the input unchanged when
        it is empty or already current
    """
    if not document or version >= current_version:
        return document

    default_platform = Platform.parse(document.get("platform"), DEFAULT_PLATFORM)
    logger.info(f"Migrating stored state from v{version} to v{current_version}")

    my_list = document.get("myList")
    migrated_list = []
    if isinstance(my_list, list):
        for item in my_list:
            if isinstance(item, dict):
                platform = Platform.parse(item.get("_platform"), default_platform)
                migrated_list.append({**item, "_platform": platform.value})

    return {
        **document,
        "myList": migrated_list,
        "continueWatching": migrate_ledger(document.get("continueWatching"), default_platform, now_ms),
    }
