"""Queries package - read-only operations for viewing state.

Provides query objects for reading local data without
modifying state. Used by the CLI 'sync status' command.
"""

from .status import StatusQuery, SyncIssue, SyncStats

__all__ = ['StatusQuery', 'SyncIssue', 'SyncStats']
