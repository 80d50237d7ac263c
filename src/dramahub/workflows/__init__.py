"""Workflows package - orchestrators for multi-step operations.

Coordinates the state service, the continue-watching store and the remote
sync bridge for operations that span all three.
"""

from .session import SessionResult, SessionWorkflow

__all__ = ['SessionResult', 'SessionWorkflow']
