"""Error taxonomy for DramaHub.

Only UpstreamUnavailable and SyncFailure are ever raised, and both are
caught at the service boundary (CatalogService, SyncQueue). MalformedField
and InvalidUpdate exist to name the conditions that are resolved by
fallbacks or silently dropped.
"""


class DramaHubError(Exception):
    """Base class for all DramaHub errors."""


class UpstreamUnavailable(DramaHubError):
    """A provider fetch failed (network error, bad status, undecodable body)."""

    def __init__(self, platform: str, path: str, reason: str = ""):
        self.platform = platform
        self.path = path
        self.reason = reason
        message = f"{platform} unavailable for {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class MalformedField(DramaHubError):
    """An upstream field is missing or unparseable (never raised)."""


class SyncFailure(DramaHubError):
    """A remote push, pull, clear or profile save failed."""

    def __init__(self, operation: str, reason: str = ""):
        self.operation = operation
        self.reason = reason
        super().__init__(f"sync {operation} failed: {reason}" if reason else f"sync {operation} failed")


class InvalidUpdate(DramaHubError):
    """A progress update below threshold or without a drama id (never raised)."""
