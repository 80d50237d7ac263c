"""HTTP caching layer for provider detail and episode lookups.

Uses requests-cache so repeated detail/episode requests within the TTL are
served locally, and stale responses are served when a provider is down.
Adapters send only those lookups through this session (``lookup_session``).
Homepage, row, random and video/voucher requests go through a plain session;
homepage pages are cached separately (see adapters.base.HomePageCache)
because their freshness window is much shorter.
"""

import logging
from datetime import timedelta
from pathlib import Path
from typing import Dict, Optional, Tuple

import requests_cache

logger = logging.getLogger(__name__)


def default_cache_dir() -> Path:
    return Path.home() / ".config" / "dramahub"


class CachedSession:
    """Provider HTTP session with automatic caching for GET requests.

    Uses a SQLite backend: ~/.config/dramahub/http_cache_<platform>.sqlite
    """

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        cache_name: str = "http_cache",
        expire_after: Optional[timedelta] = None,
    ):
        """Initialize cached session.

        Args:
            cache_dir: Directory for cache database (default: ~/.config/dramahub)
            cache_name: Name of cache database file (without extension)
            expire_after: How long to cache responses (default: 10 minutes)
        """
        cache_dir = cache_dir or default_cache_dir()
        cache_dir.mkdir(parents=True, exist_ok=True)
        self.cache_path = cache_dir / cache_name
        self.expire_after = expire_after or timedelta(minutes=10)

        self.session = requests_cache.CachedSession(
            str(self.cache_path),
            backend="sqlite",
            expire_after=self.expire_after,
            allowable_methods=("GET", "HEAD"),
            allowable_codes=(200,),
            stale_if_error=True,
        )
        self.session.headers.update({
            "User-Agent": "dramahub/1.0",
            "Accept": "application/json",
        })

        logger.debug(
            f"Initialized HTTP cache at {self.cache_path} "
            f"(expire_after={self.expire_after.total_seconds()}s)"
        )

    def stats(self) -> dict:
        """Cache location, size and TTL."""
        try:
            cache_file = self.cache_path.with_suffix(".sqlite")
            cache_size = cache_file.stat().st_size if cache_file.exists() else 0
            return {
                "cache_path": str(self.cache_path),
                "cache_size_mb": cache_size / (1024 * 1024),
                "expire_after_minutes": self.expire_after.total_seconds() / 60,
            }
        except OSError as e:
            logger.warning(f"Failed to get cache stats: {e}")
            return {}

    def clear(self) -> None:
        """Clear all cached responses."""
        self.session.cache.clear()
        logger.info(f"Cleared HTTP cache {self.cache_path}")

    def close(self) -> None:
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


_sessions: Dict[Tuple[str, float, str], CachedSession] = {}


def get_provider_session(platform: str, ttl_minutes: float = 10, cache_dir: Optional[Path] = None) -> CachedSession:
    """Get the process-wide cached session for one provider.

    Sessions are shared per provider, TTL and cache directory.

    Args:
        platform: Provider name, used for the cache file name
        ttl_minutes: Response TTL (from [cache] http_cache_minutes)
        cache_dir: Override the cache directory

    Returns:
        CachedSession for that provider
    """
    key = (platform, float(ttl_minutes), str(cache_dir or default_cache_dir()))
    session = _sessions.get(key)
    if session is None:
        session = CachedSession(
            cache_dir=cache_dir,
            cache_name=f"http_cache_{platform}",
            expire_after=timedelta(minutes=ttl_minutes),
        )
        _sessions[key] = session
    return session

