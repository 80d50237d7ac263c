"""Configuration management for DramaHub.

Loads configuration from a TOML file in standard locations:
1. $DRAMAHUB_CONFIG (explicit path)
2. /config/settings.toml (Docker/container)
3. ~/.config/dramahub/settings.toml (user home)
4. $XDG_CONFIG_HOME/dramahub/settings.toml (XDG standard)

A missing file is not an error: every value has a default so the app
works offline and without a remote store.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

from .adapters import ProviderAdapter, create_adapter
from .adapters.base import HOME_CACHE_TTL_SECONDS, HomePageCache, shared_home_cache
from .canonical import DEFAULT_PLATFORM, Platform
from .http_cache import CachedSession, get_provider_session
from .repository import Repository
from .sync_bridge import FirestoreSyncBridge, NullSyncBridge, SyncBridge

logger = logging.getLogger(__name__)

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "api": {
        "base_url": "http://localhost:8080",
        "code": "",
        "lang": "id",
        "timeout": 15,
    },
    "cache": {
        "home_ttl_seconds": HOME_CACHE_TTL_SECONDS,
        "http_cache": True,
        "http_cache_minutes": 10,
        "dir": None,
    },
    "store": {
        "path": None,
        "debounce_seconds": 1.0,
    },
    "firebase": {
        "project_id": None,
        "api_key": None,
        "id_token": None,
    },
    "app": {
        "platform": DEFAULT_PLATFORM.value,
    },
}


class Config:
    """Configuration loader with defaults."""

    def __init__(self, config_path: Optional[Path] = None, data: Optional[Dict[str, Any]] = None):
        """Initialize config from file.

        Args:
            config_path: Optional explicit path to settings.toml
            data: Already-parsed settings (skips the file lookup)
        """
        self.data: Dict[str, Any] = {}
        if data is not None:
            self.config_path = config_path
            self.data = data
            return

        self.config_path = config_path or self._find_config_file()
        if self.config_path and self.config_path.exists():
            self._load_from_file(self.config_path)
        else:
            logger.info("No settings.toml found, using defaults")

    @staticmethod
    def _find_config_file() -> Optional[Path]:
        """Find config file in standard locations.

        Returns:
            Path to config file, or None if not found
        """
        explicit = os.getenv("DRAMAHUB_CONFIG")
        if explicit:
            return Path(explicit).expanduser()

        docker_path = Path("/config/settings.toml")
        if docker_path.exists():
            logger.info(f"Using Docker config: {docker_path}")
            return docker_path

        home_path = Path.home() / ".config" / "dramahub" / "settings.toml"
        if home_path.exists():
            logger.info(f"Using user config: {home_path}")
            return home_path

        xdg_config = os.getenv("XDG_CONFIG_HOME")
        if xdg_config:
            xdg_path = Path(xdg_config) / "dramahub" / "settings.toml"
            if xdg_path.exists():
                logger.info(f"Using XDG config: {xdg_path}")
                return xdg_path

        return None

    def _load_from_file(self, path: Path) -> None:
        try:
            with open(path, "rb") as f:
                self.data = tomllib.load(f)
            logger.info(f"Loaded config from {path}")
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.error(f"Failed to load config from {path}: {e}")
            raise

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Get config value, falling back to the built-in default.

        Args:
            section: Section name (e.g., 'api', 'firebase')
            key: Key name
            default: Returned when neither the file nor the defaults know the key

        Returns:
            Config value or default
        """
        value = self.data.get(section, {}).get(key)
        if value is None:
            value = DEFAULTS.get(section, {}).get(key)
        return default if value is None else value

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get a config section merged over its defaults."""
        return {**DEFAULTS.get(section, {}), **self.data.get(section, {})}

    def validate(self) -> tuple[bool, list[str]]:
        """Validate config values.

        Returns:
            (is_valid, list_of_errors)
        """
        errors = []
        if Platform.parse(self.get("app", "platform")) is None:
            errors.append(f"Unknown [app] platform: {self.get('app', 'platform')}")
        if not str(self.get("api", "base_url") or "").startswith(("http://", "https://")):
            errors.append("[api] base_url must be an http(s) URL")
        try:
            if float(self.get("store", "debounce_seconds")) < 0:
                errors.append("[store] debounce_seconds must not be negative")
        except (TypeError, ValueError):
            errors.append("[store] debounce_seconds must be a number")
        if not self.get("firebase", "project_id"):
            logger.warning("Missing [firebase] project_id, continue watching stays local-only")
        return len(errors) == 0, errors

    # --- factories ---

    @property
    def platform(self) -> Platform:
        return Platform.parse(self.get("app", "platform"), DEFAULT_PLATFORM)

    @property
    def debounce_seconds(self) -> float:
        return float(self.get("store", "debounce_seconds"))

    def home_cache(self, platform: Platform) -> HomePageCache:
        return shared_home_cache(
            platform,
            self.get("api", "base_url"),
            self.get("api", "lang"),
            self.get("api", "code"),
            ttl_seconds=float(self.get("cache", "home_ttl_seconds")),
        )

    def provider_session(self, platform: Platform) -> CachedSession:
        """The requests-cache session for ``platform`` with the configured TTL and directory."""
        cache_dir = self.get("cache", "dir")
        return get_provider_session(
            Platform(platform).value,
            ttl_minutes=float(self.get("cache", "http_cache_minutes")),
            cache_dir=Path(cache_dir).expanduser() if cache_dir else None,
        )

    def get_adapter(self, platform: Optional[Platform] = None, cached_http: bool = True) -> ProviderAdapter:
        """Create the adapter for ``platform`` (default: configured platform).

        Args:
            platform: Provider to talk to
            cached_http: Use the requests-cache session for detail and
                episode-list lookups (everything else is never HTTP-cached)

        Returns:
            Initialized ProviderAdapter
        """
        platform = Platform.parse(platform, None) or self.platform
        timeout = float(self.get("api", "timeout"))
        lookup_session = None
        if cached_http and self.get("cache", "http_cache"):
            lookup_session = self.provider_session(platform).session
        return create_adapter(
            platform,
            base_url=self.get("api", "base_url"),
            code=self.get("api", "code"),
            lang=self.get("api", "lang"),
            lookup_session=lookup_session,
            home_cache=self.home_cache(platform),
            timeout=(min(3.0, timeout), timeout),
        )

    def get_sync_bridge(self) -> SyncBridge:
        """Firestore bridge when a project is configured, else the local-only bridge."""
        firebase = self.get_section("firebase")
        if not firebase.get("project_id"):
            return NullSyncBridge()
        return FirestoreSyncBridge(
            project_id=firebase["project_id"],
            api_key=firebase.get("api_key"),
            id_token=firebase.get("id_token"),
        )

    def get_repository(self) -> Repository:
        path = self.get("store", "path")
        return Repository(db_path=Path(path).expanduser() if path else None)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create global config instance.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset global config instance (for testing)."""
    global _config
    _config = None
