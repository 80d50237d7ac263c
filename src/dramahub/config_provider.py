"""Configuration provider abstraction for dependency injection.

The CLI builds its services from a provider; tests hand it a
MockConfigProvider instead of a settings.toml on disk.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from .config import Config


class ConfigProvider(ABC):
    """Abstract base for configuration providers.

    Read access to settings plus the Config that builds adapters,
    the sync bridge and the repository.
    """

    @abstractmethod
    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            section: Config section (e.g., 'api', 'firebase')
            key: Key within section
            default: Default value if not found

        Returns:
            Configuration value or default
        """

    @abstractmethod
    def get_section(self, section: str) -> Dict[str, Any]:
        """Get entire configuration section."""

    @property
    @abstractmethod
    def config(self) -> Config:
        """The Config backing this provider."""


class TomlConfigProvider(ConfigProvider):
    """Configuration provider that loads from settings.toml file."""

    def __init__(self, config_path: Optional[Path] = None):
        self._config = Config(config_path=config_path)

    def get(self, section: str, key: str, default: Any = None) -> Any:
        return self._config.get(section, key, default)

    def get_section(self, section: str) -> Dict[str, Any]:
        return self._config.get_section(section)

    @property
    def config(self) -> Config:
        return self._config


class MockConfigProvider(ConfigProvider):
    """Mock configuration provider for testing.

    Takes settings as a dict. Values not given fall back to the built-in
    defaults, like a real file.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        """Initialize with test data.

        Args:
            data: Dictionary of {section: {key: value}}
        """
        self.data = data or {}
        self._config = Config(data=self.data)

    def get(self, section: str, key: str, default: Any = None) -> Any:
        return self._config.get(section, key, default)

    def get_section(self, section: str) -> Dict[str, Any]:
        return self._config.get_section(section)

    @property
    def config(self) -> Config:
        return self._config


def get_default_config_provider(config_path: Optional[Path] = None) -> ConfigProvider:
    """Get default configuration provider (loads from settings.toml).

    Returns:
        TomlConfigProvider instance
    """
    return TomlConfigProvider(config_path)
