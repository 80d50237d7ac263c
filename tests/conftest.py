"""Shared test fixtures for dependency injection testing."""

import pytest

from dramahub import http_cache
from dramahub.adapters import base as adapters_base
from dramahub.canonical import UserProfile
from dramahub.config_provider import MockConfigProvider
from dramahub.models import close_db
from dramahub.repository import Repository
from dramahub.state import AppState

API = "https://api.test"


class FakeClock:
    """Manually advanced clock; returns seconds (or millis via ``millis``)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def millis(self) -> int:
        return int(self.now * 1000)


@pytest.fixture(autouse=True)
def _fresh_caches():
    """Homepage caches and HTTP cache sessions are process-wide; start every test empty."""
    adapters_base._home_caches.clear()
    yield
    adapters_base._home_caches.clear()
    for session in http_cache._sessions.values():
        session.close()
    http_cache._sessions.clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repo(tmp_path):
    """Repository on a temp database."""
    repository = Repository(db_path=tmp_path / "dramahub.db")
    yield repository
    close_db()


@pytest.fixture
def state(repo, clock):
    return AppState(repository=repo, debounce_seconds=0, clock=clock)


@pytest.fixture
def user():
    return UserProfile(name="Ayu", email="Ayu@Example.com", uid="uid-1")


@pytest.fixture
def mock_config_provider(tmp_path):
    """Mock configuration: temp database, no HTTP cache, no remote store."""
    return MockConfigProvider(data={
        "api": {"base_url": API, "code": "test-code"},
        "cache": {"http_cache": False, "dir": str(tmp_path / "http")},
        "store": {"path": str(tmp_path / "cli.db"), "debounce_seconds": 0},
    })
