"""Tests for playback URL normalization and canonical model helpers."""

import pytest

from dramahub.canonical import (
    PLACEHOLDER_POSTER,
    ContinueWatchingEntry,
    Platform,
    UserProfile,
    is_invalid_title,
    is_usable_poster,
    user_key,
)
from dramahub.playback import normalize_playback_url


@pytest.mark.parametrize("url, expected", [
    ("http://example.com/a.m3u8", "https://example.com/a.m3u8"),
    ("//cdn.x/a.mp4", "https://cdn.x/a.mp4"),
    ("https://cdn.x/a.mp4", "https://cdn.x/a.mp4"),
    ("  http://cdn.x/a.mp4  ", "https://cdn.x/a.mp4"),
    ("blob:abc", "blob:abc"),
    ("", ""),
    ("   ", ""),
    (None, ""),
])
def test_normalize_playback_url(url, expected):
    assert normalize_playback_url(url) == expected


class TestTitleAndPoster:
    @pytest.mark.parametrize("title", ["", "  ", "Unknown Title", "8123456789", "12345678", "d-42"])
    def test_invalid_titles(self, title):
        assert is_invalid_title(title, drama_id="d-42")

    @pytest.mark.parametrize("title", ["Love in Seoul", "1234567", "2024"])
    def test_valid_titles(self, title):
        assert not is_invalid_title(title, drama_id="d-42")

    @pytest.mark.parametrize("poster", [
        "", None, PLACEHOLDER_POSTER, "/images/placeholder-wide.png",
        "https://img.test/Poster Unavailable.png",
    ])
    def test_unusable_posters(self, poster):
        assert not is_usable_poster(poster)

    def test_usable_poster(self):
        assert is_usable_poster("https://img.test/p.jpg")


class TestEntry:
    def test_user_key(self):
        assert user_key(None) == "guest"
        assert user_key(UserProfile(name="A", email=" Ayu@Example.COM ")) == "ayu@example.com"

    def test_from_dict_defaults(self):
        entry = ContinueWatchingEntry.from_dict({"dramaId": "d1", "progress": "12.7"}, now_ms=5)
        assert entry.platform == Platform.DRAMABOX
        assert entry.episode_id == "1"
        assert entry.progress == 12
        assert entry.timestamp == 5
        assert entry.scoped_key == "dramabox:d1"

    def test_to_dict_omits_missing_episode_no(self):
        entry = ContinueWatchingEntry(Platform.MELOLO, "d1", "T", "p", "e1", 5, 1)
        assert "episodeNo" not in entry.to_dict()
        assert entry.to_dict()["platform"] == "melolo"

    @pytest.mark.parametrize("episode_no, episode_id, label", [
        (3, "999999", "3"),
        (None, "12", "12"),
        (None, "chapter-abc", "?"),
        (None, "123456", "?"),
    ])
    def test_episode_label(self, episode_no, episode_id, label):
        entry = ContinueWatchingEntry(Platform.REELIFE, "d1", "T", "p", episode_id, 5, 1, episode_no)
        assert entry.episode_label() == label
