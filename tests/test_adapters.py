"""Provider adapter tests against mocked upstream payloads (requests-mock)."""

import random
from unittest.mock import Mock
from urllib.parse import parse_qs, urlparse

import pytest

from dramahub.adapters import (
    DramaboxAdapter,
    HomePageCache,
    MeloloAdapter,
    NetshortAdapter,
    ReelifeAdapter,
    create_adapter,
)
from dramahub.adapters.base import extract_list, shared_home_cache
from dramahub.canonical import PLACEHOLDER_POSTER, Platform
from dramahub.errors import UpstreamUnavailable

from conftest import API, FakeClock


def _adapter(cls, clock=None, **kwargs):
    cache = HomePageCache(ttl_seconds=30, clock=clock or FakeClock())
    return cls(base_url=API, code="test-code", home_cache=cache, **kwargs)


MELOLO_HOME = {
    "data": {
        "cell": {
            "cell_data": [
                {"books": [
                    {"book_id": "m1", "book_name": "Ratu Kantor", "thumb_url": "http://img.test/m1.jpg",
                     "serial_count": 80, "is_new": "1"},
                    {"book_id": "m2", "book_name": "Cinta Kedua", "thumb_url": "//img.test/m2.jpg"},
                ]},
                {"books": [
                    {"book_id": "m3", "book_name": "Pewaris", "serial_count": "0"},
                ]},
                {"books": []},
            ]
        }
    }
}


class TestHomePageCache:
    def test_fresh_hit_skips_network(self, requests_mock):
        clock = FakeClock()
        requests_mock.get(f"{API}/api/melolo/home", json=MELOLO_HOME)
        adapter = _adapter(MeloloAdapter, clock)

        first = adapter.fetch_homepage(1)
        clock.advance(29)
        second = adapter.fetch_homepage(1)

        assert requests_mock.call_count == 1
        assert [d.id for d in first] == [d.id for d in second] == ["m1", "m2", "m3"]

    def test_expired_entry_refetches(self, requests_mock):
        clock = FakeClock()
        requests_mock.get(f"{API}/api/melolo/home", json=MELOLO_HOME)
        adapter = _adapter(MeloloAdapter, clock)

        adapter.fetch_homepage(1)
        clock.advance(30)
        adapter.fetch_homepage(1)

        assert requests_mock.call_count == 2

    def test_pages_are_cached_separately(self, requests_mock):
        requests_mock.get(f"{API}/api/melolo/home", json=MELOLO_HOME)
        adapter = _adapter(MeloloAdapter)

        adapter.fetch_homepage(1)
        adapter.fetch_homepage(2)
        adapter.fetch_homepage(2)

        assert requests_mock.call_count == 2
        assert requests_mock.last_request.qs["offset"] == ["20"]

    def test_shared_cache_is_per_endpoint(self):
        melolo = shared_home_cache(Platform.MELOLO, API, "id", "test-code")

        assert melolo is shared_home_cache(Platform.MELOLO, f"{API}/", "id", "test-code")
        assert melolo is not shared_home_cache(Platform.REELIFE, API, "id", "test-code")
        assert melolo is not shared_home_cache(Platform.MELOLO, API, "en", "test-code")
        assert melolo is not shared_home_cache(Platform.MELOLO, API, "id", "other-code")
        assert melolo is not shared_home_cache(Platform.MELOLO, "https://mirror.test", "id", "test-code")

    def test_languages_do_not_share_pages(self, requests_mock):
        def by_lang(request, context):
            lang = parse_qs(urlparse(request.url).query)["lang"][0]
            return {"data": {"list": [{"book_id": f"m-{lang}", "book_name": lang}]}}

        requests_mock.get(f"{API}/api/melolo/home", json=by_lang)
        indonesian = MeloloAdapter(base_url=API, code="test-code", lang="id")
        english = MeloloAdapter(base_url=API, code="test-code", lang="en")

        assert [d.id for d in indonesian.fetch_homepage(1)] == ["m-id"]
        assert [d.id for d in english.fetch_homepage(1)] == ["m-en"]
        assert requests_mock.call_count == 2


class TestMelolo:
    def test_homepage_mapping(self, requests_mock):
        requests_mock.get(f"{API}/api/melolo/home", json=MELOLO_HOME)
        dramas = _adapter(MeloloAdapter).fetch_homepage(1)

        first, second, third = dramas
        assert first.title == "Ratu Kantor"
        assert first.poster == "https://img.test/m1.jpg"
        assert first.total_episode_count == 80
        assert first.upstream_new is True
        assert second.poster == "https://img.test/m2.jpg"
        assert third.poster == PLACEHOLDER_POSTER
        assert third.total_episode_count is None
        assert requests_mock.last_request.qs == {"lang": ["id"], "code": ["test-code"], "offset": ["0"]}

    def test_row_index_is_clamped(self, requests_mock):
        requests_mock.get(f"{API}/api/melolo/home", json=MELOLO_HOME)
        adapter = _adapter(MeloloAdapter)

        # trending is row 1; vip (row 4) clamps to the last non-empty row
        assert [d.id for d in adapter.fetch_trending()] == ["m3"]
        assert [d.id for d in adapter.fetch_vip()] == ["m3"]

    def test_empty_row_falls_back_to_homepage(self, requests_mock):
        payload = {"data": {"cell": {"cell_data": [
            {"books": [{"book_id": "m1", "book_name": "A"}]},
            {"books": [{"book_name": "no id here"}]},
        ]}}}
        requests_mock.get(f"{API}/api/melolo/home", json=payload)

        assert [d.id for d in _adapter(MeloloAdapter).fetch_trending()] == ["m1"]

    def test_episodes_and_lazy_video(self, requests_mock):
        requests_mock.get(f"{API}/api/melolo/detail/m1", json={
            "data": {
                "book_name": "Ratu Kantor",
                "video_list": [
                    {"vid": "v1", "duration": 95000},
                    {"vid": "v2", "duration": 62, "title": "Akhir"},
                ],
            }
        })
        requests_mock.get(f"{API}/api/melolo/video/v1", json={"data": {"main_url": "http://cdn.test/v1.mp4"}})
        adapter = _adapter(MeloloAdapter)

        episodes = adapter.fetch_episodes("m1")

        assert [(e.id, e.title, e.duration, e.number) for e in episodes] == [
            ("v1", "Episode 1", "1:35", 1),
            ("v2", "Akhir", "1:02", 2),
        ]
        assert episodes[0].url == ""
        assert adapter.fetch_video_url("v1") == "https://cdn.test/v1.mp4"

    def test_search_data_shape(self, requests_mock):
        requests_mock.get(f"{API}/api/melolo/search", json={
            "data": {"search_data": [{"books": [{"book_id": "s1", "book_name": "Hasil"}]}]}
        })
        dramas = _adapter(MeloloAdapter).search("hasil")

        assert [d.id for d in dramas] == ["s1"]
        assert requests_mock.last_request.qs["q"] == ["hasil"]

    def test_random_shuffles_homepage(self, requests_mock):
        requests_mock.get(f"{API}/api/melolo/home", json=MELOLO_HOME)
        adapter = _adapter(MeloloAdapter, rng=random.Random(7))

        dramas = adapter.fetch_random()

        assert sorted(d.id for d in dramas) == ["m1", "m2", "m3"]


class TestDramabox:
    def test_chapters_prefer_default_quality(self, requests_mock):
        requests_mock.get(f"{API}/api/dramabox/allepisode/b1", json={"data": [
            {
                "chapterId": "c1",
                "chapterIndex": 0,
                "chapterName": "EP 1",
                "cdnList": [{"videoPathList": [
                    {"quality": 540, "videoPath": "http://cdn.test/540.m3u8"},
                    {"quality": 720, "videoPath": "http://cdn.test/720.m3u8", "isDefault": 1},
                ]}],
            },
            {"chapterId": "c2", "chapterIndex": 1, "videoPath": "//cdn.test/c2.m3u8"},
        ]})
        adapter = _adapter(DramaboxAdapter)

        episodes = adapter.fetch_episodes("b1")

        assert episodes[0].url == "https://cdn.test/720.m3u8"
        assert episodes[0].number == 1
        assert episodes[1].title == "Episode 2"
        assert episodes[1].url == "https://cdn.test/c2.m3u8"
        assert adapter.fetch_video_url("c2", "b1") == "https://cdn.test/c2.m3u8"
        assert adapter.fetch_video_url("c2") == ""

    def test_vip_uses_column_sections(self, requests_mock):
        requests_mock.get(f"{API}/api/dramabox/vip", json={"data": {"columnVoList": [
            {"bookList": [{"bookId": "v1", "bookName": "Eksklusif", "chapterCount": 70}]},
        ]}})

        dramas = _adapter(DramaboxAdapter).fetch_vip()

        assert [(d.id, d.total_episode_count) for d in dramas] == [("v1", 70)]

    def test_trending_falls_back_to_homepage(self, requests_mock):
        requests_mock.get(f"{API}/api/dramabox/trending", json={"data": []})
        requests_mock.get(f"{API}/api/dramabox/foryou", json={"data": {"list": [
            {"bookId": "h1", "bookName": "Beranda"},
        ]}})

        assert [d.id for d in _adapter(DramaboxAdapter).fetch_trending()] == ["h1"]

    def test_dubbed_classifier(self, requests_mock):
        requests_mock.get(f"{API}/api/dramabox/dubindo", json=[{"bookId": "d1", "bookName": "Dub"}])
        adapter = _adapter(DramaboxAdapter)

        adapter.fetch_dubbed(2)
        assert requests_mock.last_request.qs["classify"] == ["terpopuler"]
        assert requests_mock.last_request.qs["page"] == ["2"]

        adapter.fetch_dubbed(1, "terbaru")
        assert requests_mock.last_request.qs["classify"] == ["terbaru"]

    def test_detail_reads_book_envelope(self, requests_mock):
        requests_mock.get(f"{API}/api/dramabox/detail/b9", json={"data": {"book": {
            "bookName": "Detail", "coverWap": "http://img.test/b9.jpg", "totalDuration": "1h 40m",
        }}})

        drama = _adapter(DramaboxAdapter).fetch_detail("b9")

        assert drama.id == "b9"
        assert drama.poster == "https://img.test/b9.jpg"
        assert drama.duration_label() == "1h 40m"


class TestNetshort:
    def test_sections_and_rows(self, requests_mock):
        requests_mock.get(f"{API}/api/netshort/theaters", json={"data": {"contentInfos": [
            {"shortPlayList": [{"shortPlayId": "n1", "shortPlayName": "Satu"}]},
            {"shortPlayList": [{"shortPlayId": "n2", "shortPlayName": "Dua", "shortPlayEpisodeCount": 50}]},
        ]}})
        adapter = _adapter(NetshortAdapter)

        assert [d.id for d in adapter.fetch_homepage(1)] == ["n1", "n2"]
        assert [d.id for d in adapter.fetch_trending()] == ["n1"]
        assert [d.id for d in adapter.fetch_latest()] == ["n2"]
        assert requests_mock.call_count == 1

    def test_voucher_resolution(self, requests_mock):
        requests_mock.get(f"{API}/api/netshort/detail/n1", json={"data": {"shortPlayEpisodeInfos": [
            {"episodeId": "e1", "episodeNo": 1, "playVoucher": "http://cdn.test/e1.m3u8"},
            {"episodeId": "e2", "episodeNo": 2},
        ]}})
        requests_mock.get(f"{API}/api/netshort/episode/e2", json={"data": {"playUrl": "//cdn.test/e2.m3u8"}})
        adapter = _adapter(NetshortAdapter)

        episodes = adapter.fetch_episodes("n1")

        assert [e.number for e in episodes] == [1, 2]
        assert episodes[0].url == "https://cdn.test/e1.m3u8"
        assert adapter.fetch_video_url("e2", "n1") == "https://cdn.test/e2.m3u8"
        assert requests_mock.last_request.qs["shortplayid"] == ["n1"]


class TestReelife:
    def test_episode_titles_are_normalized(self, requests_mock):
        requests_mock.get(f"{API}/api/reelife/chapters/r1", json={"data": {"list": [
            {"id": "a", "title": "EP01"},
            {"id": "b", "title": "第2集"},
            {"id": "c", "title": "3"},
            {"id": "d", "episode": "4", "title": "Episode 04"},
            {"id": "e"},
        ]}})

        episodes = _adapter(ReelifeAdapter).fetch_episodes("r1")

        assert [e.title for e in episodes] == [f"Episode {n}" for n in (1, 2, 3, 4, 5)]

    def test_modules_and_detail(self, requests_mock):
        requests_mock.get(f"{API}/api/reelife/home", json={"data": {"modules": [
            {"items": [{"id": "r1", "name": "Satu", "publish_time": "2024/06/01"}]},
        ]}})
        requests_mock.get(f"{API}/api/reelife/book/r1", json={"data": {"title": "Satu", "episodes": 24}})
        adapter = _adapter(ReelifeAdapter)

        (home,) = adapter.fetch_homepage(1)
        detail = adapter.fetch_detail("r1")

        assert home.release_date.year == 2024
        assert detail.id == "r1"
        assert detail.total_episode_count == 24


class TestFailures:
    def test_http_error_raises_upstream_unavailable(self, requests_mock):
        requests_mock.get(f"{API}/api/reelife/home", status_code=500)

        with pytest.raises(UpstreamUnavailable) as exc:
            _adapter(ReelifeAdapter).fetch_homepage(1)
        assert exc.value.platform == "reelife"

    def test_invalid_json_raises_upstream_unavailable(self, requests_mock):
        requests_mock.get(f"{API}/api/netshort/search", text="<html>maintenance</html>")

        with pytest.raises(UpstreamUnavailable):
            _adapter(NetshortAdapter).search("x")

    def test_failed_fetch_is_not_cached(self, requests_mock):
        requests_mock.get(f"{API}/api/melolo/home", [
            {"status_code": 500},
            {"json": MELOLO_HOME},
        ])
        adapter = _adapter(MeloloAdapter)

        with pytest.raises(UpstreamUnavailable):
            adapter.fetch_homepage(1)
        assert len(adapter.fetch_homepage(1)) == 3

    def test_malformed_items_never_raise(self, requests_mock):
        requests_mock.get(f"{API}/api/dramabox/search", json={"data": {"list": [
            None, "junk", 42, {"bookName": "no id"}, {"bookId": "ok", "chapterCount": "n/a", "releaseDate": "??"},
        ]}})

        (drama,) = _adapter(DramaboxAdapter).search("x")

        assert drama.id == "ok"
        assert drama.title == ""
        assert drama.total_episode_count is None
        assert drama.release_date is None


def _session(payload):
    session = Mock()
    session.get.return_value.status_code = 200
    session.get.return_value.json.return_value = payload
    return session


class TestLookupSession:
    def test_only_detail_and_episode_lists_use_lookup_session(self):
        plain = _session(MELOLO_HOME)
        lookup = _session({"data": {"book_name": "Ratu Kantor", "videos": []}})
        adapter = _adapter(MeloloAdapter, session=plain, lookup_session=lookup)

        adapter.fetch_homepage(1)
        adapter.fetch_video_url("v1")
        adapter.search("ratu")
        adapter.fetch_detail("m1")
        adapter.fetch_episodes("m1")

        assert [c.args[0] for c in plain.get.call_args_list] == [
            f"{API}/api/melolo/home",
            f"{API}/api/melolo/video/v1",
            f"{API}/api/melolo/search",
        ]
        assert [c.args[0] for c in lookup.get.call_args_list] == [f"{API}/api/melolo/detail/m1"] * 2

    def test_netshort_vouchers_bypass_lookup_session(self):
        plain = _session({"data": {"playUrl": "http://cdn.test/e2.m3u8"}})
        lookup = _session({})
        adapter = _adapter(NetshortAdapter, session=plain, lookup_session=lookup)

        assert adapter.fetch_video_url("e2", "n1") == "https://cdn.test/e2.m3u8"
        lookup.get.assert_not_called()

    def test_lookup_session_defaults_to_session(self):
        plain = _session({})
        assert _adapter(ReelifeAdapter, session=plain).lookup_session is plain


class TestPathQuoting:
    def test_drama_id_is_one_path_segment(self, requests_mock):
        requests_mock.get(f"{API}/api/dramabox/detail/a%2Fb%3Fc", json={"data": {"book": {"bookName": "Slash"}}})

        drama = _adapter(DramaboxAdapter).fetch_detail("a/b?c")

        assert drama.id == "a/b?c"
        assert requests_mock.last_request.url.startswith(f"{API}/api/dramabox/detail/a%2Fb%3Fc?")

    @pytest.mark.parametrize("cls, path", [
        (MeloloAdapter, "/api/melolo/video/x%2Fy"),
        (NetshortAdapter, "/api/netshort/episode/x%2Fy"),
        (ReelifeAdapter, "/api/reelife/play/x%2Fy"),
    ])
    def test_episode_id_is_quoted(self, requests_mock, cls, path):
        requests_mock.get(f"{API}{path}", json={"data": "http://cdn.test/x.mp4"})

        assert _adapter(cls).fetch_video_url("x/y", "d1") == "https://cdn.test/x.mp4"

    def test_episode_list_id_is_quoted(self, requests_mock):
        requests_mock.get(f"{API}/api/reelife/chapters/r%201", json={"data": {"list": [{"id": "a"}]}})

        assert [e.id for e in _adapter(ReelifeAdapter).fetch_episodes("r 1")] == ["a"]


def test_extract_list_envelopes():
    assert extract_list([{"a": 1}, "x"]) == [{"a": 1}]
    assert extract_list({"data": {"items": [{"a": 1}]}}) == [{"a": 1}]
    assert extract_list({"results": [{"a": 2}]}) == [{"a": 2}]
    assert extract_list({"data": {"nothing": True}}) == []


def test_create_adapter_picks_platform():
    adapter = create_adapter(Platform.NETSHORT, base_url=API)
    assert isinstance(adapter, NetshortAdapter)
    assert adapter.resolves_video_lazily
