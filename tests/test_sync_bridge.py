"""Tests for the Firestore sync bridge and the outbound sync queue.

Uses requests-mock to stand in for the Firestore REST API.
"""

from unittest.mock import Mock
from urllib.parse import parse_qs, urlparse

import pytest

from dramahub.canonical import (
    PLACEHOLDER_POSTER,
    UNTITLED,
    ContinueWatchingEntry,
    IssueReport,
    Platform,
    UserProfile,
)
from dramahub.errors import SyncFailure
from dramahub.sync_bridge import (
    FirestoreSyncBridge,
    NullSyncBridge,
    SyncQueue,
    decode_fields,
    encode_fields,
)

DOCS = "https://firestore.googleapis.com/v1/projects/p1/databases/(default)/documents"
COLLECTION = f"{DOCS}/users/uid-1/continueWatching"

ENTRY = ContinueWatchingEntry(Platform.MELOLO, "d1", "Satu", "https://img.test/1.jpg", "e2", 90, 1_700_000_000_000, 2)


def _query(request):
    return parse_qs(urlparse(request.url).query)


@pytest.fixture
def bridge():
    return FirestoreSyncBridge("p1", api_key="k", id_token="tok")


def test_requires_project_id():
    with pytest.raises(ValueError):
        FirestoreSyncBridge("")


def test_value_codec():
    data = {"s": "x", "i": 3, "f": 1.5, "b": True, "n": None, "m": {"a": [1, "b"]}}

    encoded = encode_fields(data)

    assert encoded["i"] == {"integerValue": "3"}
    assert encoded["b"] == {"booleanValue": True}
    assert decode_fields(encoded) == data


class TestFirestoreSyncBridge:
    def test_push_merges_with_update_mask(self, bridge, requests_mock):
        requests_mock.patch(f"{COLLECTION}/melolo__d1", json={})

        bridge.push("uid-1", ENTRY)

        request = requests_mock.last_request
        query = _query(request)
        assert set(query["updateMask.fieldPaths"]) == set(ENTRY.to_dict())
        assert query["key"] == ["k"]
        assert request.headers["Authorization"] == "Bearer tok"
        fields = request.json()["fields"]
        assert fields["progress"] == {"integerValue": "90"}
        assert fields["platform"] == {"stringValue": "melolo"}

    def test_pull_follows_pages_and_normalizes(self, bridge, requests_mock):
        first = {
            "documents": [
                {"name": "n1", "fields": encode_fields(ENTRY.to_dict())},
                {"name": "n2", "fields": encode_fields({"progress": 5})},
            ],
            "nextPageToken": "p2",
        }
        second = {"documents": [{"name": "n3", "fields": encode_fields({"dramaId": "d9", "progress": 7})}]}
        requests_mock.get(COLLECTION, [{"json": first}, {"json": second}])

        entries = bridge.pull("uid-1")

        assert [e.drama_id for e in entries] == ["d1", "d9"]
        assert entries[0] == ENTRY
        assert entries[1].platform == Platform.DRAMABOX
        assert entries[1].drama_title == UNTITLED
        assert entries[1].drama_poster == PLACEHOLDER_POSTER
        assert _query(requests_mock.request_history[1])["pageToken"] == ["p2"]

    def test_pull_empty_collection(self, bridge, requests_mock):
        requests_mock.get(COLLECTION, json={})
        assert bridge.pull("uid-1") == []

    def test_clear_deletes_every_document(self, bridge, requests_mock):
        requests_mock.get(COLLECTION, json={"documents": [{"name": "n1"}, {"name": "n2"}]})
        commit = requests_mock.post(f"{DOCS}:commit", json={})

        bridge.clear("uid-1")

        assert commit.last_request.json() == {"writes": [{"delete": "n1"}, {"delete": "n2"}]}

    def test_clear_nothing_to_delete(self, bridge, requests_mock):
        requests_mock.get(COLLECTION, json={"documents": []})
        commit = requests_mock.post(f"{DOCS}:commit", json={})

        bridge.clear("uid-1")

        assert not commit.called

    def test_save_profile(self, bridge, requests_mock):
        requests_mock.patch(f"{DOCS}/users/uid-1", json={})

        bridge.save_profile("uid-1", UserProfile(name=" Ayu ", email="Ayu@Example.com", uid="uid-1"))

        fields = decode_fields(requests_mock.last_request.json()["fields"])
        assert fields["name"] == "Ayu"
        assert fields["email"] == "ayu@example.com"
        assert "picture" not in fields

    def test_save_profile_skips_incomplete_profile(self, bridge, requests_mock):
        bridge.save_profile("uid-1", UserProfile(name="", email="a@example.com"))
        assert not requests_mock.called

    def test_http_error_becomes_sync_failure(self, bridge, requests_mock):
        requests_mock.patch(f"{COLLECTION}/melolo__d1", status_code=500)

        with pytest.raises(SyncFailure) as excinfo:
            bridge.push("uid-1", ENTRY)

        assert excinfo.value.operation == "push"

    def test_invalid_json_becomes_sync_failure(self, bridge, requests_mock):
        requests_mock.get(COLLECTION, text="<html>")

        with pytest.raises(SyncFailure, match="invalid JSON"):
            bridge.pull("uid-1")

    @pytest.mark.parametrize("body", [[], ["documents"], "text", 42])
    def test_non_object_body_becomes_sync_failure(self, bridge, requests_mock, body):
        requests_mock.get(COLLECTION, json=body)

        with pytest.raises(SyncFailure, match="unexpected response body") as excinfo:
            bridge.clear("uid-1")

        assert excinfo.value.operation == "pull"

    def test_malformed_documents_are_skipped(self, bridge, requests_mock):
        requests_mock.get(COLLECTION, json={"documents": [
            {"name": "n1", "fields": {"dramaId": {"mapValue": None}}},
            {"name": "n2", "fields": None},
            {"name": "n3", "fields": {"dramaId": {"stringValue": "d3"}, "progress": {"doubleValue": "Infinity"},
                                      "timestamp": {"arrayValue": None}}},
            "garbage",
        ], "nextPageToken": {"not": "a token"}})

        (entry,) = bridge.pull("uid-1")

        assert entry.drama_id == "d3"
        assert entry.progress == 0

    def test_save_issue_report(self, bridge, requests_mock):
        requests_mock.post(f"{DOCS}/users/uid-1/reports", json={"name": f"{DOCS}/users/uid-1/reports/abc123"})
        report = IssueReport(title=" Episode tidak bisa diputar ", description="Stuck at 0s", platform="melolo")

        report_id = bridge.save_issue_report("uid-1", report)

        assert report_id == "abc123"
        request = requests_mock.last_request
        assert request.headers["Authorization"] == "Bearer tok"
        fields = decode_fields(request.json()["fields"])
        assert fields["title"] == "Episode tidak bisa diputar"
        assert fields["description"] == "Stuck at 0s"
        assert fields["platform"] == "melolo"
        assert fields["page"] == "unknown"
        assert fields["status"] == "open"
        assert isinstance(fields["createdAt"], int)

    @pytest.mark.parametrize("user_id, report", [
        ("", IssueReport("t", "d", "melolo")),
        ("uid-1", IssueReport("  ", "d", "melolo")),
        ("uid-1", IssueReport("t", "", "melolo")),
        ("uid-1", IssueReport("t", "d", "")),
    ])
    def test_incomplete_issue_report_is_skipped(self, bridge, requests_mock, user_id, report):
        assert bridge.save_issue_report(user_id, report) is None
        assert not requests_mock.called

    def test_issue_report_failure_raises_sync_failure(self, bridge, requests_mock):
        requests_mock.post(f"{DOCS}/users/uid-1/reports", status_code=403)

        with pytest.raises(SyncFailure) as excinfo:
            bridge.save_issue_report("uid-1", IssueReport("t", "d", "melolo", page="/watch"))

        assert excinfo.value.operation == "save_issue_report"


@pytest.mark.parametrize("value", [
    {"mapValue": None},
    {"mapValue": {"fields": None}},
    {"mapValue": "x"},
    {"arrayValue": None},
    {"arrayValue": {"values": "x"}},
    {"doubleValue": "abc"},
    {"doubleValue": None},
    {"doubleValue": "NaN"},
])
def test_malformed_typed_values_decode_to_empty(value):
    assert decode_fields({"v": value})["v"] in (None, {}, [])


def test_null_bridge_is_inert():
    bridge = NullSyncBridge()
    bridge.push("uid-1", ENTRY)
    bridge.clear("uid-1")
    assert bridge.pull("uid-1") == []
    assert bridge.save_issue_report("uid-1", IssueReport("t", "d", "melolo")) is None


class TestSyncQueue:
    def test_no_uid_means_no_job(self):
        queue = SyncQueue(Mock())
        assert queue.enqueue_push(None, ENTRY) is False
        assert queue.enqueue_clear("") is False
        assert queue.pending == []

    def test_pushes_for_same_key_collapse(self):
        bridge = Mock()
        queue = SyncQueue(bridge)
        older = ContinueWatchingEntry(Platform.MELOLO, "d1", "Satu", "p", "e1", 10, 1)

        queue.enqueue_push("uid-1", older)
        queue.enqueue_push("uid-1", ENTRY)
        queue.enqueue_push("uid-2", older)

        assert len(queue.pending) == 2
        queue.drain()
        assert [c.args for c in bridge.push.call_args_list] == [("uid-1", ENTRY), ("uid-2", older)]

    def test_clear_drops_pending_pushes(self):
        bridge = Mock()
        queue = SyncQueue(bridge)
        queue.enqueue_push("uid-1", ENTRY)
        queue.enqueue_clear("uid-1")

        queue.drain()

        bridge.push.assert_not_called()
        bridge.clear.assert_called_once_with("uid-1")

    def test_drain_records_outcomes_and_never_raises(self, repo):
        bridge = Mock()
        bridge.push.side_effect = [None, SyncFailure("push", "timeout")]
        queue = SyncQueue(bridge, repo)
        queue.enqueue_push("uid-1", ENTRY)
        queue.drain()
        queue.enqueue_push("uid-1", ENTRY)

        result = queue.drain()

        assert (result.succeeded, result.failed) == (0, 1)
        assert result.errors == ["sync push failed: timeout"]
        assert queue.pending == []
        assert repo.get_sync_stats() == {"total": 2, "success": 1, "failed": 1, "skipped": 0}
        (failure,) = repo.get_sync_failures()
        assert failure.target == "melolo:d1"
        assert failure.notes == "sync push failed: timeout"
