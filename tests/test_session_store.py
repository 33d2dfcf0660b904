"""Tests for session-id persistence."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from arbiter.session_store import PersistedSessions, SessionStore

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / ".claude" / ".arbiter-session.json"


class TestSessionStore:
    def test_missing_file(self, store_path):
        assert SessionStore(store_path).load() is None

    def test_save_and_load(self, store_path):
        store = SessionStore(store_path, now=lambda: NOW)
        store.save_session_id("manager", "m-1")
        store.save_session_id("worker", "w-1", ordinal=3)

        data = json.loads(store_path.read_text())
        assert data["manager"] == "m-1"
        assert data["worker"] == "w-1"
        assert data["worker_ordinal"] == 3

        record = SessionStore(store_path, now=lambda: NOW).load()
        assert record == PersistedSessions(
            manager="m-1", worker="w-1", worker_ordinal=3, saved_at=NOW.isoformat()
        )

    def test_stale_file_ignored(self, store_path):
        SessionStore(store_path, now=lambda: NOW).save_session_id("manager", "m-1")

        later = NOW + timedelta(hours=25)
        assert SessionStore(store_path, now=lambda: later).load() is None

    def test_custom_max_age(self, store_path):
        SessionStore(store_path, now=lambda: NOW).save_session_id("manager", "m-1")

        later = NOW + timedelta(hours=2)
        store = SessionStore(store_path, max_age_hours=1, now=lambda: later)
        assert store.load() is None

    def test_corrupt_file_ignored(self, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text("{not json")
        assert SessionStore(store_path).load() is None

    def test_non_object_ignored(self, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text("[1, 2]")
        assert SessionStore(store_path).load() is None

    def test_missing_timestamp_ignored(self, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text(json.dumps({"manager": "m-1"}))
        assert SessionStore(store_path).load() is None

    def test_naive_timestamp_treated_as_utc(self, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text(
            json.dumps({"manager": "m-1", "saved_at": "2025-03-01T11:00:00"})
        )
        record = SessionStore(store_path, now=lambda: NOW).load()
        assert record.manager == "m-1"

    def test_unknown_role(self, store_path):
        with pytest.raises(ValueError):
            SessionStore(store_path).save_session_id("human", "x")

    def test_clear(self, store_path):
        store = SessionStore(store_path, now=lambda: NOW)
        store.save_session_id("manager", "m-1")
        store.clear()
        assert not store_path.exists()
        store.clear()

    def test_load_keeps_other_role_on_save(self, store_path):
        SessionStore(store_path, now=lambda: NOW).save_session_id("manager", "m-1")

        store = SessionStore(store_path, now=lambda: NOW)
        store.load()
        store.save_session_id("worker", "w-2", ordinal=2)

        data = json.loads(store_path.read_text())
        assert data["manager"] == "m-1"
        assert data["worker"] == "w-2"
