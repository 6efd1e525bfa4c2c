# tests/test_store.py
"""
Tests for SessionStore.

These tests verify:
- create / get / list / delete semantics
- append_event persistence, ID assignment and partial-event handling
- temp: keys never reaching storage or the caller's handle
- event filtering order (count first, then time)
- concurrent appends on one session and across sessions
- error taxonomy (ValidationError, SessionNotFoundError, SessionExistsError, StorageError)
"""

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from convohost.errors import (
    ConfigError,
    SessionExistsError,
    SessionNotFoundError,
    StorageError,
    ValidationError,
)
from convohost.session.events import Event, EventActions, text_event
from convohost.session.store import SessionStore, filter_events, generate_event_id
from tests.conftest import APP

BASE = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _event_at(minute: int) -> Event:
    return text_event("user", f"message {minute}", timestamp=BASE + timedelta(minutes=minute))


# =============================================================================
# CREATE / GET
# =============================================================================


class TestCreateAndGet:
    """Tests for session creation and retrieval."""

    def test_create_returns_handle(self, store):
        """Test create returns a handle with the requested identity."""
        handle = store.create(APP, "u1", "s1", state={"lang": "en"})

        assert handle.id == "s1"
        assert handle.app_name == APP
        assert handle.user_id == "u1"
        assert handle.state.get("lang") == "en"
        assert len(handle.events) == 0

    def test_create_generates_session_id(self, store):
        """Test an empty session ID is generated."""
        first = store.create(APP, "u1")
        second = store.create(APP, "u1")

        assert first.id.startswith("session_")
        assert first.id != second.id

    def test_create_never_overwrites(self, store):
        """Test creating an existing session fails and keeps the first record."""
        first = store.create(APP, "u1", "s1", state={"v": 1})

        with pytest.raises(SessionExistsError, match="session s1 already exists"):
            store.create(APP, "u1", "s1", state={"v": 2})

        stored = store.get(APP, "u1", "s1")
        assert stored.state.get("v") == 1
        assert stored.created_at == first.created_at

    def test_create_copies_initial_state(self, store):
        """Test the caller's state dict is not aliased by the record."""
        state = {"nested": {"a": 1}}
        store.create(APP, "u1", "s1", state=state)
        state["nested"]["a"] = 99

        assert store.get(APP, "u1", "s1").state["nested"] == {"a": 1}

    def test_get_missing(self, store):
        """Test get of an unknown session raises SessionNotFoundError."""
        with pytest.raises(SessionNotFoundError) as exc:
            store.get(APP, "u1", "nope")

        assert exc.value.session_id == "nope"

    def test_get_returns_defensive_copy(self, store):
        """Test mutating a returned handle does not affect storage."""
        store.create(APP, "u1", "s1", state={"k": "v"})
        handle = store.get(APP, "u1", "s1")
        handle.state.set("k", "changed")
        handle.events.append(text_event("user", "not persisted"))

        fresh = store.get(APP, "u1", "s1")
        assert fresh.state.get("k") == "v"
        assert len(fresh.events) == 0

    def test_numeric_types_round_trip(self, store):
        """Test integers stay integers and floats stay floats."""
        store.create(APP, "u1", "s1", state={"count": 42, "ratio": 0.5, "nested": {"n": [1, 2.5]}})

        state = store.get(APP, "u1", "s1").state
        assert state["count"] == 42 and isinstance(state["count"], int)
        assert isinstance(state["ratio"], float)
        assert isinstance(state["nested"]["n"][0], int)
        assert isinstance(state["nested"]["n"][1], float)

    def test_persisted_layout(self, store, provider):
        """Test records are stored as JSON under app/user/session.json."""
        store.create(APP, "u1", "s1")

        data = json.loads(provider.files[f"{APP}/u1/s1.json"])
        assert data["session_id"] == "s1"
        assert data["events"] == []


# =============================================================================
# VALIDATION
# =============================================================================


class TestValidation:
    """Tests for argument validation before any I/O."""

    def test_store_requires_provider(self):
        """Test a store without a provider is a configuration error."""
        with pytest.raises(ConfigError):
            SessionStore(None)

    @pytest.mark.parametrize(
        "app,user,sid",
        [("", "u", "s"), (APP, "", "s"), (APP, "u", ""), (None, "u", "s")],
    )
    def test_get_rejects_empty_identity(self, store, app, user, sid):
        """Test empty identity fields raise ValidationError."""
        with pytest.raises(ValidationError):
            store.get(app, user, sid)

    def test_create_rejects_empty_user(self, store):
        """Test create requires a user ID."""
        with pytest.raises(ValidationError, match="user_id is required"):
            store.create(APP, "")

    def test_list_requires_app(self, store):
        """Test list requires an app name."""
        with pytest.raises(ValidationError):
            store.list("")

    def test_append_rejects_none(self, store):
        """Test append_event rejects a missing handle or event."""
        handle = store.create(APP, "u1", "s1")

        with pytest.raises(ValidationError):
            store.append_event(None, text_event("user", "hi"))
        with pytest.raises(ValidationError):
            store.append_event(handle, None)


# =============================================================================
# APPEND EVENT
# =============================================================================


class TestAppendEvent:
    """Tests for append_event."""

    def test_append_persists_and_updates_handle(self, store):
        """Test the event reaches both storage and the caller's handle."""
        handle = store.create(APP, "u1", "s1")
        event = text_event("user", "hello", actions=EventActions(state_delta={"topic": "greeting"}))

        store.append_event(handle, event)

        assert event.id.startswith("event_")
        assert event.timestamp is not None
        assert handle.events.at(0) is event
        assert handle.state.get("topic") == "greeting"

        stored = store.get(APP, "u1", "s1")
        assert len(stored.events) == 1
        assert stored.events.at(0).id == event.id
        assert stored.events.at(0).text() == "hello"
        assert stored.state.get("topic") == "greeting"

    def test_append_keeps_given_id_and_timestamp(self, store):
        """Test caller-provided IDs and timestamps are preserved."""
        handle = store.create(APP, "u1", "s1")
        event = text_event("user", "hi", id="my-id", timestamp=BASE)

        store.append_event(handle, event)

        stored = store.get(APP, "u1", "s1").events.at(0)
        assert stored.id == "my-id"
        assert stored.timestamp == BASE

    def test_partial_event_is_ignored(self, store):
        """Test partial events are neither persisted nor applied."""
        handle = store.create(APP, "u1", "s1")
        event = text_event("model", "stream chunk", partial=True,
                           actions=EventActions(state_delta={"k": "v"}))

        store.append_event(handle, event)

        assert event.id == ""
        assert len(handle.events) == 0
        assert "k" not in handle.state
        assert len(store.get(APP, "u1", "s1").events) == 0

    def test_temporary_keys_are_dropped(self, store, provider):
        """Test temp: keys never reach storage or the handle."""
        handle = store.create(APP, "u1", "s1")
        event = text_event(
            "model",
            "done",
            actions=EventActions(state_delta={"temp:scratch": 1, "user:name": "Ada", "count": 3}),
        )

        store.append_event(handle, event)

        assert "temp:scratch" not in handle.state
        assert handle.state.get("user:name") == "Ada"
        assert event.actions.state_delta == {"user:name": "Ada", "count": 3}

        raw = provider.files[f"{APP}/u1/s1.json"].decode("utf-8")
        assert "temp:scratch" not in raw
        assert store.get(APP, "u1", "s1").state.to_dict() == {"user:name": "Ada", "count": 3}

    def test_last_update_time_strictly_increases(self, store):
        """Test each append advances last_update_time."""
        handle = store.create(APP, "u1", "s1")
        seen = [handle.last_update_time]

        for i in range(5):
            store.append_event(handle, text_event("user", f"m{i}"))
            seen.append(handle.last_update_time)

        assert all(later > earlier for earlier, later in zip(seen, seen[1:]))
        assert store.get(APP, "u1", "s1").last_update_time == handle.last_update_time

    def test_append_to_deleted_session(self, store):
        """Test appending to a session removed from storage fails."""
        handle = store.create(APP, "u1", "s1")
        store.delete(APP, "u1", "s1")

        with pytest.raises(SessionNotFoundError):
            store.append_event(handle, text_event("user", "hi"))

    def test_append_read_failure_is_storage_error(self, flaky_provider):
        """Test a backend read failure during append is a StorageError."""
        store = SessionStore(flaky_provider)
        handle = store.create(APP, "u1", "s1")
        flaky_provider.fail_reads = True

        with pytest.raises(StorageError, match="failed to load session for event append"):
            store.append_event(handle, text_event("user", "hi"))

    def test_concurrent_appends_same_session(self, store):
        """Test concurrent appends on one handle lose no events."""
        handle = store.create(APP, "u1", "s1")
        workers, per_worker = 8, 15

        def append_many(worker: int):
            for i in range(per_worker):
                store.append_event(
                    handle,
                    text_event("user", f"{worker}-{i}",
                               actions=EventActions(state_delta={f"w{worker}": i})),
                )

        with ThreadPoolExecutor(max_workers=workers) as executor:
            list(executor.map(append_many, range(workers)))

        stored = store.get(APP, "u1", "s1")
        ids = [e.id for e in stored.events]
        assert len(ids) == workers * per_worker
        assert len(set(ids)) == len(ids)
        assert len(handle.events) == workers * per_worker
        for worker in range(workers):
            assert stored.state.get(f"w{worker}") == per_worker - 1

    def test_concurrent_appends_across_sessions(self, store):
        """Test appends on different sessions are independent."""
        handles = [store.create(APP, f"u{i}", f"s{i}") for i in range(6)]

        def append_many(handle):
            for i in range(10):
                store.append_event(handle, text_event("user", str(i)))

        with ThreadPoolExecutor(max_workers=6) as executor:
            list(executor.map(append_many, handles))

        for i in range(6):
            assert len(store.get(APP, f"u{i}", f"s{i}").events) == 10

    def test_event_ids_unique(self):
        """Test generated event IDs never repeat."""
        with ThreadPoolExecutor(max_workers=4) as executor:
            ids = list(executor.map(lambda _: generate_event_id(), range(2000)))

        assert len(set(ids)) == 2000


# =============================================================================
# EVENT FILTERING
# =============================================================================


class TestEventFiltering:
    """Tests for num_recent_events / after filtering."""

    @pytest.fixture
    def five_events(self, store):
        handle = store.create(APP, "u1", "s1")
        for minute in range(5):
            store.append_event(handle, _event_at(minute))
        return handle

    def _texts(self, handle):
        return [e.text() for e in handle.events]

    def test_count_then_time(self, store, five_events):
        """Test the count limit is applied before the time filter."""
        handle = store.get(APP, "u1", "s1", num_recent_events=3, after=BASE + timedelta(minutes=1))

        assert self._texts(handle) == ["message 2", "message 3", "message 4"]

    def test_time_filter_is_inclusive(self, store, five_events):
        """Test events exactly at the cutoff are kept."""
        handle = store.get(APP, "u1", "s1", after=BASE + timedelta(minutes=3))

        assert self._texts(handle) == ["message 3", "message 4"]

    def test_count_limit_only(self, store, five_events):
        """Test num_recent_events keeps the most recent events."""
        handle = store.get(APP, "u1", "s1", num_recent_events=2)

        assert self._texts(handle) == ["message 3", "message 4"]

    def test_count_larger_than_log(self, store, five_events):
        """Test a count larger than the log returns everything."""
        assert len(store.get(APP, "u1", "s1", num_recent_events=50).events) == 5

    def test_after_everything(self, store, five_events):
        """Test a cutoff after all events returns none."""
        handle = store.get(APP, "u1", "s1", after=BASE + timedelta(hours=1))

        assert len(handle.events) == 0

    def test_naive_cutoff_treated_as_utc(self):
        """Test a naive cutoff compares against aware timestamps."""
        events = [_event_at(m) for m in range(3)]

        kept = filter_events(events, after=datetime(2024, 1, 1, 12, 1))

        assert [e.text() for e in kept] == ["message 1", "message 2"]

    def test_filter_does_not_mutate_input(self):
        """Test filter_events returns a new list."""
        events = [_event_at(m) for m in range(4)]

        filter_events(events, num_recent_events=1)

        assert len(events) == 4


# =============================================================================
# LIST / DELETE
# =============================================================================


class TestListAndDelete:
    """Tests for list and delete."""

    def test_list_by_app_and_user(self, store):
        """Test list scopes by app and optionally by user."""
        store.create(APP, "u1", "a")
        store.create(APP, "u1", "b")
        store.create(APP, "u2", "c")
        store.create("other-app", "u1", "d")

        assert sorted(h.id for h in store.list(APP)) == ["a", "b", "c"]
        assert sorted(h.id for h in store.list(APP, "u1")) == ["a", "b"]
        assert store.list(APP, "nobody") == []

    def test_list_skips_corrupt_files(self, store, provider):
        """Test unreadable records are skipped rather than failing the listing."""
        store.create(APP, "u1", "good")
        provider.files[f"{APP}/u1/bad.json"] = b"{not json"
        provider.files[f"{APP}/u1/notes.txt"] = b"ignored"

        assert [h.id for h in store.list(APP, "u1")] == ["good"]

    def test_delete_is_idempotent(self, store):
        """Test deleting twice does not fail."""
        store.create(APP, "u1", "s1")

        store.delete(APP, "u1", "s1")
        store.delete(APP, "u1", "s1")

        with pytest.raises(SessionNotFoundError):
            store.get(APP, "u1", "s1")

    def test_write_failure_is_storage_error(self, flaky_provider):
        """Test backend write failures surface as StorageError with the key."""
        store = SessionStore(flaky_provider)
        flaky_provider.fail_writes = True

        with pytest.raises(StorageError) as exc:
            store.create(APP, "u1", "s1")

        assert exc.value.key == f"{APP}/u1/s1.json"

    def test_user_id_with_separator(self, store, provider):
        """Test connector-qualified user IDs map to a single path segment."""
        store.create(APP, "telegram:42", "s1")

        assert f"{APP}/telegram%3A42/s1.json" in provider.files
        assert [h.user_id for h in store.list(APP, "telegram:42")] == ["telegram:42"]


# =============================================================================
# Path Encoding and Malformed Records
# =============================================================================


class TestPathIsolation:
    """Tests that distinct IDs never share a session file."""

    def test_similar_user_ids_get_separate_records(self, store, provider):
        """Test user IDs differing only in separators do not collide."""
        store.create(APP, "telegram:42", "s1", state={"owner": "a"})
        store.create(APP, "telegram_42", "s1", state={"owner": "b"})

        first = store.get(APP, "telegram:42", "s1")
        second = store.get(APP, "telegram_42", "s1")

        assert (first.user_id, first.state.get("owner")) == ("telegram:42", "a")
        assert (second.user_id, second.state.get("owner")) == ("telegram_42", "b")
        assert f"{APP}/telegram%3A42/s1.json" in provider.files
        assert f"{APP}/telegram_42/s1.json" in provider.files

    def test_similar_user_ids_list_separately(self, store):
        """Test listing one user never returns the other's sessions."""
        store.create(APP, "telegram:42", "a")
        store.create(APP, "telegram_42", "b")

        assert [h.id for h in store.list(APP, "telegram:42")] == ["a"]
        assert [h.id for h in store.list(APP, "telegram_42")] == ["b"]
        assert sorted(h.id for h in store.list(APP)) == ["a", "b"]

    def test_slash_in_user_id_stays_one_segment(self, store, provider):
        """Test a slash cannot create nested directories or reach another user."""
        store.create(APP, "telegram", "s1")

        store.create(APP, "telegram/42", "s1")

        assert f"{APP}/telegram%2F42/s1.json" in provider.files
        assert store.list(APP, "telegram/42")[0].user_id == "telegram/42"
        with pytest.raises(SessionNotFoundError):
            store.get(APP, "telegram/42", "s2")

    def test_dot_ids_stay_inside_app_directory(self, store, provider):
        """Test '.' and '..' user IDs are encoded rather than resolved."""
        store.create(APP, "..", "s1")

        assert f"{APP}/%2E./s1.json" in provider.files
        assert store.get(APP, "..", "s1").user_id == ".."

    def test_record_with_foreign_identity_is_not_returned(self, store, provider):
        """Test get refuses a file whose stored identity differs from the request."""
        store.create(APP, "u2", "s1", state={"owner": "u2"})
        provider.files[f"{APP}/u1/s1.json"] = provider.files[f"{APP}/u2/s1.json"]

        with pytest.raises(SessionNotFoundError):
            store.get(APP, "u1", "s1")
        assert store.list(APP, "u1") == []


class TestMalformedRecords:
    """Tests for session files that parse as JSON but not as a record."""

    @pytest.mark.parametrize(
        "payload",
        [
            {"app_name": APP, "user_id": "u1", "session_id": "bad", "events": [1]},
            {"app_name": APP, "user_id": "u1", "session_id": "bad", "events": {"a": 1}},
            {"app_name": APP, "user_id": "u1", "session_id": "bad", "state": ["x"]},
            {"user_id": "u1", "session_id": "bad"},
            ["not", "a", "record"],
        ],
    )
    def test_list_skips_malformed_records(self, store, provider, payload):
        """Test one malformed record does not abort the listing."""
        store.create(APP, "u1", "good")
        provider.files[f"{APP}/u1/bad.json"] = json.dumps(payload).encode()

        assert [h.id for h in store.list(APP, "u1")] == ["good"]
        assert [h.id for h in store.list(APP)] == ["good"]

    def test_get_missing_field_is_storage_error(self, store, provider):
        """Test a record without app_name surfaces as StorageError with the key."""
        provider.files[f"{APP}/u1/x.json"] = b'{"user_id": "u1"}'

        with pytest.raises(StorageError) as exc:
            store.get(APP, "u1", "x")

        assert exc.value.key == f"{APP}/u1/x.json"

    def test_get_non_dict_event_is_storage_error(self, store, provider):
        """Test an event that is not an object surfaces as StorageError."""
        provider.files[f"{APP}/u1/x.json"] = json.dumps(
            {"app_name": APP, "user_id": "u1", "session_id": "x", "events": [1]}
        ).encode()

        with pytest.raises(StorageError) as exc:
            store.get(APP, "u1", "x")

        assert exc.value.key == f"{APP}/u1/x.json"
