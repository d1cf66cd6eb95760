"""Tests for the in-memory session store and the idle reaper."""

import threading

import pytest

from saathi.models import Turn
from saathi.session_store import InMemorySessionStore, SessionReaper, SessionStore


class FakeTime:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def make_store(max_turns=50, ttl_seconds=3600, clock=None):
    return InMemorySessionStore("preamble", max_turns=max_turns, ttl_seconds=ttl_seconds, clock=clock or FakeTime())


class TestTranscript:
    def test_new_session_is_seeded_with_preamble(self):
        store = make_store()
        turns = store.get_or_create("u1")
        assert [(t.role, t.content) for t in turns] == [("system", "preamble")]

    def test_get_or_create_returns_copy(self):
        store = make_store()
        store.get_or_create("u1").append(Turn(role="user", content="hi"))
        assert len(store.get_or_create("u1")) == 1

    def test_append_keeps_order_and_stamps_time(self):
        clock = FakeTime(42.0)
        store = make_store(clock=clock)
        store.append("u1", Turn(role="user", content="hello"))
        store.append("u1", Turn(role="assistant", content="hi there"))
        turns = store.get_or_create("u1")
        assert [t.role for t in turns] == ["system", "user", "assistant"]
        assert turns[1].timestamp == 42.0

    def test_append_creates_missing_session(self):
        store = make_store()
        store.append("fresh", Turn(role="user", content="hello"))
        assert store.get_or_create("fresh")[0].role == "system"

    def test_window_returns_last_n(self):
        store = make_store()
        for index in range(10):
            store.append("u1", Turn(role="user", content=f"m{index}"))
        assert [t.content for t in store.window("u1", 3)] == ["m7", "m8", "m9"]
        assert store.window("u1", 0) == []
        assert store.window("nobody", 5) == []

    def test_users_are_isolated(self):
        store = make_store()
        store.append("a", Turn(role="user", content="from a"))
        store.append("b", Turn(role="user", content="from b"))
        assert [t.content for t in store.window("a", 10)] == ["preamble", "from a"]
        assert len(store) == 2


class TestBounds:
    def test_history_is_capped_with_preamble_pinned(self):
        store = make_store(max_turns=4)
        for index in range(6):
            store.append("u1", Turn(role="user", content=f"m{index}"))
        turns = store.get_or_create("u1")
        assert len(turns) == 4
        assert turns[0].role == "system"
        assert [t.content for t in turns[1:]] == ["m3", "m4", "m5"]

    def test_too_small_cap_is_rejected(self):
        with pytest.raises(ValueError):
            make_store(max_turns=1)


class TestEviction:
    def test_idle_sessions_expire(self):
        clock = FakeTime(0.0)
        store = make_store(ttl_seconds=60, clock=clock)
        store.append("old", Turn(role="user", content="x"))
        clock.now = 50.0
        store.append("new", Turn(role="user", content="y"))
        clock.now = 100.0
        assert store.evict_idle() == 1
        assert store.window("old", 5) == []
        assert len(store.window("new", 5)) == 2

    def test_activity_refreshes_ttl(self):
        clock = FakeTime(0.0)
        store = make_store(ttl_seconds=60, clock=clock)
        store.append("u1", Turn(role="user", content="x"))
        clock.now = 59.0
        store.get_or_create("u1")
        clock.now = 100.0
        assert store.evict_idle() == 0

    def test_ttl_disabled(self):
        clock = FakeTime(0.0)
        store = make_store(ttl_seconds=None, clock=clock)
        store.append("u1", Turn(role="user", content="x"))
        assert store.evict_idle(now=10_000_000.0) == 0

    def test_evict_single_user(self):
        store = make_store()
        store.append("u1", Turn(role="user", content="x"))
        assert store.evict("u1") is True
        assert store.evict("u1") is False
        assert len(store) == 0


class RecordingStore(SessionStore):
    def __init__(self):
        self.called = threading.Event()

    def get_or_create(self, user_id):
        return []

    def append(self, user_id, turn):
        pass

    def window(self, user_id, n):
        return []

    def evict(self, user_id):
        return False

    def evict_idle(self, now=None):
        self.called.set()
        return 0


def test_reaper_calls_evict_idle_and_stops():
    store = RecordingStore()
    reaper = SessionReaper(store, interval_seconds=0.01)
    reaper.start()
    try:
        assert store.called.wait(2.0)
    finally:
        reaper.stop()
    assert reaper._thread is None
