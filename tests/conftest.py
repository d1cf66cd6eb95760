"""Shared fixtures: in-memory stores, a scripted text backend, and fixed clocks."""

import dataclasses
from datetime import datetime, timedelta, timezone

import pytest

from saathi.app import build_dispatcher
from saathi.config import load_settings
from saathi.order_store import OrderStore
from saathi.session_store import InMemorySessionStore

# Wednesday, so the week started on Sunday 2024-05-12.
FIXED_NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


class FakeBackend:
    """Scripted stand-in for the text backend; records every call."""

    def __init__(self, replies=None, error=None):
        self.replies = list(replies or [])
        self.error = error
        self.calls = []

    def complete(self, messages, temperature):
        self.calls.append({"messages": [dict(m) for m in messages], "temperature": temperature})
        if self.error is not None:
            raise self.error
        return self.replies.pop(0) if self.replies else ""


class MutableClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def settings():
    return dataclasses.replace(load_settings(), gemini_api_key="", orders_path=None, default_lang="en")


@pytest.fixture
def clock():
    return MutableClock(FIXED_NOW)


@pytest.fixture
def order_store(clock):
    return OrderStore(None, clock=clock)


@pytest.fixture
def session_store():
    return InMemorySessionStore("You are a test assistant.", max_turns=50, ttl_seconds=3600)


@pytest.fixture
def make_dispatcher(settings, order_store, session_store, clock):
    def _make(backend=None, **overrides):
        return build_dispatcher(
            dataclasses.replace(settings, **overrides),
            backend,
            orders=order_store,
            sessions=session_store,
            clock=clock,
        )

    return _make


@pytest.fixture
def dispatcher(make_dispatcher):
    return make_dispatcher()
