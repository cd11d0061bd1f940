"""Shared fixtures: a hand-driven clock and stores built on it."""

import pytest

from activity_guard.alerts import AlertStore
from activity_guard.engine import SecurityEngine
from activity_guard.store import KeyValueStore, MemoryStore, StoreUnavailable


class FakeClock:
    def __init__(self, start=1_700_000_000.0):
        self.t = start

    def __call__(self):
        return self.t

    def advance(self, seconds):
        self.t += seconds


class DownStore(KeyValueStore):
    """Every operation fails as if the cache were unreachable."""

    def _down(self, *args, **kwargs):
        raise StoreUnavailable("connection refused")

    get = set = set_if_absent = delete = exists = update = _down
    push_capped = list = keys = _down


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def down_store():
    return DownStore()


@pytest.fixture
def alert_store(store, clock):
    return AlertStore(store, clock=clock)


@pytest.fixture
def engine(store, clock):
    return SecurityEngine(store=store, clock=clock)
