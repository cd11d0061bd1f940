"""Concurrent mutation of one key: no lost updates, no duplicate alerts.

Each test starts every worker on a barrier so the calls really overlap, and
uses a frozen clock so the whole run falls inside one window.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

from activity_guard.alerts import AlertType, SecurityAlert
from activity_guard.config import (
    BruteForceConfig,
    DataAccessConfig,
    GuardConfig,
    LedgerConfig,
    RapidPatternConfig,
)
from activity_guard.engine import SecurityEngine
from activity_guard.recorder import ActivityEvent

N = 64


def _hammer(fn, n=N):
    barrier = threading.Barrier(n)

    def worker(i):
        barrier.wait()
        return fn(i)

    with ThreadPoolExecutor(max_workers=n) as pool:
        return [f.result() for f in [pool.submit(worker, i) for i in range(n)]]


def _engine(store, clock, **sections):
    return SecurityEngine(GuardConfig(**sections), store, clock)


def _alerts_of(engine, alert_type):
    return [a for a in engine.alerts.recent() if a.alert_type == alert_type]


def test_concurrent_observe_counts_every_call(store, clock):
    engine = _engine(store, clock, rapid_pattern=RapidPatternConfig(threshold=10))
    _hammer(lambda i: engine.rapid.observe("sess_hot"))
    assert engine.rapid.count("sess_hot") == N
    assert len(_alerts_of(engine, AlertType.RAPID_REQUEST_PATTERN)) == 1


def test_concurrent_record_failure_counts_every_call(store, clock):
    engine = _engine(store, clock, brute_force=BruteForceConfig(threshold=5))
    counts = _hammer(lambda i: engine.brute_force.record_failure("10.0.0.9"))
    assert sorted(counts) == list(range(1, N + 1))
    assert engine.brute_force.check_brute_force_attempts("10.0.0.9") == N
    assert engine.brute_force.is_blocked("10.0.0.9") is True
    assert len(_alerts_of(engine, AlertType.BRUTE_FORCE_DETECTED)) == 1


def test_concurrent_data_access_sums_every_call(store, clock):
    engine = _engine(store, clock, data_access=DataAccessConfig(threshold=N // 2))
    totals = _hammer(lambda i: engine.data_access.record("user_1", 1))
    assert sorted(totals) == list(range(1, N + 1))
    assert engine.data_access.total("user_1") == N
    assert len(_alerts_of(engine, AlertType.EXCESSIVE_DATA_ACCESS)) == 1


def test_concurrent_records_land_in_one_ledger(store, clock):
    engine = _engine(
        store, clock,
        ledger=LedgerConfig(capacity=N * 2),
        rapid_pattern=RapidPatternConfig(threshold=N * 2),
    )
    event = ActivityEvent(controller="c", action="a", path="/", method="GET")
    results = _hammer(lambda i: engine.recorder.record("sess_1", event))
    assert all(r.ok for r in results)
    assert len(engine.recorder.ledger("sess_1")) == N
    assert engine.rapid.count("sess_1") == N


def test_concurrent_publishes_get_unique_ids(store, clock):
    engine = _engine(store, clock)
    ids = _hammer(lambda i: engine.alerts.publish(
        SecurityAlert.create(AlertType.RAPID_REQUEST_PATTERN, {"actor": f"s{i}"}, clock())
    ))
    assert len(set(ids)) == N
    assert len(engine.alerts.recent()) == N
