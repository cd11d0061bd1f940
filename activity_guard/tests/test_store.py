"""Tests for MemoryStore: TTLs, atomic updates, capped lists."""

import threading
from concurrent.futures import ThreadPoolExecutor

from activity_guard.store import MemoryStore


class TestBasics:
    def test_missing_key_reads_none(self, store):
        assert store.get("nope") is None
        assert store.exists("nope") is False

    def test_set_get_delete(self, store):
        store.set("k", 42)
        assert store.get("k") == 42
        store.delete("k")
        assert store.get("k") is None

    def test_delete_missing_key_is_noop(self, store):
        store.delete("nope")

    def test_set_if_absent(self, store):
        assert store.set_if_absent("k", "first") is True
        assert store.set_if_absent("k", "second") is False
        assert store.get("k") == "first"


class TestTTL:
    def test_entry_expires(self, store, clock):
        store.set("k", 1, ttl=10)
        clock.advance(9.9)
        assert store.get("k") == 1
        clock.advance(0.1)
        assert store.get("k") is None
        assert store.exists("k") is False

    def test_no_ttl_never_expires(self, store, clock):
        store.set("k", 1)
        clock.advance(10**9)
        assert store.get("k") == 1

    def test_set_if_absent_succeeds_over_expired_entry(self, store, clock):
        store.set("k", "old", ttl=1)
        clock.advance(2)
        assert store.set_if_absent("k", "new") is True
        assert store.get("k") == "new"

    def test_expired_entries_are_not_listed_as_keys(self, store, clock):
        store.set("blocked:a", 1, ttl=5)
        store.set("blocked:b", 1, ttl=50)
        store.set("other", 1)
        clock.advance(10)
        assert store.keys("blocked:") == ["blocked:b"]

    def test_purge_expired(self, store, clock):
        for i in range(10):
            store.set(f"k{i}", i, ttl=1 if i % 2 else None)
        clock.advance(5)
        assert store.purge_expired() == 5
        assert len(store) == 5

    def test_periodic_sweep_bounds_memory(self, clock):
        store = MemoryStore(clock=clock, sweep_every=10)
        for i in range(9):
            store.set(f"idle{i}", i, ttl=1)
        clock.advance(2)
        store.set("fresh", 1)  # 10th write triggers the sweep
        assert list(store._entries) == ["fresh"]


class TestUpdate:
    def test_update_sees_none_for_missing_key(self, store):
        seen = []

        def fn(current):
            seen.append(current)
            return 1, "result"

        assert store.update("k", fn) == "result"
        assert seen == [None]
        assert store.get("k") == 1

    def test_update_returning_none_deletes(self, store):
        store.set("k", 1)
        store.update("k", lambda current: (None, None))
        assert store.exists("k") is False

    def test_update_applies_ttl(self, store, clock):
        store.update("k", lambda current: (1, None), ttl=5)
        clock.advance(5)
        assert store.get("k") is None

    def test_update_treats_expired_value_as_absent(self, store, clock):
        store.set("k", 99, ttl=1)
        clock.advance(1)
        assert store.update("k", lambda current: (1, current)) is None

    def test_concurrent_updates_lose_nothing(self, store):
        """50 threads x 20 increments on one key must total exactly 1000."""
        barrier = threading.Barrier(50)

        def worker():
            barrier.wait()
            for _ in range(20):
                store.update("counter", lambda c: ((c or 0) + 1, None))

        with ThreadPoolExecutor(max_workers=50) as pool:
            for f in [pool.submit(worker) for _ in range(50)]:
                f.result()
        assert store.get("counter") == 1000


class TestCappedList:
    def test_list_is_oldest_first(self, store):
        for i in range(3):
            store.push_capped("l", i, cap=10)
        assert store.list("l") == [0, 1, 2]

    def test_cap_evicts_oldest(self, store):
        for i in range(8):
            store.push_capped("l", i, cap=5)
        assert store.list("l") == [3, 4, 5, 6, 7]

    def test_missing_list_is_empty(self, store):
        assert store.list("nope") == []

    def test_list_ttl_refreshes_on_push(self, store, clock):
        store.push_capped("l", 1, cap=5, ttl=10)
        clock.advance(8)
        store.push_capped("l", 2, cap=5, ttl=10)
        clock.advance(8)
        assert store.list("l") == [1, 2]

    def test_concurrent_pushes_keep_every_item(self, store):
        with ThreadPoolExecutor(max_workers=20) as pool:
            for f in [pool.submit(store.push_capped, "l", i, 1000) for i in range(200)]:
                f.result()
        assert sorted(store.list("l")) == list(range(200))
