"""Shared ephemeral key-value state for detectors and the alert store.

All per-actor / per-origin state lives behind ``KeyValueStore`` so the
detector logic is the same whether the state is a process-local dict or a
cache shared between web workers (see ``activity_guard.redis_store``).

Expired and missing keys are indistinguishable: both read as ``None`` and
mean "no prior record".  Nothing assumes eager cleanup.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from activity_guard.clock import now as _now


class StoreUnavailable(RuntimeError):
    """The backing store could not be reached.  Callers decide fail-open/closed."""


class KeyValueStore:
    """Base store.  Subclass and implement every method.

    ``ttl`` arguments are seconds; ``None`` means the entry never expires.
    """

    def get(self, key: str) -> Any | None:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        raise NotImplementedError

    def set_if_absent(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """Write only if *key* holds nothing live.  Returns True if written."""
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def update(self, key: str, fn: Callable[[Any | None], tuple[Any | None, Any]],
               ttl: float | None = None) -> Any:
        """Atomic read-modify-write of one key.

        ``fn`` receives the current value (``None`` if absent or expired) and
        returns ``(new_value, result)``.  ``new_value`` is written with *ttl*
        (``None`` deletes the key) and ``result`` is returned to the caller.
        No other mutation of *key* interleaves between the read and the write.
        ``fn`` may be called more than once by optimistic backends, so it must
        not have side effects.
        """
        raise NotImplementedError

    def push_capped(self, key: str, value: Any, cap: int,
                    ttl: float | None = None) -> None:
        """Append to the list at *key*, keeping only the newest *cap* items."""
        raise NotImplementedError

    def keys(self, prefix: str) -> list[str]:
        raise NotImplementedError

    def list(self, key: str) -> list:
        """Items of the list at *key*, oldest first.  Empty if absent."""
        raise NotImplementedError


@dataclass
class _Entry:
    value: Any
    expires_at: float | None

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class MemoryStore(KeyValueStore):
    """Process-local store with TTLs and per-key serialization.

    Keys hash onto a fixed table of locks (lock striping): mutations of the
    same key always serialize, unrelated keys rarely contend, and the lock
    table stays bounded however many actors are seen.  ``_guard`` protects
    the entry dict itself and is never held while taking a stripe lock.

    Expired entries are dropped on read and by a sweep every
    ``sweep_every`` writes, which keeps memory bounded for idle keys.
    """

    def __init__(self, clock: Callable[[], float] = _now,
                 stripes: int = 64, sweep_every: int = 1000):
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._guard = threading.Lock()
        self._stripes = [threading.Lock() for _ in range(stripes)]
        self._sweep_every = sweep_every
        self._writes = 0

    # ------------------------------------------------------------------
    # KeyValueStore interface
    # ------------------------------------------------------------------

    def get(self, key):
        return self._read(key)

    def set(self, key, value, ttl=None):
        with self._lock_for(key):
            self._write(key, value, ttl)

    def set_if_absent(self, key, value, ttl=None):
        with self._lock_for(key):
            if self._read(key) is not None:
                return False
            self._write(key, value, ttl)
            return True

    def delete(self, key):
        with self._lock_for(key):
            with self._guard:
                self._entries.pop(key, None)

    def exists(self, key):
        return self._read(key) is not None

    def update(self, key, fn, ttl=None):
        with self._lock_for(key):
            new_value, result = fn(self._read(key))
            if new_value is None:
                with self._guard:
                    self._entries.pop(key, None)
            else:
                self._write(key, new_value, ttl)
            return result

    def push_capped(self, key, value, cap, ttl=None):
        with self._lock_for(key):
            items = self._read(key) or ()
            self._write(key, (items + (value,))[-cap:], ttl)

    def list(self, key):
        return list(self._read(key) or ())

    def keys(self, prefix):
        current = self._clock()
        with self._guard:
            return [k for k, e in self._entries.items()
                    if k.startswith(prefix) and not e.expired(current)]

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def purge_expired(self) -> int:
        """Drop every expired entry.  Returns how many were removed."""
        current = self._clock()
        with self._guard:
            stale = [k for k, e in self._entries.items() if e.expired(current)]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def __len__(self) -> int:
        current = self._clock()
        with self._guard:
            return sum(1 for e in self._entries.values() if not e.expired(current))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock_for(self, key: str) -> threading.Lock:
        return self._stripes[hash(key) % len(self._stripes)]

    def _read(self, key: str) -> Any | None:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expired(self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def _write(self, key: str, value: Any, ttl: float | None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._guard:
            self._entries[key] = _Entry(value, expires_at)
            self._writes += 1
            sweep = self._writes % self._sweep_every == 0
        if sweep:
            self.purge_expired()
