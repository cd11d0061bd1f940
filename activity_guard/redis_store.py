"""Redis-backed KeyValueStore for state shared across web workers.

Per-key atomicity comes from optimistic WATCH/MULTI transactions: redis-py
re-runs the update function when another client touched the key between the
read and the EXEC, so concurrent workers never lose an update.  Capped lists
are RPUSH + LTRIM inside one MULTI.

Values are pickled.  The cache is private to the platform and never holds
client-supplied bytes, only records built by this package.
"""

import pickle
from contextlib import contextmanager

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from activity_guard.store import KeyValueStore, StoreUnavailable

# Hot-path budget: a detector call must never hang a request on the cache.
_SOCKET_TIMEOUT_SECONDS = 0.25


class RedisStore(KeyValueStore):

    def __init__(self, client: redis.Redis, namespace: str = "activity_guard:"):
        self._client = client
        self._ns = namespace

    @classmethod
    def from_url(cls, url: str, namespace: str = "activity_guard:") -> "RedisStore":
        client = redis.Redis.from_url(
            url,
            socket_timeout=_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=_SOCKET_TIMEOUT_SECONDS,
        )
        return cls(client, namespace)

    # ------------------------------------------------------------------
    # KeyValueStore interface
    # ------------------------------------------------------------------

    def get(self, key):
        with _translate_errors():
            return _loads(self._client.get(self._name(key)))

    def set(self, key, value, ttl=None):
        with _translate_errors():
            self._client.set(self._name(key), _dumps(value), px=_millis(ttl))

    def set_if_absent(self, key, value, ttl=None):
        with _translate_errors():
            return bool(self._client.set(
                self._name(key), _dumps(value), nx=True, px=_millis(ttl),
            ))

    def delete(self, key):
        with _translate_errors():
            self._client.delete(self._name(key))

    def exists(self, key):
        with _translate_errors():
            return bool(self._client.exists(self._name(key)))

    def update(self, key, fn, ttl=None):
        name = self._name(key)

        def _apply(pipe):
            new_value, result = fn(_loads(pipe.get(name)))
            pipe.multi()
            if new_value is None:
                pipe.delete(name)
            else:
                pipe.set(name, _dumps(new_value), px=_millis(ttl))
            return result

        with _translate_errors():
            return self._client.transaction(_apply, name, value_from_callable=True)

    def push_capped(self, key, value, cap, ttl=None):
        name = self._name(key)
        with _translate_errors():
            with self._client.pipeline(transaction=True) as pipe:
                pipe.rpush(name, _dumps(value))
                pipe.ltrim(name, -cap, -1)
                if ttl is not None:
                    pipe.pexpire(name, _millis(ttl))
                pipe.execute()

    def list(self, key):
        with _translate_errors():
            return [_loads(raw) for raw in self._client.lrange(self._name(key), 0, -1)]

    def keys(self, prefix):
        with _translate_errors():
            found = self._client.scan_iter(match=self._name(prefix) + "*")
            return [_decode(k)[len(self._ns):] for k in found]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _name(self, key: str) -> str:
        return self._ns + key


@contextmanager
def _translate_errors():
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as exc:
        raise StoreUnavailable(str(exc)) from exc


def _millis(ttl):
    return None if ttl is None else int(ttl * 1000)


def _dumps(value) -> bytes:
    return pickle.dumps(value)


def _loads(raw):
    return None if raw is None else pickle.loads(raw)


def _decode(key) -> str:
    return key.decode() if isinstance(key, bytes) else key
