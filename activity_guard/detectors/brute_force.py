"""Brute force: repeated failed logins from one network origin.

Tracks failures per origin IP independent of which account was targeted,
so credential stuffing across many usernames still trips it.  At 5 failures
inside 15 minutes the origin is blocked for an hour and one
``brute_force_detected`` alert is raised for the episode.

A successful login does not clear the failure history or the block: an
attacker who guesses one password mid-run stays blocked until the block
expires or an operator calls ``unblock``.
"""

import logging

from activity_guard import metrics, sliding_window
from activity_guard.alerts import AlertType
from activity_guard.config import BruteForceConfig
from activity_guard.detectors import Detector
from activity_guard.store import StoreUnavailable

logger = logging.getLogger(__name__)

_BLOCK_PREFIX = "blocked_ip:"


class BruteForceGuard(Detector):
    alert_type = AlertType.BRUTE_FORCE_DETECTED
    key_prefix = "failed_attempts:"

    def __init__(self, store, alerts, config: BruteForceConfig | None = None,
                 clock=None):
        super().__init__(store, alerts, clock)
        self.config = config or BruteForceConfig()

    def record_failure(self, origin: str) -> int | None:
        """Record one failed login from *origin*.

        Returns the failure count inside the window, or None when the store
        is unreachable (the failure is dropped, fail-open).
        """
        now = self.clock()
        window = self.config.window_seconds
        threshold = self.config.threshold

        def _advance(state):
            result = sliding_window.observe(state, now, window, threshold,
                                            self.config.max_entries)
            return result.state, result

        try:
            result = self.store.update(self.key(origin), _advance, ttl=window)
        except StoreUnavailable as exc:
            self.degraded("record_failure", exc)
            return None

        count = result.state.count
        if count >= threshold:
            # Every failure at or above threshold re-arms the full block TTL.
            self._block(origin, now)
        if result.breached:
            self.publish({"origin": origin, "count": count}, now)
        return count

    def is_blocked(self, origin: str) -> bool:
        """Should authentication from *origin* be refused before checking credentials?

        Only consults the block entry; the attempt window is not touched.
        With the store down, answers ``config.fail_closed``.
        """
        try:
            blocked = self.store.exists(_BLOCK_PREFIX + origin)
        except StoreUnavailable as exc:
            self.degraded("is_blocked", exc)
            metrics.block_checks_total.labels(result="degraded").inc()
            return self.config.fail_closed
        metrics.block_checks_total.labels(result="blocked" if blocked else "allowed").inc()
        return blocked

    def check_brute_force_attempts(self, origin: str) -> int:
        """Failures from *origin* currently inside the window.  Read-only.

        Reports 0 when the store is unreachable.
        """
        try:
            state = self.store.get(self.key(origin))
        except StoreUnavailable as exc:
            self.degraded("check_brute_force_attempts", exc)
            return 0
        if state is None:
            return 0
        return state.pruned(self.clock(), self.config.window_seconds).count

    def unblock(self, origin: str) -> None:
        """Operator override: lift the block and forget the failure history.

        Operator calls raise StoreUnavailable rather than failing open.
        """
        self.store.delete(_BLOCK_PREFIX + origin)
        self.store.delete(self.key(origin))
        logger.warning("[MANUAL_ACTION] origin %s unblocked", origin)

    def blocked_origins(self) -> list[str]:
        """Origins currently blocked.  Raises StoreUnavailable like ``unblock``."""
        return sorted(k[len(_BLOCK_PREFIX):] for k in self.store.keys(_BLOCK_PREFIX))

    def _block(self, origin: str, now: float) -> None:
        try:
            self.store.set(_BLOCK_PREFIX + origin, now, ttl=self.config.block_seconds)
        except StoreUnavailable as exc:
            self.degraded("block", exc)
            return
        logger.warning("[AUTO_ACTION] origin %s blocked for %ss",
                       origin, self.config.block_seconds)
