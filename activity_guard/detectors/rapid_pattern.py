"""Rapid request pattern: one actor firing many requests in a few seconds.

Catches scripted clients, replayed sessions and runaway front-end loops.
Fires when an actor (session or user) reaches 5 requests inside a trailing
10-second window, once per burst: the detector re-arms only after the window
has fallen back below the threshold.
"""

from activity_guard import sliding_window
from activity_guard.alerts import AlertType, SecurityAlert
from activity_guard.config import RapidPatternConfig
from activity_guard.detectors import Detector
from activity_guard.store import StoreUnavailable


class RapidPatternDetector(Detector):
    alert_type = AlertType.RAPID_REQUEST_PATTERN
    key_prefix = "rapid_requests:"

    def __init__(self, store, alerts, config: RapidPatternConfig | None = None,
                 clock=None):
        super().__init__(store, alerts, clock)
        self.config = config or RapidPatternConfig()

    def observe(self, actor_key: str, event=None) -> SecurityAlert | None:
        """Count one request for *actor_key*; return the alert if this one breached.

        *event* is the ActivityEvent that triggered the observation.  The
        window is keyed on arrival time, not ``event.occurred_at``, so a
        client cannot dodge the window with forged timestamps.
        """
        now = self.clock()
        window = self.config.window_seconds
        threshold = self.config.threshold

        def _advance(state):
            result = sliding_window.observe(state, now, window, threshold,
                                            self.config.max_entries)
            return result.state, result

        try:
            # The whole record expires once its newest timestamp leaves the window.
            result = self.store.update(self.key(actor_key), _advance, ttl=window)
        except StoreUnavailable as exc:
            self.degraded("observe", exc)
            return None

        if not result.breached:
            return None
        return self.publish({
            "actor": actor_key,
            "count": result.state.count,
            "window_start": result.state.window_start,
        }, now)

    def count(self, actor_key: str) -> int:
        """Requests currently inside *actor_key*'s window.  Read-only, 0 if the store is down."""
        try:
            state = self.store.get(self.key(actor_key))
        except StoreUnavailable as exc:
            self.degraded("count", exc)
            return 0
        if state is None:
            return 0
        return state.pruned(self.clock(), self.config.window_seconds).count
