# Detectors as small Python classes sharing one base.
#
# Each detector owns a key prefix in the shared store, keeps its per-key
# state as one immutable record, and mutates it only through
# KeyValueStore.update() so the threshold check and the "already alerted"
# flag are decided inside the same atomic step. Alerts are published after
# the update returns, outside the per-key critical section.

import logging
from collections.abc import Callable
from dataclasses import replace
from typing import Any
from urllib.parse import quote

from activity_guard import metrics
from activity_guard.alerts import AlertStore, AlertType, SecurityAlert
from activity_guard.clock import now as _now
from activity_guard.store import KeyValueStore, StoreUnavailable

logger = logging.getLogger(__name__)


class Detector:
    """Base detector.  Subclasses set ``alert_type`` and ``key_prefix``."""

    alert_type: AlertType
    key_prefix: str

    def __init__(self, store: KeyValueStore, alerts: AlertStore,
                 clock: Callable[[], float] | None = None):
        self.store = store
        self.alerts = alerts
        self.clock = clock or _now

    def key(self, *parts: Any) -> str:
        """Store key for one actor/origin.

        Each part is percent-encoded so a ':' inside an id can never be
        mistaken for the separator.  ``None`` parts are skipped.
        """
        return self.key_prefix + ":".join(
            quote(str(p), safe="") for p in parts if p is not None
        )

    def publish(self, payload: dict, created_at: float) -> SecurityAlert | None:
        """Publish an alert; a store failure is logged and yields None."""
        alert = SecurityAlert.create(self.alert_type, payload, created_at)
        try:
            alert_id = self.alerts.publish(alert)
        except StoreUnavailable as exc:
            self.degraded("publish", exc)
            return None
        return replace(alert, id=alert_id)

    def degraded(self, operation: str, exc: Exception) -> None:
        metrics.store_errors_total.labels(operation=operation).inc()
        logger.warning("%s.%s failed open: store unavailable (%s)",
                       type(self).__name__, operation, exc)


from activity_guard.detectors.rapid_pattern import RapidPatternDetector  # noqa: E402
from activity_guard.detectors.brute_force import BruteForceGuard  # noqa: E402
from activity_guard.detectors.data_access import DataAccessMonitor  # noqa: E402

__all__ = ["Detector", "RapidPatternDetector", "BruteForceGuard", "DataAccessMonitor"]
