"""Security alerts and the store every detector publishes into.

An alert is kept two ways, with independent expirations:

  - by id under ``security_alert:<id>``, expiring after ``ttl_seconds``
  - in the ``recent_security_alerts`` feed, capped at ``feed_capacity``

so an alert can drop out of ``get()`` while still listed by ``recent()``,
or be evicted from the feed while still retrievable by id.
"""

import json
import logging
import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from activity_guard import metrics
from activity_guard.clock import now as _now
from activity_guard.config import AlertConfig
from activity_guard.store import KeyValueStore

logger = logging.getLogger(__name__)

_ALERT_KEY = "security_alert:"
_FEED_KEY = "recent_security_alerts"

# Collisions need the same second and the same 32 random bits; a handful of
# retries is already far past anything observable.
_MAX_ID_ATTEMPTS = 8


class AlertType(str, Enum):
    RAPID_REQUEST_PATTERN = "rapid_request_pattern"
    BRUTE_FORCE_DETECTED = "brute_force_detected"
    EXCESSIVE_DATA_ACCESS = "excessive_data_access"


SEVERITY_LEVELS = {
    "low": 1,
    "medium": 2,
    "high": 3,
    "critical": 4,
}

_SEVERITY_BY_TYPE = {
    AlertType.BRUTE_FORCE_DETECTED: "critical",
    AlertType.EXCESSIVE_DATA_ACCESS: "high",
    AlertType.RAPID_REQUEST_PATTERN: "medium",
}

_LOG_LEVEL_BY_SEVERITY = {
    "critical": logging.ERROR,
    "high": logging.WARNING,
    "medium": logging.WARNING,
    "low": logging.INFO,
}


class AlertIdCollision(RuntimeError):
    pass


def generate_alert_id(created_at: float) -> str:
    return f"SEC_{int(created_at)}_{secrets.token_hex(4)}"


@dataclass(frozen=True)
class SecurityAlert:
    alert_type: AlertType
    payload: Mapping[str, Any]
    created_at: float
    severity: str = "low"
    id: str | None = None

    def __post_init__(self):
        # Own a private copy so the caller's dict can't mutate a stored alert.
        object.__setattr__(self, "payload", dict(self.payload))

    @classmethod
    def create(cls, alert_type: AlertType, payload: Mapping[str, Any],
               created_at: float) -> "SecurityAlert":
        return cls(
            alert_type=alert_type,
            payload=payload,
            created_at=created_at,
            severity=_SEVERITY_BY_TYPE.get(alert_type, "low"),
        )

    def to_dict(self) -> dict:
        """Stable wire schema: fixed keys first, then the per-type payload."""
        return {
            "id": self.id,
            "alert_type": AlertType(self.alert_type).value,
            "severity": self.severity,
            "created_at": self.created_at,
            **self.payload,
        }


AlertSink = Callable[[SecurityAlert], None]


@dataclass
class AlertStore:
    store: KeyValueStore
    config: AlertConfig = field(default_factory=AlertConfig)
    clock: Callable[[], float] = _now
    sinks: list[AlertSink] = field(default_factory=list)

    def add_sink(self, sink: AlertSink) -> None:
        """Register a downstream consumer called once per newly published alert."""
        self.sinks.append(sink)

    def publish(self, alert: SecurityAlert) -> str:
        """Store *alert*, assigning an id if it has none.  Returns the id.

        Publishing an alert that is already stored under its id is a no-op.
        A different alert never overwrites an existing id: a fresh id is
        generated instead.  Raises StoreUnavailable if the store is down.
        """
        stored, is_new = self._store_unique(alert)
        if not is_new:
            return stored.id

        self.store.push_capped(_FEED_KEY, stored, self.config.feed_capacity)
        metrics.alerts_total.labels(
            alert_type=AlertType(stored.alert_type).value, severity=stored.severity,
        ).inc()
        self._log(stored)
        self._notify(stored)
        return stored.id

    def get(self, alert_id: str) -> SecurityAlert | None:
        return self.store.get(_ALERT_KEY + alert_id)

    def recent(self, limit: int | None = None) -> list[SecurityAlert]:
        """Feed contents, newest first."""
        if limit is not None and limit <= 0:
            return []
        alerts = self.store.list(_FEED_KEY)
        alerts.reverse()
        return alerts if limit is None else alerts[:limit]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _store_unique(self, alert: SecurityAlert) -> tuple[SecurityAlert, bool]:
        candidate = alert
        for _ in range(_MAX_ID_ATTEMPTS):
            if candidate.id is None:
                candidate = replace(candidate, id=generate_alert_id(self.clock()))
            key = _ALERT_KEY + candidate.id
            if self.store.set_if_absent(key, candidate, self.config.ttl_seconds):
                return candidate, True
            if self.store.get(key) == candidate:
                return candidate, False
            logger.warning("Alert id collision on %s, regenerating", candidate.id)
            candidate = replace(candidate, id=None)
        raise AlertIdCollision(f"no free alert id after {_MAX_ID_ATTEMPTS} attempts")

    def _log(self, alert: SecurityAlert) -> None:
        tag = f"[{alert.severity.upper()}_SECURITY_ALERT]"
        level = _LOG_LEVEL_BY_SEVERITY.get(alert.severity, logging.INFO)
        logger.log(level, "%s %s", tag, json.dumps(alert.to_dict(), default=str))

    def _notify(self, alert: SecurityAlert) -> None:
        for sink in self.sinks:
            try:
                sink(alert)
            except Exception:
                metrics.alert_sink_errors_total.inc()
                logger.exception("Alert sink %r rejected %s", sink, alert.id)
