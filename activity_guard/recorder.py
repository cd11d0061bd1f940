"""Per-session activity ledger.

The request pipeline calls ``ActivityRecorder.record`` after every
authenticated response.  Recording is best effort: ``record`` returns a
``RecordResult`` and never raises, so a broken cache or a malformed event
can't turn into an error page for the user.

Sanitizing request parameters is the caller's job.  ``ActivityEvent`` has
no field that could carry a parameter value, and ``ActivityEvent.from_dict``
drops every key that isn't a field, so a password that slips into the
mapping is discarded before the event exists.
"""

import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields

from activity_guard import metrics
from activity_guard.alerts import SecurityAlert
from activity_guard.clock import now as _now
from activity_guard.config import LedgerConfig
from activity_guard.detectors import RapidPatternDetector
from activity_guard.store import KeyValueStore, StoreUnavailable

logger = logging.getLogger(__name__)

_LEDGER_KEY = "activity_ledger:"
_REQUIRED_FIELDS = ("controller", "action", "path", "method")


class MalformedEvent(ValueError):
    pass


@dataclass(frozen=True)
class ActivityEvent:
    controller: str
    action: str
    path: str
    method: str
    status: int | None = None
    response_time_ms: float | None = None
    ip: str | None = None
    device_type: str | None = None
    browser: str | None = None
    os: str | None = None
    occurred_at: float | None = None
    suspicious: bool = False

    @classmethod
    def from_dict(cls, data: Mapping, occurred_at: float | None = None) -> "ActivityEvent":
        """Build an event from a request summary.  Unknown keys are ignored."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if values.get("occurred_at") is None:
            values["occurred_at"] = occurred_at
        missing = [f for f in _REQUIRED_FIELDS if not values.get(f)]
        if missing:
            raise MalformedEvent(f"missing required field(s): {', '.join(missing)}")
        return cls(**values)

    def to_dict(self) -> dict:
        return asdict(self)


def _validate(event: ActivityEvent) -> None:
    missing = [f for f in _REQUIRED_FIELDS if not getattr(event, f, None)]
    if missing:
        raise MalformedEvent(f"missing required field(s): {', '.join(missing)}")


@dataclass(frozen=True)
class RecordResult:
    """Outcome of one ``record`` call.  Callers are free to ignore it."""

    ok: bool
    alert: SecurityAlert | None = None
    error: str | None = None


class ActivityRecorder:

    def __init__(self, store: KeyValueStore, rapid: RapidPatternDetector,
                 config: LedgerConfig | None = None, clock=None):
        self.store = store
        self.rapid = rapid
        self.config = config or LedgerConfig()
        self.clock = clock or _now

    def record(self, session_id: str, event: ActivityEvent | Mapping) -> RecordResult:
        """Append *event* to the session ledger and feed the rapid-pattern detector."""
        try:
            return self._record(session_id, event)
        except MalformedEvent as exc:
            metrics.events_recorded_total.labels(outcome="rejected").inc()
            logger.warning("Rejected activity event for session %s: %s", session_id, exc)
            return RecordResult(ok=False, error=str(exc))
        except StoreUnavailable as exc:
            metrics.events_recorded_total.labels(outcome="degraded").inc()
            metrics.store_errors_total.labels(operation="record").inc()
            logger.warning("Activity for session %s not recorded: store unavailable (%s)",
                           session_id, exc)
            return RecordResult(ok=False, error=str(exc))
        except Exception as exc:
            # Recording must never fail the request it describes.
            metrics.events_recorded_total.labels(outcome="degraded").inc()
            logger.exception("Activity recording failed for session %s", session_id)
            return RecordResult(ok=False, error=repr(exc))

    def ledger(self, session_id: str) -> list[ActivityEvent]:
        """The session's events, oldest first (newest last).  Empty if the store is down."""
        try:
            return self.store.list(_LEDGER_KEY + session_id)
        except StoreUnavailable as exc:
            metrics.store_errors_total.labels(operation="ledger").inc()
            logger.warning("Ledger for session %s unavailable: store unavailable (%s)",
                           session_id, exc)
            return []

    def clear(self, session_id: str) -> None:
        """Drop the ledger when the session ends."""
        self.store.delete(_LEDGER_KEY + session_id)

    def _record(self, session_id, event) -> RecordResult:
        if not session_id:
            raise MalformedEvent("missing session id")
        if isinstance(event, Mapping):
            event = ActivityEvent.from_dict(event, occurred_at=self.clock())
        elif not isinstance(event, ActivityEvent):
            raise MalformedEvent(f"expected ActivityEvent or mapping, got {type(event).__name__}")
        else:
            _validate(event)

        self.store.push_capped(_LEDGER_KEY + session_id, event,
                               self.config.capacity, ttl=self.config.ttl_seconds)
        metrics.events_recorded_total.labels(outcome="recorded").inc()
        if event.suspicious:
            logger.info("Suspicious activity in session %s: %s %s",
                        session_id, event.method, event.path)

        alert = self.rapid.observe(session_id, event)
        return RecordResult(ok=True, alert=alert)
