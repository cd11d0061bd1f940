"""Security engine: one store, one alert feed, every detector.

Pure wiring plus event dispatch, no Kafka dependency.  Web workers build a
SecurityEngine at startup (pointing at a shared RedisStore) and call the
components directly; the Kafka service feeds raw event dicts to
``handle``.

State: everything lives in ``self.store``, keyed per session / actor /
origin, so any number of engines over the same store see the same counters.
"""

from activity_guard.alerts import AlertStore
from activity_guard.clock import now as _now
from activity_guard.config import GuardConfig
from activity_guard.detectors import BruteForceGuard, DataAccessMonitor, RapidPatternDetector
from activity_guard.recorder import ActivityRecorder
from activity_guard.store import KeyValueStore, MemoryStore


class SecurityEngine:

    def __init__(self, config: GuardConfig | None = None,
                 store: KeyValueStore | None = None, clock=None):
        self.config = config or GuardConfig()
        self.clock = clock or _now
        self.store = store if store is not None else MemoryStore(clock=self.clock)

        # All detectors publish into the same AlertStore so the recent feed
        # reflects publish order across alert types.
        self.alerts = AlertStore(self.store, self.config.alerts, self.clock)
        self.rapid = RapidPatternDetector(
            self.store, self.alerts, self.config.rapid_pattern, self.clock,
        )
        self.recorder = ActivityRecorder(
            self.store, self.rapid, self.config.ledger, self.clock,
        )
        self.brute_force = BruteForceGuard(
            self.store, self.alerts, self.config.brute_force, self.clock,
        )
        self.data_access = DataAccessMonitor(
            self.store, self.alerts, self.config.data_access, self.clock,
        )

    def handle(self, event: dict):
        """Route one raw event dict to the component that consumes it.

        event_type      required keys                 goes to
        activity        session_id + event fields     ActivityRecorder.record
        auth_failure    ip                            BruteForceGuard.record_failure
        data_access     user_id, record_count         DataAccessMonitor.record

        Returns the component's return value, or None for event types this
        engine doesn't consume.  Missing required keys raise KeyError,
        except for activity events, which the recorder rejects itself.
        """
        event_type = event.get("event_type")

        if event_type == "activity":
            return self.recorder.record(event.get("session_id"), event)
        if event_type == "auth_failure":
            return self.brute_force.record_failure(event["ip"])
        if event_type == "data_access":
            return self.data_access.record(
                event["user_id"], event["record_count"], event.get("resource_tag"),
            )
        return None
