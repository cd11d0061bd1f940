"""Excessive data access: bulk reads piling up for one actor.

Bulk-read and export endpoints report how many rows each call returned.
The monitor keeps a running total per (actor, resource tag) for an
accounting period that starts with the actor's first read.  Crossing the
threshold raises one ``excessive_data_access`` alert; the total keeps
growing for reporting and only resets when the period ends.
"""

from dataclasses import dataclass, replace

from activity_guard.alerts import AlertType
from activity_guard.config import DataAccessConfig
from activity_guard.detectors import Detector
from activity_guard.store import StoreUnavailable


@dataclass(frozen=True)
class AccessCounter:
    period_start: float
    total: int = 0
    alerted: bool = False


class DataAccessMonitor(Detector):
    alert_type = AlertType.EXCESSIVE_DATA_ACCESS
    key_prefix = "data_access:"

    def __init__(self, store, alerts, config: DataAccessConfig | None = None,
                 clock=None):
        super().__init__(store, alerts, clock)
        self.config = config or DataAccessConfig()

    def record(self, actor_id: str, unit_count: int,
               resource_tag: str | None = None) -> int | None:
        """Add *unit_count* rows to the actor's total and return the new total.

        Returns None if the store is unreachable (the read goes uncounted).
        """
        if unit_count < 0:
            raise ValueError(f"unit_count must be non-negative, got {unit_count}")

        now = self.clock()
        period = self.config.period_seconds
        threshold = self.config.threshold

        def _accumulate(counter):
            if counter is None or now - counter.period_start >= period:
                counter = AccessCounter(period_start=now)
            before = counter.total
            counter = replace(counter, total=before + unit_count)
            crossed = before < threshold <= counter.total and not counter.alerted
            if crossed:
                counter = replace(counter, alerted=True)
            return counter, (counter, crossed)

        try:
            # TTL only reclaims idle counters; the period boundary is period_start.
            counter, crossed = self.store.update(
                self.key(actor_id, resource_tag), _accumulate, ttl=period,
            )
        except StoreUnavailable as exc:
            self.degraded("data_access", exc)
            return None

        if crossed:
            self.publish({
                "actor": actor_id,
                "resource_tag": resource_tag,
                "total": counter.total,
            }, now)
        return counter.total

    def total(self, actor_id: str, resource_tag: str | None = None) -> int:
        """Current-period total.  Read-only, 0 if the store is down."""
        try:
            counter = self.store.get(self.key(actor_id, resource_tag))
        except StoreUnavailable as exc:
            self.degraded("total", exc)
            return 0
        if counter is None or self.clock() - counter.period_start >= self.config.period_seconds:
            return 0
        return counter.total
