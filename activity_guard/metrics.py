"""Prometheus metrics for the detection engine.

Counters register themselves in the global prometheus_client REGISTRY on
import; ``activity_guard.main`` serves them with ``start_http_server``.
Web workers embedding the engine can expose the same registry through their
own /metrics route.
"""

from prometheus_client import Counter

# ---------------------------------------------------------------------------
# Activity metrics
# ---------------------------------------------------------------------------
events_recorded_total = Counter(
    "activity_guard_events_recorded_total",
    "Activity events offered to the recorder",
    ["outcome"],  # recorded | rejected | degraded
)

# ---------------------------------------------------------------------------
# Alert metrics
# ---------------------------------------------------------------------------
alerts_total = Counter(
    "activity_guard_alerts_total",
    "Security alerts published",
    ["alert_type", "severity"],
)
alert_sink_errors_total = Counter(
    "activity_guard_alert_sink_errors_total",
    "Alerts a downstream sink failed to accept",
)

# ---------------------------------------------------------------------------
# Brute-force gate
# ---------------------------------------------------------------------------
block_checks_total = Counter(
    "activity_guard_block_checks_total",
    "is_blocked() calls by answer",
    ["result"],  # allowed | blocked | degraded
)

# ---------------------------------------------------------------------------
# Degraded mode
# ---------------------------------------------------------------------------
# Non-zero means the shared store was unreachable and detectors failed open.
store_errors_total = Counter(
    "activity_guard_store_errors_total",
    "Store failures absorbed by the engine",
    ["operation"],
)
