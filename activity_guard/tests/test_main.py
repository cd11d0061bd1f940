"""Tests for the Kafka service helpers (no broker needed)."""

import json
from dataclasses import replace
from unittest.mock import MagicMock

from activity_guard.alerts import AlertType, SecurityAlert
from activity_guard.config import GuardConfig
from activity_guard.main import build_engine, kafka_alert_sink
from activity_guard.store import MemoryStore


class TestAlertSink:
    def test_produces_alert_json_keyed_by_id(self):
        producer = MagicMock()
        sink = kafka_alert_sink(producer, "security-alerts")
        alert = SecurityAlert.create(
            AlertType.BRUTE_FORCE_DETECTED, {"origin": "10.0.0.9", "count": 5}, 1_700_000_000.0,
        )
        sink(replace(alert, id="SEC_1700000000_0a1b2c3d"))

        producer.produce.assert_called_once()
        args, kwargs = producer.produce.call_args
        assert args == ("security-alerts",)
        assert kwargs["key"] == "SEC_1700000000_0a1b2c3d"
        assert json.loads(kwargs["value"]) == {
            "id": "SEC_1700000000_0a1b2c3d",
            "alert_type": "brute_force_detected",
            "severity": "critical",
            "created_at": 1_700_000_000.0,
            "origin": "10.0.0.9",
            "count": 5,
        }

    def test_sink_wired_into_engine_sees_detector_alerts(self, engine):
        producer = MagicMock()
        engine.alerts.add_sink(kafka_alert_sink(producer, "security-alerts"))
        for _ in range(5):
            engine.handle({"event_type": "auth_failure", "ip": "10.0.0.9"})
        assert producer.produce.call_count == 1


class TestBuildEngine:
    def test_defaults_without_config(self):
        engine = build_engine()
        assert engine.config == GuardConfig()
        assert isinstance(engine.store, MemoryStore)

    def test_loads_yaml_config(self, tmp_path):
        path = tmp_path / "guard.yml"
        path.write_text("brute_force:\n  threshold: 3\n")
        assert build_engine(str(path)).config.brute_force.threshold == 3
