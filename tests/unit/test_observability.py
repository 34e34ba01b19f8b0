"""Tests for the audit log, metrics and exporters."""

import io
import json
import threading
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

from plyra_rollback.observability.audit_log import AuditFilter, AuditLogger
from plyra_rollback.observability.exporters import StdoutExporter, WebhookExporter
from plyra_rollback.observability.metrics import MetricsCollector


class TestAuditLogger:
    """Tests for AuditLogger."""

    def test_emit_and_query(self):
        log = AuditLogger()
        log.emit("point.created", "RP_1", environment="staging")
        log.emit("plan.created", "PLAN_1", environment="production")
        log.emit("point.created", "RP_2", environment="production")

        assert len(log) == 3
        created = log.query(AuditFilter(event_type="point.created"))
        assert [e.subject_id for e in created] == ["RP_1", "RP_2"]
        production = log.query(AuditFilter(environment="production"))
        assert [e.subject_id for e in production] == ["PLAN_1", "RP_2"]
        assert log.query(AuditFilter(subject_id="RP_2"))[0].details == {
            "environment": "production"
        }
        assert len(log.query(AuditFilter(limit=1))) == 1

    def test_time_window(self):
        log = AuditLogger()
        event = log.emit("point.created", "RP_1")
        later = event.timestamp + timedelta(seconds=1)
        assert log.query(AuditFilter(from_time=later)) == []
        assert log.query(AuditFilter(to_time=later)) == [event]

    def test_bounded(self):
        log = AuditLogger(max_entries=100)
        for i in range(150):
            log.emit("point.created", f"RP_{i}")
        entries = log.query()
        assert len(entries) == 100
        assert entries[0].subject_id == "RP_50"

    def test_failing_exporter_is_isolated(self):
        log = AuditLogger()
        broken = MagicMock()
        broken.export.side_effect = RuntimeError("collector down")
        healthy = MagicMock()
        log.add_exporter(broken)
        log.add_exporter(healthy)

        event = log.emit("plan.created", "PLAN_1")
        healthy.export.assert_called_once_with(event)
        assert len(log) == 1

    def test_unregistered_event_type_still_recorded(self):
        log = AuditLogger()
        log.emit("custom.thing", "X_1")
        assert log.query()[0].event_type == "custom.thing"

    def test_clear(self):
        log = AuditLogger()
        log.emit("point.created", "RP_1")
        log.clear()
        assert len(log) == 0


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_counters(self):
        metrics = MetricsCollector()
        metrics.increment("points_created")
        metrics.increment("points_created", 2)
        metrics.increment("not_a_counter")
        assert metrics.snapshot().points_created == 3

    def test_execution_lifecycle(self):
        metrics = MetricsCollector()
        metrics.execution_started("production")
        metrics.execution_started("staging")
        metrics.execution_finished("completed")
        snapshot = metrics.snapshot()
        assert snapshot.executions_started == 2
        assert snapshot.executions_completed == 1
        assert snapshot.active_executions == 1
        assert snapshot.executions_by_environment == {"production": 1, "staging": 1}

    def test_prometheus_format(self):
        metrics = MetricsCollector()
        metrics.execution_started("production")
        text = metrics.snapshot().to_prometheus()
        assert "plyra_rollback_executions_started 1" in text
        assert 'plyra_rollback_executions_by_environment{environment="production"} 1' in text
        assert text.endswith("\n")

    def test_reset(self):
        metrics = MetricsCollector()
        metrics.increment("plans_created")
        metrics.execution_started("staging")
        metrics.reset()
        assert metrics.snapshot().to_dict()["plans_created"] == 0
        assert metrics.snapshot().active_executions == 0


class TestStdoutExporter:
    """Tests for StdoutExporter."""

    def test_writes_json_lines(self):
        stream = io.StringIO()
        log = AuditLogger()
        log.add_exporter(StdoutExporter(stream=stream))
        log.emit("execution.completed", "EXEC_1", progress_percent=100)
        data = json.loads(stream.getvalue().strip())
        assert data["event_type"] == "execution.completed"
        assert data["details"]["progress_percent"] == 100

    def test_event_type_filter(self):
        stream = io.StringIO()
        exporter = StdoutExporter(stream=stream, event_types={"execution.failed"})
        log = AuditLogger()
        log.add_exporter(exporter)
        log.emit("execution.completed", "EXEC_1")
        assert stream.getvalue() == ""


class TestWebhookExporter:
    """Tests for WebhookExporter."""

    def test_posts_event(self):
        exporter = WebhookExporter(
            "https://hooks.example.com/rollback",
            headers={"X-Token": "abc"},
            background=False,
        )
        log = AuditLogger()
        log.add_exporter(exporter)
        response = MagicMock(status=200)
        response.__enter__.return_value = response
        with patch("urllib.request.urlopen", return_value=response) as urlopen:
            log.emit("execution.failed", "EXEC_9", environment="production")

        request = urlopen.call_args[0][0]
        assert request.full_url == "https://hooks.example.com/rollback"
        assert request.get_method() == "POST"
        assert request.get_header("X-token") == "abc"
        assert json.loads(request.data)["subject_id"] == "EXEC_9"

    def test_unreachable_endpoint_does_not_raise(self):
        exporter = WebhookExporter("http://127.0.0.1:9/nowhere", background=False)
        with patch(
            "urllib.request.urlopen", side_effect=OSError("connection refused")
        ):
            exporter.export(
                AuditLogger().emit("plan.created", "PLAN_1")
            )

    def test_background_posts_share_one_worker(self):
        exporter = WebhookExporter("https://hooks.example.com/rollback")
        response = MagicMock(status=200)
        response.__enter__.return_value = response
        before = _webhook_threads()
        with patch("urllib.request.urlopen", return_value=response) as urlopen:
            for i in range(5):
                exporter.export(AuditLogger().emit("plan.created", f"PLAN_{i}"))
            exporter.flush()
        assert urlopen.call_count == 5
        assert _webhook_threads() - before == 1

    def test_full_queue_drops_events(self):
        release = threading.Event()
        response = MagicMock(status=200)
        response.__enter__.return_value = response

        def slow_urlopen(request, timeout):
            release.wait(5)
            return response

        exporter = WebhookExporter("https://hooks.example.com/rollback", max_pending=2)
        with patch("urllib.request.urlopen", side_effect=slow_urlopen) as urlopen:
            for i in range(10):
                exporter.export(AuditLogger().emit("plan.created", f"PLAN_{i}"))
            release.set()
            exporter.flush()
        assert exporter.dropped >= 6
        assert urlopen.call_count + exporter.dropped == 10


def _webhook_threads():
    return sum(1 for t in threading.enumerate() if t.name == "plyra-rollback-webhook")


def test_audit_timestamps_are_utc():
    event = AuditLogger().emit("point.created", "RP_1")
    assert event.timestamp.tzinfo is not None
    assert abs(event.timestamp - datetime.now(UTC)) < timedelta(seconds=5)
