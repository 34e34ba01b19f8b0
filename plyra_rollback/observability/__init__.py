"""Rollback engine observability — audit trail, metrics, and exporters."""

from plyra_rollback.observability.audit_log import (
    EVENT_TYPES,
    AuditEvent,
    AuditFilter,
    AuditLogger,
)
from plyra_rollback.observability.exporters import StdoutExporter, WebhookExporter
from plyra_rollback.observability.metrics import EngineMetrics, MetricsCollector

__all__ = [
    "EVENT_TYPES",
    "AuditEvent",
    "AuditFilter",
    "AuditLogger",
    "EngineMetrics",
    "MetricsCollector",
    "StdoutExporter",
    "WebhookExporter",
]
