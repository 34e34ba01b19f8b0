"""Observability exporters."""

from plyra_rollback.observability.exporters.stdout_exporter import StdoutExporter
from plyra_rollback.observability.exporters.webhook_exporter import WebhookExporter

__all__ = [
    "StdoutExporter",
    "WebhookExporter",
]
