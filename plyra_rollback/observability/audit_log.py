"""
Audit Log
~~~~~~~~~

Structured, bounded audit trail of rollback engine lifecycle events:
points created and dropped, plans built, executions started, stepped,
finished and rejected.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

__all__ = ["AuditEvent", "AuditFilter", "AuditLogger", "EVENT_TYPES"]

logger = logging.getLogger(__name__)

EVENT_TYPES = frozenset(
    {
        "point.created",
        "point.dropped",
        "plan.created",
        "execution.started",
        "execution.step_finished",
        "execution.completed",
        "execution.failed",
        "execution.cancelled",
        "execution.rejected",
    }
)


@dataclass
class AuditEvent:
    """One lifecycle event."""

    event_type: str
    subject_id: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "subject_id": self.subject_id,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class AuditFilter:
    """Filter criteria for querying the audit log."""

    event_type: str | None = None
    subject_id: str | None = None
    environment: str | None = None
    from_time: datetime | None = None
    to_time: datetime | None = None
    limit: int = 100


class AuditLogger:
    """
    In-memory audit log with filtering and exporter fan-out.

    ``emit`` is fire-and-forget: an exporter that raises is logged and
    skipped, and never affects the engine operation that emitted.
    """

    def __init__(self, max_entries: int = 10000) -> None:
        self._entries: list[AuditEvent] = []
        self._max_entries = max_entries
        self._sync_lock = threading.RLock()
        self._exporters: list[Any] = []

    @property
    def exporters(self) -> list[Any]:
        return list(self._exporters)

    def add_exporter(self, exporter: Any) -> None:
        """Add an exporter to receive audit events."""
        self._exporters.append(exporter)

    def clear_exporters(self) -> None:
        """Detach every exporter."""
        self._exporters.clear()

    def emit(self, event_type: str, subject_id: str, **details: Any) -> AuditEvent:
        """
        Record an event and forward it to exporters.

        Args:
            event_type: One of ``EVENT_TYPES``.
            subject_id: The point, plan or execution the event is about.
            **details: JSON-safe event payload.

        Returns:
            The recorded event.
        """
        if event_type not in EVENT_TYPES:
            logger.warning("Emitting unregistered audit event type %r", event_type)

        event = AuditEvent(event_type=event_type, subject_id=subject_id, details=details)
        with self._sync_lock:
            self._entries.append(event)
            if len(self._entries) > self._max_entries:
                self._entries = self._entries[-self._max_entries :]

        for exporter in self._exporters:
            try:
                exporter.export(event)
            except Exception as exc:
                logger.error(
                    "Exporter %s failed: %s",
                    type(exporter).__name__,
                    exc,
                )
        return event

    def query(self, filters: AuditFilter | None = None) -> list[AuditEvent]:
        """
        Query the audit log, oldest first.

        Args:
            filters: Optional filter criteria.

        Returns:
            Matching audit events.
        """
        if filters is None:
            with self._sync_lock:
                return list(self._entries)

        results: list[AuditEvent] = []
        with self._sync_lock:
            for event in self._entries:
                if filters.event_type and event.event_type != filters.event_type:
                    continue
                if filters.subject_id and event.subject_id != filters.subject_id:
                    continue
                if (
                    filters.environment
                    and event.details.get("environment") != filters.environment
                ):
                    continue
                if filters.from_time and event.timestamp < filters.from_time:
                    continue
                if filters.to_time and event.timestamp > filters.to_time:
                    continue
                results.append(event)

                if len(results) >= filters.limit:
                    break

        return results

    def clear(self) -> None:
        """Clear all audit events."""
        with self._sync_lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
