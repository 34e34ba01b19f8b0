"""
Stdout Exporter
~~~~~~~~~~~~~~~

Writes audit events as JSON lines to a stream.
"""

from __future__ import annotations

import json
import sys

from plyra_rollback.observability.audit_log import AuditEvent

__all__ = ["StdoutExporter"]


class StdoutExporter:
    """
    Default exporter: one JSON object per line, ready for log aggregators.

    Args:
        stream: Writable text stream. Defaults to ``sys.stdout``.
        pretty: Indent the JSON instead of writing a single line.
        event_types: Only export these event types. ``None`` exports all.
    """

    def __init__(
        self,
        stream: object | None = None,
        pretty: bool = False,
        event_types: set[str] | None = None,
    ) -> None:
        self._stream = stream or sys.stdout
        self._pretty = pretty
        self._event_types = event_types

    def export(self, event: AuditEvent) -> None:
        """Write the event to the output stream."""
        if self._event_types is not None and event.event_type not in self._event_types:
            return
        data = event.to_dict()
        if self._pretty:
            line = json.dumps(data, indent=2, default=str)
        else:
            line = json.dumps(data, default=str)
        self._stream.write(line + "\n")  # type: ignore[union-attr]
        self._stream.flush()  # type: ignore[union-attr]
