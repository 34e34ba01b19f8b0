"""
Webhook Exporter
~~~~~~~~~~~~~~~~

POSTs audit events to an arbitrary URL. Background delivery uses one
worker thread fed by a bounded queue; events beyond ``max_pending`` are
dropped with a warning.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
import urllib.error
import urllib.request

from plyra_rollback.observability.audit_log import AuditEvent

__all__ = ["WebhookExporter"]

logger = logging.getLogger(__name__)


class WebhookExporter:
    """
    Exports audit events by POSTing them as JSON to a webhook URL.

    Set ``background=False`` to post inline.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: int = 10,
        background: bool = True,
        max_pending: int = 1000,
    ) -> None:
        self._url = url
        self._headers = headers or {}
        self._timeout = timeout
        self._background = background
        self._pending: queue.Queue[tuple[bytes, str]] = queue.Queue(maxsize=max_pending)
        self._worker: threading.Thread | None = None
        self._sync_lock = threading.Lock()
        self._dropped = 0

    @property
    def url(self) -> str:
        return self._url

    @property
    def dropped(self) -> int:
        """Events discarded because the queue was full."""
        return self._dropped

    def export(self, event: AuditEvent) -> None:
        """POST the event, in the background unless configured otherwise."""
        payload = json.dumps(event.to_dict(), default=str).encode("utf-8")
        if not self._background:
            self._post(payload, event.subject_id)
            return
        try:
            self._pending.put_nowait((payload, event.subject_id))
        except queue.Full:
            self._dropped += 1
            logger.warning(
                "Webhook queue full (%d pending), dropping event for %s",
                self._pending.maxsize,
                event.subject_id,
            )
            return
        self._ensure_worker()

    def flush(self) -> None:
        """Block until every queued event has been posted or has failed."""
        self._pending.join()

    def _ensure_worker(self) -> None:
        with self._sync_lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(
                target=self._drain,
                name="plyra-rollback-webhook",
                daemon=True,
            )
            self._worker.start()

    def _drain(self) -> None:
        while True:
            payload, subject_id = self._pending.get()
            try:
                self._post(payload, subject_id)
            finally:
                self._pending.task_done()

    def _post(self, payload: bytes, subject_id: str) -> None:
        headers = {
            "Content-Type": "application/json",
            **self._headers,
        }

        try:
            req = urllib.request.Request(
                self._url,
                data=payload,
                headers=headers,
                method="POST",
            )
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                if resp.status >= 400:
                    logger.warning(
                        "Webhook returned status %d for %s",
                        resp.status,
                        subject_id,
                    )
        except (urllib.error.URLError, OSError) as exc:
            logger.error("Webhook export failed: %s", exc)
