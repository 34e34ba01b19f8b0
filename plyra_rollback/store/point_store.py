"""
Rollback Point Store
~~~~~~~~~~~~~~~~~~~~

Owns rollback points: captures a snapshot, attaches risks, assigns an
id, persists, and enforces per-environment retention.

Retention runs after every insert and on demand through ``cleanup()``:

1. Points older than ``retention_days`` are expired.
2. Of the rest, only the newest ``max_rollback_points`` stay active;
   older ones are archived.
3. Expired and archived points are removed from the repository.

Protected ids (points referenced by an active execution) are never
dropped. If protected points alone fill an environment, creating a new
point fails with RetentionError and nothing is stored.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from plyra_rollback.collaborators.base import SnapshotBundle, SnapshotCapture
from plyra_rollback.config.schema import RetentionConfig
from plyra_rollback.core.enums import Environment, PointKind, PointStatus
from plyra_rollback.core.models import RollbackPoint, new_id, utcnow
from plyra_rollback.exceptions import (
    NotFoundError,
    RetentionError,
    SnapshotCaptureError,
)
from plyra_rollback.observability.audit_log import AuditLogger
from plyra_rollback.observability.metrics import MetricsCollector
from plyra_rollback.planning.risk_assessor import RiskAssessor
from plyra_rollback.store.backends import MemoryBackend, RecordBackend

__all__ = ["RollbackPointStore"]

logger = logging.getLogger(__name__)

_COLLECTION = "points"


class RollbackPointStore:
    """
    Registry of immutable rollback points with retention.

    Args:
        snapshot_capture: Collaborator that captures system state.
        risk_assessor: Attaches risks to each new point.
        backend: Repository to write through to.
        retention: Count and age limits per environment.
        audit_log: Receives ``point.created`` and ``point.dropped`` events.
        metrics: Counts created and dropped points and capture failures.
        clock: Returns the current UTC time.
        protected_ids: Returns the ids of points in use by active
            executions. Called under the store lock each time retention
            runs, so executions started during a capture are honoured.
    """

    def __init__(
        self,
        snapshot_capture: SnapshotCapture,
        risk_assessor: RiskAssessor | None = None,
        backend: RecordBackend | None = None,
        retention: RetentionConfig | None = None,
        audit_log: AuditLogger | None = None,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], datetime] = utcnow,
        protected_ids: Callable[[], Iterable[str]] | None = None,
    ) -> None:
        self._capture = snapshot_capture
        self._risk_assessor = risk_assessor or RiskAssessor()
        self._backend = backend or MemoryBackend()
        self._retention = retention or RetentionConfig()
        self._audit_log = audit_log
        self._metrics = metrics or MetricsCollector()
        self._clock = clock
        self._protected_ids = protected_ids or (lambda: ())
        # Insertion order doubles as the tie-breaker for equal timestamps.
        self._points: dict[str, RollbackPoint] = {}
        self._sync_lock = threading.RLock()
        self._load()

    def _load(self) -> None:
        for data in self._backend.all(_COLLECTION):
            try:
                point = RollbackPoint.from_dict(data)
            except (KeyError, ValueError) as exc:
                logger.error("Skipping unreadable rollback point record: %s", exc)
                continue
            self._points[point.id] = point
        if self._points:
            logger.info("Loaded %d rollback points", len(self._points))

    def _protected(self) -> set[str]:
        return set(self._protected_ids())

    # ── Creation ─────────────────────────────────────────────────────────────

    def create(
        self,
        kind: PointKind,
        description: str,
        version: str,
        environment: Environment,
        actor: str,
        *,
        dependencies: Iterable[str] = (),
        metadata: dict[str, Any] | None = None,
    ) -> RollbackPoint:
        """
        Capture state and register a new rollback point.

        Raises:
            NotFoundError: A dependency id is unknown.
            RetentionError: The environment is full of protected points.
            SnapshotCaptureError: The snapshot could not be captured.
        """
        kind = PointKind(kind)
        environment = Environment(environment)
        deps = tuple(dependencies)
        self._precheck(environment, deps)

        bundle = self._capture_snapshot(kind, environment)
        return self._insert(
            kind, description, version, environment, actor, deps, metadata, bundle
        )

    async def create_async(
        self,
        kind: PointKind,
        description: str,
        version: str,
        environment: Environment,
        actor: str,
        *,
        dependencies: Iterable[str] = (),
        metadata: dict[str, Any] | None = None,
    ) -> RollbackPoint:
        """Async version of create. Capture runs in a worker thread."""
        kind = PointKind(kind)
        environment = Environment(environment)
        deps = tuple(dependencies)
        self._precheck(environment, deps)

        bundle = await asyncio.to_thread(self._capture_snapshot, kind, environment)
        return self._insert(
            kind, description, version, environment, actor, deps, metadata, bundle
        )

    def _precheck(self, environment: Environment, dependencies: tuple[str, ...]) -> None:
        with self._sync_lock:
            for dep in dependencies:
                if dep not in self._points:
                    raise NotFoundError(resource="Rollback point", resource_id=dep)
            self._check_capacity_locked(environment, self._protected())

    def _check_capacity_locked(
        self, environment: Environment, protected: set[str]
    ) -> None:
        pinned = [
            p
            for p in self._points.values()
            if p.environment == environment and p.id in protected
        ]
        if len(pinned) >= self._retention.max_rollback_points:
            raise RetentionError(
                f"Rollback point store full for {environment.value}: "
                f"{len(pinned)} points are in use by active executions",
                details={
                    "environment": environment.value,
                    "protected_ids": sorted(p.id for p in pinned),
                },
            )

    def _capture_snapshot(
        self, kind: PointKind, environment: Environment
    ) -> SnapshotBundle:
        try:
            return self._capture.capture(kind, environment)
        except Exception as exc:
            self._metrics.increment("snapshot_failures")
            logger.error(
                "Snapshot capture failed for %s point in %s: %s",
                kind.value,
                environment.value,
                exc,
            )
            raise SnapshotCaptureError(
                f"Snapshot capture failed: {exc}",
                details={"kind": kind.value, "environment": environment.value},
            ) from exc

    def _insert(
        self,
        kind: PointKind,
        description: str,
        version: str,
        environment: Environment,
        actor: str,
        dependencies: tuple[str, ...],
        metadata: dict[str, Any] | None,
        bundle: SnapshotBundle,
    ) -> RollbackPoint:
        point = RollbackPoint(
            id=new_id("RP"),
            kind=kind,
            description=description,
            version=version,
            environment=environment,
            created_by=actor,
            created_at=self._clock(),
            risks=tuple(self._risk_assessor.assess(kind, environment)),
            dependencies=dependencies,
            snapshot_ref=bundle.to_dict(),
            metadata=dict(metadata or {}),
        )

        with self._sync_lock:
            # Executions may have started while the snapshot was captured.
            protected = self._protected()
            self._check_capacity_locked(environment, protected)
            self._backend.put(_COLLECTION, point.id, point.to_dict())
            self._points[point.id] = point
            self._cleanup_locked(environment, protected)

        self._metrics.increment("points_created")
        logger.info(
            "Created rollback point %s (%s, %s, version=%s, risks=%d)",
            point.id,
            kind.value,
            environment.value,
            version,
            len(point.risks),
        )
        if self._audit_log is not None:
            self._audit_log.emit(
                "point.created",
                point.id,
                kind=kind.value,
                environment=environment.value,
                version=version,
                created_by=actor,
                risks=[r.to_dict() for r in point.risks],
            )
        return point

    # ── Retention ────────────────────────────────────────────────────────────

    def cleanup(self, environment: Environment) -> list[str]:
        """
        Apply retention to one environment.

        Returns:
            Ids of the points that were dropped. Idempotent: a second call
            with no intervening change returns an empty list.
        """
        with self._sync_lock:
            return self._cleanup_locked(Environment(environment), self._protected())

    def _newest_first(self, points: Iterable[RollbackPoint]) -> list[RollbackPoint]:
        order = {point_id: i for i, point_id in enumerate(self._points)}
        return sorted(
            points, key=lambda p: (p.created_at, order[p.id]), reverse=True
        )

    def _cleanup_locked(
        self, environment: Environment, protected: set[str]
    ) -> list[str]:
        now = self._clock()
        cutoff = now - timedelta(days=self._retention.retention_days)
        candidates = self._newest_first(
            p
            for p in self._points.values()
            if p.environment == environment and p.status == PointStatus.ACTIVE
        )

        dropped: list[RollbackPoint] = []
        survivors: list[RollbackPoint] = []
        for point in candidates:
            if point.id not in protected and point.created_at < cutoff:
                dropped.append(replace(point, status=PointStatus.EXPIRED))
            else:
                survivors.append(point)

        slots = self._retention.max_rollback_points - sum(
            1 for p in survivors if p.id in protected
        )
        for point in survivors:
            if point.id in protected:
                continue
            if slots > 0:
                slots -= 1
            else:
                dropped.append(replace(point, status=PointStatus.ARCHIVED))

        for point in dropped:
            del self._points[point.id]
            self._backend.delete(_COLLECTION, point.id)
            self._metrics.increment("points_dropped")
            logger.info(
                "Dropped rollback point %s from %s (%s)",
                point.id,
                environment.value,
                point.status.value,
            )
            if self._audit_log is not None:
                self._audit_log.emit(
                    "point.dropped",
                    point.id,
                    environment=environment.value,
                    status=point.status.value,
                )
        return [p.id for p in dropped]

    # ── Queries ──────────────────────────────────────────────────────────────

    def get(self, point_id: str) -> RollbackPoint:
        """Return a point by id, or raise NotFoundError."""
        point = self.find(point_id)
        if point is None:
            raise NotFoundError(resource="Rollback point", resource_id=point_id)
        return point

    def find(self, point_id: str) -> RollbackPoint | None:
        with self._sync_lock:
            return self._points.get(point_id)

    def list(self, environment: Environment | None = None) -> list[RollbackPoint]:
        """Return points, newest first, optionally for one environment."""
        with self._sync_lock:
            return self._newest_first(
                p
                for p in self._points.values()
                if environment is None or p.environment == environment
            )

    def __len__(self) -> int:
        return len(self._points)
