"""
Metrics
~~~~~~~

Prometheus-style counters for the rollback engine.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

__all__ = ["EngineMetrics", "MetricsCollector"]


@dataclass
class EngineMetrics:
    """Point-in-time metrics snapshot."""

    points_created: int = 0
    points_dropped: int = 0
    snapshot_failures: int = 0
    plans_created: int = 0
    executions_started: int = 0
    executions_completed: int = 0
    executions_failed: int = 0
    executions_cancelled: int = 0
    executions_rejected: int = 0
    step_retries: int = 0
    step_failures: int = 0
    active_executions: int = 0
    executions_by_environment: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "points_created": self.points_created,
            "points_dropped": self.points_dropped,
            "snapshot_failures": self.snapshot_failures,
            "plans_created": self.plans_created,
            "executions_started": self.executions_started,
            "executions_completed": self.executions_completed,
            "executions_failed": self.executions_failed,
            "executions_cancelled": self.executions_cancelled,
            "executions_rejected": self.executions_rejected,
            "step_retries": self.step_retries,
            "step_failures": self.step_failures,
            "active_executions": self.active_executions,
            "executions_by_environment": dict(self.executions_by_environment),
        }

    def to_prometheus(self) -> str:
        """Render as Prometheus text exposition format."""
        lines: list[str] = [
            f"plyra_rollback_points_created {self.points_created}",
            f"plyra_rollback_points_dropped {self.points_dropped}",
            f"plyra_rollback_snapshot_failures {self.snapshot_failures}",
            f"plyra_rollback_plans_created {self.plans_created}",
            f"plyra_rollback_executions_started {self.executions_started}",
            f"plyra_rollback_executions_completed {self.executions_completed}",
            f"plyra_rollback_executions_failed {self.executions_failed}",
            f"plyra_rollback_executions_cancelled {self.executions_cancelled}",
            f"plyra_rollback_executions_rejected {self.executions_rejected}",
            f"plyra_rollback_step_retries {self.step_retries}",
            f"plyra_rollback_step_failures {self.step_failures}",
            f"plyra_rollback_active_executions {self.active_executions}",
        ]
        for environment, count in self.executions_by_environment.items():
            lines.append(
                f'plyra_rollback_executions_by_environment{{environment="{environment}"}} {count}'
            )
        return "\n".join(lines) + "\n"


_COUNTERS = (
    "points_created",
    "points_dropped",
    "snapshot_failures",
    "plans_created",
    "executions_started",
    "executions_completed",
    "executions_failed",
    "executions_cancelled",
    "executions_rejected",
    "step_retries",
    "step_failures",
)


class MetricsCollector:
    """
    Collects and exposes Prometheus-style metrics.

    Thread-safe. Unknown counter names are ignored.
    """

    def __init__(self) -> None:
        self._counters: dict[str, int] = dict.fromkeys(_COUNTERS, 0)
        self._active = 0
        self._by_environment: dict[str, int] = {}
        self._sync_lock = threading.RLock()

    def increment(self, name: str, amount: int = 1) -> None:
        """Increment a counter."""
        with self._sync_lock:
            if name in self._counters:
                self._counters[name] += amount

    def execution_started(self, environment: str) -> None:
        with self._sync_lock:
            self._counters["executions_started"] += 1
            self._active += 1
            self._by_environment[environment] = (
                self._by_environment.get(environment, 0) + 1
            )

    def execution_finished(self, status: str) -> None:
        """Count a terminal execution by status (completed, failed, cancelled)."""
        with self._sync_lock:
            self._active = max(self._active - 1, 0)
            name = f"executions_{status}"
            if name in self._counters:
                self._counters[name] += 1

    def snapshot(self) -> EngineMetrics:
        """Export as an EngineMetrics dataclass."""
        with self._sync_lock:
            return EngineMetrics(
                **self._counters,
                active_executions=self._active,
                executions_by_environment=dict(self._by_environment),
            )

    def reset(self) -> None:
        """Reset all metrics."""
        with self._sync_lock:
            for key in self._counters:
                self._counters[key] = 0
            self._active = 0
            self._by_environment.clear()
