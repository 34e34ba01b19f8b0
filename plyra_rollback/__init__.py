"""
plyra-rollback — Rollback orchestration for risky changes.

Part of the Plyra infrastructure suite.

plyra-rollback snapshots system state before a risky change and, when
the change goes wrong, reverses it safely:

- Immutable rollback points with per-environment retention
- Deterministic risk assessment
- Ordered, dependency-aware rollback plans
- Approval gating for production and destructive rollbacks
- Background execution with retries, timeouts and validation gates
- One active rollback per environment
- Full audit trail and Prometheus-style metrics

Quick Start::

    import asyncio
    from plyra_rollback import RollbackService

    async def main() -> None:
        service = RollbackService.default()
        point = service.create_rollback_point(
            "config", "Raise pool size", "v42", "staging", "alice"
        )
        plan = service.create_rollback_plan(point.id)
        execution = await service.execute_rollback(plan.id, "alice")
        execution = await service.wait_for_execution(execution.id)
        print(execution.status)

    asyncio.run(main())

:copyright: (c) 2024 Plyra
:license: Apache-2.0
"""

from plyra_rollback.collaborators.base import (
    SnapshotBundle,
    SnapshotCapture,
    StepRunner,
    ValidationRunner,
)
from plyra_rollback.core.enums import (
    Environment,
    ErrorSeverity,
    ExecutionStatus,
    PointKind,
    PointStatus,
    RiskKind,
    Severity,
    StepKind,
    StepPhase,
    StepStatus,
    ValidationKind,
)
from plyra_rollback.core.models import (
    ExecutedStep,
    Execution,
    ExecutionError,
    Risk,
    RollbackPlan,
    RollbackPoint,
    RollbackStep,
    ValidationStep,
)
from plyra_rollback.core.service import RollbackService
from plyra_rollback.observability.audit_log import AuditEvent, AuditFilter
from plyra_rollback.observability.exporters.stdout_exporter import (
    StdoutExporter,
)
from plyra_rollback.observability.metrics import EngineMetrics
from plyra_rollback.planning.risk_assessor import RiskRule

__version__ = "0.1.0"
__author__ = "Plyra"
__license__ = "Apache-2.0"
__url__ = "https://plyra.dev"

__all__ = [
    # Main class
    "RollbackService",
    # Enums
    "Environment",
    "ErrorSeverity",
    "ExecutionStatus",
    "PointKind",
    "PointStatus",
    "RiskKind",
    "Severity",
    "StepKind",
    "StepPhase",
    "StepStatus",
    "ValidationKind",
    # Data models
    "ExecutedStep",
    "Execution",
    "ExecutionError",
    "Risk",
    "RollbackPlan",
    "RollbackPoint",
    "RollbackStep",
    "ValidationStep",
    "AuditEvent",
    "AuditFilter",
    "EngineMetrics",
    # Extension bases
    "SnapshotBundle",
    "SnapshotCapture",
    "StepRunner",
    "ValidationRunner",
    "RiskRule",
    # Exporters
    "StdoutExporter",
    # Version
    "__version__",
]
