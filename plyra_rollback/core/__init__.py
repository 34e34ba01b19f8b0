"""Rollback engine core: data model, executor, leases and service facade."""

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

__all__ = [
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
    "ExecutedStep",
    "Execution",
    "ExecutionError",
    "Risk",
    "RollbackPlan",
    "RollbackPoint",
    "RollbackStep",
    "ValidationStep",
]
