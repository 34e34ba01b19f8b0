"""
plyra.rollback — namespace bridge for plyra-rollback.

Allows importing via:
    from plyra.rollback import RollbackService

This re-exports everything from the plyra_rollback package.
"""

# Re-export the entire public API from plyra_rollback
from plyra_rollback import *  # noqa: F401, F403
from plyra_rollback import (
    Environment,
    Execution,
    ExecutionStatus,
    PointKind,
    RollbackPlan,
    RollbackPoint,
    RollbackService,
    SnapshotCapture,
    StepRunner,
    ValidationRunner,
    __version__,
)

__all__ = [
    "RollbackService",
    "RollbackPoint",
    "RollbackPlan",
    "Execution",
    "Environment",
    "ExecutionStatus",
    "PointKind",
    "SnapshotCapture",
    "StepRunner",
    "ValidationRunner",
    "__version__",
]
