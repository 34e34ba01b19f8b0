"""
Rollback Engine Enums
~~~~~~~~~~~~~~~~~~~~~

Closed vocabularies for rollback points, risks, plan steps and
execution state.
"""

from enum import StrEnum

__all__ = [
    "PointKind",
    "Environment",
    "PointStatus",
    "RiskKind",
    "Severity",
    "StepKind",
    "ValidationKind",
    "ExecutionStatus",
    "StepStatus",
    "StepPhase",
    "ErrorSeverity",
]


class PointKind(StrEnum):
    """The type of change a rollback point protects."""

    DEPLOYMENT = "deployment"
    CONFIG = "config"
    DATABASE = "database"
    FEATURE = "feature"
    SYSTEM = "system"


class Environment(StrEnum):
    """Target environment of a rollback point."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class PointStatus(StrEnum):
    """
    Lifecycle of a rollback point.

    - ACTIVE: Usable for planning and execution.
    - ARCHIVED: Pushed out by the per-environment count limit.
    - EXPIRED: Older than the retention window.
    """

    ACTIVE = "active"
    ARCHIVED = "archived"
    EXPIRED = "expired"


class RiskKind(StrEnum):
    """Category of harm a rollback may cause."""

    DATA_LOSS = "data_loss"
    DOWNTIME = "downtime"
    PERFORMANCE = "performance"
    COMPATIBILITY = "compatibility"


class Severity(StrEnum):
    """Severity of an assessed risk."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    def rank(self) -> int:
        """Return an ordinal for comparisons (LOW=0 ... CRITICAL=3)."""
        return {
            Severity.LOW: 0,
            Severity.MEDIUM: 1,
            Severity.HIGH: 2,
            Severity.CRITICAL: 3,
        }[self]


class StepKind(StrEnum):
    """What a rollback step acts on."""

    FILE = "file"
    DATABASE = "database"
    CONFIG = "config"
    SERVICE = "service"
    VALIDATION = "validation"


class ValidationKind(StrEnum):
    """What a validation check verifies."""

    HEALTH_CHECK = "health_check"
    DATA_INTEGRITY = "data_integrity"
    PERFORMANCE = "performance"
    FUNCTIONAL = "functional"


class ExecutionStatus(StrEnum):
    """
    State of a rollback execution.

    pending → in_progress → {completed | failed | cancelled}.
    No transition leaves a terminal state.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def is_terminal(self) -> bool:
        """Return True if no further transition is allowed."""
        return self in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.CANCELLED,
        )

    def is_active(self) -> bool:
        """Return True while the execution holds its environment."""
        return not self.is_terminal()


class StepStatus(StrEnum):
    """Outcome of one attempted step or validation check."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepPhase(StrEnum):
    """Which part of a plan an executed step belongs to."""

    PRE_VALIDATION = "pre_validation"
    STEPS = "steps"
    POST_VALIDATION = "post_validation"


class ErrorSeverity(StrEnum):
    """Severity of an error recorded against an execution."""

    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
