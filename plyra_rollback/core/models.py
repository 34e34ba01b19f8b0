"""
Rollback Engine Data Models
~~~~~~~~~~~~~~~~~~~~~~~~~~~

Defines the dataclasses that flow through the rollback engine:
RollbackPoint and Risk (input), RollbackPlan with its steps (derived),
and Execution with its per-step records and errors (output).
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

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

__all__ = [
    "Risk",
    "RollbackPoint",
    "RollbackStep",
    "ValidationStep",
    "RollbackPlan",
    "ExecutedStep",
    "ExecutionError",
    "Execution",
    "utcnow",
    "new_id",
]


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def new_id(prefix: str) -> str:
    """Return a fresh id such as ``RP_1718000000000_3f9a1c2b7``."""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class Risk:
    """
    One assessed risk of performing a rollback.

    Attributes:
        kind: Category of harm.
        severity: How bad it is if it happens.
        probability: Likelihood in percent (0-100).
        description: Human-readable description.
        mitigation: Suggested mitigation.
    """

    kind: RiskKind
    severity: Severity
    probability: int
    description: str = ""
    mitigation: str = ""

    def __post_init__(self) -> None:
        if not 0 <= self.probability <= 100:
            raise ValueError(
                f"Risk probability must be within 0-100, got {self.probability}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "probability": self.probability,
            "description": self.description,
            "mitigation": self.mitigation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Risk:
        return cls(
            kind=RiskKind(data["kind"]),
            severity=Severity(data["severity"]),
            probability=int(data["probability"]),
            description=data.get("description", ""),
            mitigation=data.get("mitigation", ""),
        )


@dataclass(frozen=True)
class RollbackPoint:
    """
    An immutable, timestamped snapshot reference plus risk assessment.

    Only ``status`` ever changes, and only inside the point store via
    ``dataclasses.replace``.

    Attributes:
        id: Opaque identifier.
        kind: The type of change this point protects.
        description: What the change was.
        version: Version label of the state captured.
        environment: Target environment.
        created_by: Actor who created the point.
        created_at: Capture time (UTC).
        status: Lifecycle status.
        risks: Risks attached by the risk assessor.
        dependencies: Ids of other rollback points this one relies on.
        snapshot_ref: Opaque snapshot reference from the capture collaborator.
        metadata: Arbitrary metadata bag for extensibility.
    """

    id: str
    kind: PointKind
    description: str
    version: str
    environment: Environment
    created_by: str
    created_at: datetime = field(default_factory=utcnow)
    status: PointStatus = PointStatus.ACTIVE
    risks: tuple[Risk, ...] = ()
    dependencies: tuple[str, ...] = ()
    snapshot_ref: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dictionary."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "description": self.description,
            "version": self.version,
            "environment": self.environment.value,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "status": self.status.value,
            "risks": [r.to_dict() for r in self.risks],
            "dependencies": list(self.dependencies),
            "snapshot_ref": self.snapshot_ref,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RollbackPoint:
        return cls(
            id=data["id"],
            kind=PointKind(data["kind"]),
            description=data.get("description", ""),
            version=data.get("version", ""),
            environment=Environment(data["environment"]),
            created_by=data.get("created_by", ""),
            created_at=_parse(data.get("created_at")) or utcnow(),
            status=PointStatus(data.get("status", PointStatus.ACTIVE)),
            risks=tuple(Risk.from_dict(r) for r in data.get("risks", [])),
            dependencies=tuple(data.get("dependencies", [])),
            snapshot_ref=data.get("snapshot_ref"),
            metadata=dict(data.get("metadata", {})),
        )


@dataclass(frozen=True)
class RollbackStep:
    """
    One destructive or corrective action in a rollback plan.

    Attributes:
        id: Unique step id within the plan.
        order: 1-based position in the plan.
        kind: What the step acts on.
        action: Verb, e.g. "stop", "restore", "start".
        description: Human-readable description.
        automated: False when a human must trigger or confirm the step.
        timeout_seconds: Deadline for one attempt.
        max_retries: Additional attempts after the first failure.
        depends_on: Ids of steps that must be attempted first.
        critical: Exhausting retries on a critical step aborts the execution.
        command: Optional command hint for the step runner.
    """

    id: str
    order: int
    kind: StepKind
    action: str
    description: str
    automated: bool = True
    timeout_seconds: float = 60
    max_retries: int = 0
    depends_on: tuple[str, ...] = ()
    critical: bool = False
    command: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order": self.order,
            "kind": self.kind.value,
            "action": self.action,
            "description": self.description,
            "automated": self.automated,
            "timeout_seconds": self.timeout_seconds,
            "max_retries": self.max_retries,
            "depends_on": list(self.depends_on),
            "critical": self.critical,
            "command": self.command,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RollbackStep:
        return cls(
            id=data["id"],
            order=int(data["order"]),
            kind=StepKind(data["kind"]),
            action=data.get("action", ""),
            description=data.get("description", ""),
            automated=bool(data.get("automated", True)),
            timeout_seconds=data.get("timeout_seconds", 60),
            max_retries=int(data.get("max_retries", 0)),
            depends_on=tuple(data.get("depends_on", [])),
            critical=bool(data.get("critical", False)),
            command=data.get("command"),
        )


@dataclass(frozen=True)
class ValidationStep:
    """
    A pre- or post-rollback check.

    Attributes:
        id: Unique check id within the plan.
        kind: What the check verifies.
        description: Human-readable description.
        check: Check expression handed to the validation runner.
        expected_result: Value the runner's result must match.
        timeout_seconds: Deadline for the check.
        critical: Whether a failure blocks the execution.
    """

    id: str
    kind: ValidationKind
    description: str
    check: str
    expected_result: Any = None
    timeout_seconds: float = 30
    critical: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "description": self.description,
            "check": self.check,
            "expected_result": self.expected_result,
            "timeout_seconds": self.timeout_seconds,
            "critical": self.critical,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidationStep:
        return cls(
            id=data["id"],
            kind=ValidationKind(data["kind"]),
            description=data.get("description", ""),
            check=data.get("check", ""),
            expected_result=data.get("expected_result"),
            timeout_seconds=data.get("timeout_seconds", 30),
            critical=bool(data.get("critical", True)),
        )


@dataclass(frozen=True)
class RollbackPlan:
    """
    An ordered, dependency-consistent sequence of steps plus validation
    gates, derived from one rollback point.
    """

    id: str
    point_id: str
    environment: Environment
    steps: tuple[RollbackStep, ...]
    risks: tuple[Risk, ...] = ()
    approval_required: bool = False
    pre_validation: tuple[ValidationStep, ...] = ()
    post_validation: tuple[ValidationStep, ...] = ()
    estimated_duration_minutes: float = 0.0
    created_at: datetime = field(default_factory=utcnow)

    @property
    def total_units(self) -> int:
        """Number of progress units: every validation check and every step."""
        return len(self.pre_validation) + len(self.steps) + len(self.post_validation)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dictionary."""
        return {
            "id": self.id,
            "point_id": self.point_id,
            "environment": self.environment.value,
            "steps": [s.to_dict() for s in self.steps],
            "risks": [r.to_dict() for r in self.risks],
            "approval_required": self.approval_required,
            "pre_validation": [v.to_dict() for v in self.pre_validation],
            "post_validation": [v.to_dict() for v in self.post_validation],
            "estimated_duration_minutes": self.estimated_duration_minutes,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RollbackPlan:
        return cls(
            id=data["id"],
            point_id=data["point_id"],
            environment=Environment(data["environment"]),
            steps=tuple(RollbackStep.from_dict(s) for s in data.get("steps", [])),
            risks=tuple(Risk.from_dict(r) for r in data.get("risks", [])),
            approval_required=bool(data.get("approval_required", False)),
            pre_validation=tuple(
                ValidationStep.from_dict(v) for v in data.get("pre_validation", [])
            ),
            post_validation=tuple(
                ValidationStep.from_dict(v) for v in data.get("post_validation", [])
            ),
            estimated_duration_minutes=float(
                data.get("estimated_duration_minutes", 0.0)
            ),
            created_at=_parse(data.get("created_at")) or utcnow(),
        )


@dataclass
class ExecutedStep:
    """
    Record of one attempted step or validation check.

    Retries update ``retry_count`` on the same record.
    """

    step_id: str
    phase: StepPhase = StepPhase.STEPS
    start_time: datetime = field(default_factory=utcnow)
    end_time: datetime | None = None
    status: StepStatus = StepStatus.PENDING
    output: str = ""
    error: str | None = None
    retry_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "phase": self.phase.value,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "status": self.status.value,
            "output": self.output,
            "error": self.error,
            "retry_count": self.retry_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutedStep:
        return cls(
            step_id=data["step_id"],
            phase=StepPhase(data.get("phase", StepPhase.STEPS)),
            start_time=_parse(data.get("start_time")) or utcnow(),
            end_time=_parse(data.get("end_time")),
            status=StepStatus(data.get("status", StepStatus.PENDING)),
            output=data.get("output", ""),
            error=data.get("error"),
            retry_count=int(data.get("retry_count", 0)),
        )


@dataclass(frozen=True)
class ExecutionError:
    """An append-only error entry on an execution."""

    step_id: str
    message: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    recovered: bool = False
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "message": self.message,
            "severity": self.severity.value,
            "recovered": self.recovered,
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionError:
        return cls(
            step_id=data.get("step_id", ""),
            message=data.get("message", ""),
            severity=ErrorSeverity(data.get("severity", ErrorSeverity.ERROR)),
            recovered=bool(data.get("recovered", False)),
            timestamp=_parse(data.get("timestamp")) or utcnow(),
        )


@dataclass
class Execution:
    """
    One run of a rollback plan, tracked as a state machine.

    Mutated only by the executor. Everything else sees copies served by
    the execution ledger.
    """

    id: str
    plan_id: str
    point_id: str
    environment: Environment
    executed_by: str
    approved_by: str | None = None
    start_time: datetime = field(default_factory=utcnow)
    end_time: datetime | None = None
    status: ExecutionStatus = ExecutionStatus.PENDING
    progress_percent: int = 0
    current_step_id: str | None = None
    executed_steps: list[ExecutedStep] = field(default_factory=list)
    errors: list[ExecutionError] = field(default_factory=list)

    def step_record(self, step_id: str) -> ExecutedStep | None:
        """Return the executed-step record for ``step_id``, if attempted."""
        for record in self.executed_steps:
            if record.step_id == step_id:
                return record
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dictionary."""
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "point_id": self.point_id,
            "environment": self.environment.value,
            "executed_by": self.executed_by,
            "approved_by": self.approved_by,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "status": self.status.value,
            "progress_percent": self.progress_percent,
            "current_step_id": self.current_step_id,
            "executed_steps": [s.to_dict() for s in self.executed_steps],
            "errors": [e.to_dict() for e in self.errors],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Execution:
        return cls(
            id=data["id"],
            plan_id=data["plan_id"],
            point_id=data.get("point_id", ""),
            environment=Environment(data["environment"]),
            executed_by=data.get("executed_by", ""),
            approved_by=data.get("approved_by"),
            start_time=_parse(data.get("start_time")) or utcnow(),
            end_time=_parse(data.get("end_time")),
            status=ExecutionStatus(data.get("status", ExecutionStatus.PENDING)),
            progress_percent=int(data.get("progress_percent", 0)),
            current_step_id=data.get("current_step_id"),
            executed_steps=[
                ExecutedStep.from_dict(s) for s in data.get("executed_steps", [])
            ],
            errors=[ExecutionError.from_dict(e) for e in data.get("errors", [])],
        )
