"""
Rollback Engine Exceptions
~~~~~~~~~~~~~~~~~~~~~~~~~~

All custom exception classes for plyra-rollback, organized by domain.
Every distinct failure mode has its own exception type.

**Structured Error Messages**

Exceptions a caller is expected to act on (approval and conflict
rejections) provide three structured fields:
- ``what_happened``: Clear plain-English description
- ``policy_triggered``: Name of the rule that rejected the call
- ``how_to_fix``: Concrete, actionable steps
"""

__all__ = [
    # Base
    "RollbackEngineError",
    # Config
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigValidationError",
    # Lookup / state
    "NotFoundError",
    "InvalidStateError",
    # Approval / scheduling
    "ApprovalRequiredError",
    "ApprovalRejectedError",
    "ConflictError",
    # Creation
    "SnapshotCaptureError",
    "RetentionError",
    "PlanError",
    # Execution
    "ExecutionFailure",
    "ValidationFailure",
    "StepExecutionFailure",
]


# ── Formatting Helper ────────────────────────────────────────────────────────

_SEPARATOR = "─" * 52


def _format_structured_error(
    title: str,
    what_happened: str,
    policy_triggered: str,
    how_to_fix: str,
) -> str:
    """Build a rich, structured error message."""
    lines = [
        f"  {title}",
        f"  {_SEPARATOR}",
        "  What happened:",
        *[f"    {line}" for line in what_happened.strip().splitlines()],
        "",
        "  Policy triggered:",
        f"    {policy_triggered}",
        "",
        "  How to fix:",
        *[f"    {line}" for line in how_to_fix.strip().splitlines()],
    ]
    return "\n".join(lines)


# ── Base Exception ───────────────────────────────────────────────────────────


class RollbackEngineError(Exception):
    """Base exception for all plyra-rollback errors."""

    def __init__(self, message: str = "", details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


# ── Config Exceptions ────────────────────────────────────────────────────────


class ConfigError(RollbackEngineError):
    """Base exception for configuration-related errors."""


class ConfigFileNotFoundError(ConfigError):
    """Raised when a configuration file cannot be found at the specified path."""


class ConfigValidationError(ConfigError):
    """Raised when configuration values fail validation."""


# ── Lookup / State Exceptions ────────────────────────────────────────────────


class NotFoundError(RollbackEngineError):
    """Raised when a rollback point, plan or execution id is unknown."""

    def __init__(
        self,
        message: str = "",
        resource: str = "",
        resource_id: str = "",
        details: dict | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(message or f"{resource} {resource_id!r} not found", details)


class InvalidStateError(RollbackEngineError):
    """Raised when an operation is not valid in the record's current state."""


# ── Approval / Scheduling Exceptions ─────────────────────────────────────────


class ApprovalRequiredError(RollbackEngineError):
    """
    Raised when a plan needs a named approver and none was supplied.

    Structured fields:
    - ``what_happened``: which plan was refused and why it needs sign-off
    - ``policy_triggered``: the approval rule(s) that matched
    - ``how_to_fix``: actionable remediation steps
    """

    def __init__(
        self,
        message: str = "Approval required",
        plan_id: str = "",
        reasons: list[str] | None = None,
        details: dict | None = None,
        what_happened: str = "",
        policy_triggered: str = "approval_policy",
        how_to_fix: str = "",
    ) -> None:
        self.plan_id = plan_id
        self.reasons = reasons or []
        reason_text = "; ".join(self.reasons) or "the plan is marked approval_required"
        self.what_happened = what_happened or (
            f'Rollback plan "{plan_id}" needs sign-off before it can run '
            f"({reason_text}). No execution was created."
        )
        self.policy_triggered = policy_triggered
        self.how_to_fix = how_to_fix or (
            "1. Have an authorized operator review the plan's risks and steps\n"
            "2. Call execute_rollback again with approved_by=<approver>\n"
            "3. Or relax the rule in your config:\n"
            "   approval:\n"
            "     required_environments: []"
        )
        super().__init__(message, details)

    def __str__(self) -> str:
        return _format_structured_error(
            title=f"{type(self).__name__}: {self.args[0]}",
            what_happened=self.what_happened,
            policy_triggered=self.policy_triggered,
            how_to_fix=self.how_to_fix,
        )


class ApprovalRejectedError(ApprovalRequiredError):
    """Raised when the supplied approver is not acceptable for the plan."""


class ConflictError(RollbackEngineError):
    """
    Raised when another execution holds the environment lease.

    Structured fields:
    - ``what_happened``: which environment is busy and with what
    - ``policy_triggered``: the environment lease
    - ``how_to_fix``: how to proceed
    """

    def __init__(
        self,
        message: str = "Environment busy",
        environment: str = "",
        active_execution_id: str = "",
        details: dict | None = None,
        what_happened: str = "",
        policy_triggered: str = "environment_lease",
        how_to_fix: str = "",
    ) -> None:
        self.environment = environment
        self.active_execution_id = active_execution_id
        self.what_happened = what_happened or (
            f'Execution "{active_execution_id}" still holds the lease on '
            f'environment "{environment}". A cancelled execution keeps it '
            f"until its in-flight step returns."
        )
        self.policy_triggered = policy_triggered
        self.how_to_fix = how_to_fix or (
            f'1. Await wait_for_execution("{active_execution_id}")\n'
            f'2. If it is still running, cancel_execution("{active_execution_id}")\n'
            f"3. Then retry execute_rollback"
        )
        super().__init__(message, details)

    def __str__(self) -> str:
        return _format_structured_error(
            title=f"ConflictError: {self.args[0]}",
            what_happened=self.what_happened,
            policy_triggered=self.policy_triggered,
            how_to_fix=self.how_to_fix,
        )


# ── Creation Exceptions ──────────────────────────────────────────────────────


class SnapshotCaptureError(RollbackEngineError):
    """Raised when snapshot capture fails; no rollback point is created."""


class RetentionError(RollbackEngineError):
    """Raised when an environment has no room left for a new rollback point."""


class PlanError(RollbackEngineError):
    """Raised when a rollback plan cannot be built consistently."""


# ── Execution Exceptions ─────────────────────────────────────────────────────


class ExecutionFailure(RollbackEngineError):
    """Base exception for failures that abort a running execution."""

    def __init__(
        self,
        message: str = "",
        step_id: str = "",
        details: dict | None = None,
    ) -> None:
        self.step_id = step_id
        super().__init__(message, details)


class ValidationFailure(ExecutionFailure):
    """Raised when a critical pre- or post-validation check fails."""


class StepExecutionFailure(ExecutionFailure):
    """Raised when a critical step exhausts its retries (error or timeout)."""
