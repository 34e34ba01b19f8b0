"""Tests for structured exception messages."""

from plyra_rollback.exceptions import (
    ApprovalRejectedError,
    ApprovalRequiredError,
    ConflictError,
    NotFoundError,
    RollbackEngineError,
    StepExecutionFailure,
    ValidationFailure,
)


class TestStructuredErrors:
    """Tests for the what/policy/how-to-fix error format."""

    def test_approval_required_message(self):
        exc = ApprovalRequiredError(
            "Plan PLAN_1 requires approval",
            plan_id="PLAN_1",
            reasons=["environment is production", "kind is database"],
        )
        text = str(exc)
        assert "ApprovalRequiredError: Plan PLAN_1 requires approval" in text
        assert "What happened:" in text
        assert "environment is production; kind is database" in text
        assert "Policy triggered:" in text
        assert "approval_policy" in text
        assert "approved_by=<approver>" in text

    def test_rejected_uses_own_title(self):
        exc = ApprovalRejectedError(
            "no", plan_id="PLAN_1", policy_triggered="approval.allowed_approvers"
        )
        assert str(exc).strip().startswith("ApprovalRejectedError: no")

    def test_conflict_message(self):
        exc = ConflictError(environment="production", active_execution_id="EXEC_7")
        text = str(exc)
        assert 'Execution "EXEC_7" still holds the lease' in text
        assert 'cancel_execution("EXEC_7")' in text
        assert exc.policy_triggered == "environment_lease"

    def test_not_found_message(self):
        exc = NotFoundError(resource="Rollback plan", resource_id="PLAN_9")
        assert str(exc) == "Rollback plan 'PLAN_9' not found"
        assert exc.resource_id == "PLAN_9"

    def test_hierarchy(self):
        for exc_type in (
            ApprovalRequiredError,
            ConflictError,
            NotFoundError,
            StepExecutionFailure,
            ValidationFailure,
        ):
            assert issubclass(exc_type, RollbackEngineError)

    def test_execution_failure_step_id(self):
        exc = StepExecutionFailure("boom", step_id="stop-services-RP_1")
        assert exc.step_id == "stop-services-RP_1"
        assert exc.details == {}
