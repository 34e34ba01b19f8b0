"""Tests for the approval policy and gate."""

import pytest

from plyra_rollback.config.schema import ApprovalConfig
from plyra_rollback.core.enums import Environment, PointKind, RiskKind, Severity
from plyra_rollback.core.models import Risk, RollbackPlan, RollbackPoint
from plyra_rollback.exceptions import ApprovalRejectedError, ApprovalRequiredError
from plyra_rollback.planning.approval import ApprovalGate, ApprovalPolicy


def _point(kind=PointKind.CONFIG, environment=Environment.STAGING, risks=()):
    return RollbackPoint(
        id="RP_1",
        kind=kind,
        description="test",
        version="v1",
        environment=environment,
        created_by="alice",
        risks=tuple(risks),
    )


def _plan(point, approval_required=False):
    return RollbackPlan(
        id="PLAN_1",
        point_id=point.id,
        environment=point.environment,
        steps=(),
        approval_required=approval_required,
    )


class TestApprovalPolicy:
    """Tests for ApprovalPolicy.reasons."""

    def test_production_requires_approval(self):
        policy = ApprovalPolicy()
        assert policy.reasons(_point(environment=Environment.PRODUCTION)) == [
            "environment is production"
        ]

    def test_database_requires_approval(self):
        assert ApprovalPolicy().requires_approval(_point(kind=PointKind.DATABASE))

    def test_critical_risk_requires_approval(self):
        risk = Risk(kind=RiskKind.DATA_LOSS, severity=Severity.CRITICAL, probability=10)
        reasons = ApprovalPolicy().reasons(_point(risks=[risk]))
        assert reasons == ["a critical risk is attached"]

    def test_staging_config_needs_nothing(self):
        assert not ApprovalPolicy().requires_approval(_point())

    def test_custom_policy(self):
        policy = ApprovalPolicy(
            ApprovalConfig(
                required_environments=["staging"],
                required_kinds=[],
                required_severities=[],
            )
        )
        assert policy.requires_approval(_point())
        assert not policy.requires_approval(_point(environment=Environment.DEVELOPMENT))


class TestApprovalGate:
    """Tests for ApprovalGate.check."""

    def test_missing_approver_raises(self):
        point = _point(environment=Environment.PRODUCTION)
        gate = ApprovalGate(ApprovalPolicy())
        with pytest.raises(ApprovalRequiredError) as exc_info:
            gate.check(_plan(point, True), point, "alice", None)
        assert exc_info.value.plan_id == "PLAN_1"
        assert "environment is production" in exc_info.value.reasons
        assert gate.approval_log == []

    def test_approver_given(self):
        point = _point(environment=Environment.PRODUCTION)
        gate = ApprovalGate(ApprovalPolicy())
        gate.check(_plan(point, True), point, "alice", "bob")
        assert gate.approval_log[0]["approved_by"] == "bob"

    def test_no_approval_needed(self):
        point = _point()
        gate = ApprovalGate(ApprovalPolicy())
        gate.check(_plan(point), point, "alice", None)
        assert gate.approval_log == []

    def test_plan_flag_alone_requires_approval(self):
        point = _point()
        gate = ApprovalGate(ApprovalPolicy())
        with pytest.raises(ApprovalRequiredError) as exc_info:
            gate.check(_plan(point, approval_required=True), point, "alice", "")
        assert exc_info.value.reasons == ["the plan is marked approval_required"]

    def test_allow_list(self):
        point = _point(kind=PointKind.DATABASE)
        gate = ApprovalGate(ApprovalPolicy(ApprovalConfig(allowed_approvers=["carol"])))
        with pytest.raises(ApprovalRejectedError) as exc_info:
            gate.check(_plan(point, True), point, "alice", "bob")
        assert exc_info.value.policy_triggered == "approval.allowed_approvers"
        gate.check(_plan(point, True), point, "alice", "carol")

    def test_distinct_approver(self):
        point = _point(kind=PointKind.DATABASE)
        gate = ApprovalGate(
            ApprovalPolicy(ApprovalConfig(require_distinct_approver=True))
        )
        with pytest.raises(ApprovalRejectedError) as exc_info:
            gate.check(_plan(point, True), point, "alice", "alice")
        assert exc_info.value.policy_triggered == "approval.require_distinct_approver"

    def test_rejected_is_an_approval_required_error(self):
        assert issubclass(ApprovalRejectedError, ApprovalRequiredError)
