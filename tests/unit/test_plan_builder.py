"""Tests for the plan builder."""

import pytest

from plyra_rollback.config.schema import ValidationConfig
from plyra_rollback.core.enums import (
    Environment,
    PointKind,
    StepKind,
    ValidationKind,
)
from plyra_rollback.core.models import RollbackPoint, RollbackStep
from plyra_rollback.exceptions import PlanError
from plyra_rollback.planning.plan_builder import PlanBuilder, verify_step_order
from plyra_rollback.planning.risk_assessor import RiskAssessor


def _point(kind, environment=Environment.STAGING, point_id="RP_42"):
    return RollbackPoint(
        id=point_id,
        kind=kind,
        description="test",
        version="v1",
        environment=environment,
        created_by="alice",
        risks=tuple(RiskAssessor().assess(kind, environment)),
    )


def _slugs(plan):
    return [s.id.removesuffix(f"-{plan.point_id}") for s in plan.steps]


class TestStepSequences:
    """Tests for the step sequence generated per point kind."""

    def test_deployment_steps(self):
        plan = PlanBuilder().build(_point(PointKind.DEPLOYMENT))
        assert _slugs(plan) == [
            "validate-pre",
            "stop-services",
            "rollback-files",
            "start-services",
            "validate-post",
        ]
        assert [s.order for s in plan.steps] == [1, 2, 3, 4, 5]

    @pytest.mark.parametrize(
        ("kind", "middle"),
        [
            (PointKind.DATABASE, "rollback-database"),
            (PointKind.CONFIG, "rollback-config"),
            (PointKind.FEATURE, "rollback-features"),
            (PointKind.SYSTEM, "rollback-environment"),
        ],
    )
    def test_single_middle_step(self, kind, middle):
        plan = PlanBuilder().build(_point(kind))
        assert _slugs(plan) == ["validate-pre", middle, "validate-post"]
        assert plan.steps[-1].depends_on == (f"{middle}-RP_42",)

    def test_database_step_is_manual_and_critical(self):
        plan = PlanBuilder().build(_point(PointKind.DATABASE))
        step = plan.steps[1]
        assert step.kind == StepKind.DATABASE
        assert step.automated is False
        assert step.critical is True
        assert step.timeout_seconds == 600

    def test_file_restore_is_non_critical(self):
        plan = PlanBuilder().build(_point(PointKind.DEPLOYMENT))
        files = plan.steps[2]
        assert files.critical is False
        assert files.max_retries == 1
        assert files.depends_on == ("stop-services-RP_42",)

    def test_dependencies_precede_dependents(self):
        for kind in PointKind:
            plan = PlanBuilder().build(_point(kind))
            verify_step_order(plan.steps)

    def test_estimated_duration(self):
        plan = PlanBuilder().build(_point(PointKind.CONFIG))
        assert plan.estimated_duration_minutes == pytest.approx((60 + 60 + 180) / 60)


class TestPlanAttributes:
    """Tests for plan-level fields."""

    def test_risks_and_environment_copied(self):
        point = _point(PointKind.DATABASE, Environment.PRODUCTION)
        plan = PlanBuilder().build(point)
        assert plan.point_id == point.id
        assert plan.environment == Environment.PRODUCTION
        assert plan.risks == point.risks
        assert plan.approval_required is True

    def test_staging_config_needs_no_approval(self):
        plan = PlanBuilder().build(_point(PointKind.CONFIG))
        assert plan.approval_required is False

    def test_build_is_deterministic_apart_from_ids(self):
        builder = PlanBuilder()
        point = _point(PointKind.DEPLOYMENT)
        first, second = builder.build(point), builder.build(point)
        assert first.id != second.id
        assert first.steps == second.steps
        assert first.pre_validation == second.pre_validation
        assert first.post_validation == second.post_validation

    def test_validation_checks(self):
        plan = PlanBuilder(
            validation=ValidationConfig(health_check_url="http://svc:9000/healthz")
        ).build(_point(PointKind.CONFIG))
        assert [c.id for c in plan.pre_validation] == ["health-check-pre"]
        assert plan.pre_validation[0].check == "curl -f http://svc:9000/healthz"
        post = {c.id: c for c in plan.post_validation}
        assert post["health-check-post"].critical is True
        assert post["functional-test-post"].kind == ValidationKind.FUNCTIONAL
        assert post["functional-test-post"].critical is False
        assert plan.total_units == 1 + 3 + 2

    def test_smoke_test_can_be_disabled(self):
        plan = PlanBuilder(
            validation=ValidationConfig(include_smoke_test=False)
        ).build(_point(PointKind.CONFIG))
        assert [c.id for c in plan.post_validation] == ["health-check-post"]


class TestVerifyStepOrder:
    """Tests for dependency checking."""

    def _step(self, step_id, order, depends_on=()):
        return RollbackStep(
            id=step_id,
            order=order,
            kind=StepKind.SERVICE,
            action="start",
            description="",
            depends_on=depends_on,
        )

    def test_forward_reference(self):
        steps = [self._step("a", 1, ("b",)), self._step("b", 2)]
        with pytest.raises(PlanError, match="ordered before"):
            verify_step_order(steps)

    def test_unknown_dependency(self):
        with pytest.raises(PlanError, match="unknown step"):
            verify_step_order([self._step("a", 1, ("ghost",))])

    def test_duplicate_ids(self):
        with pytest.raises(PlanError, match="Duplicate"):
            verify_step_order([self._step("a", 1), self._step("a", 2)])

    def test_valid_chain(self):
        verify_step_order([self._step("a", 1), self._step("b", 2, ("a",))])
