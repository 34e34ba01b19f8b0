"""
Plan Builder
~~~~~~~~~~~~

Turns a rollback point into an ordered, dependency-consistent rollback
plan: a pre-validation step, the kind-specific middle steps and a
post-validation step, plus the health and smoke checks run around them.

The output depends only on the point and the builder's configuration,
so two builds of the same point differ only in their ids and timestamps.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from plyra_rollback.config.schema import ValidationConfig
from plyra_rollback.core.enums import PointKind, StepKind, ValidationKind
from plyra_rollback.core.models import (
    RollbackPlan,
    RollbackPoint,
    RollbackStep,
    ValidationStep,
    new_id,
)
from plyra_rollback.exceptions import PlanError
from plyra_rollback.planning.approval import ApprovalPolicy

__all__ = ["PlanBuilder", "StepTemplate", "verify_step_order"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepTemplate:
    """A step before it is bound to a rollback point."""

    slug: str
    kind: StepKind
    action: str
    description: str
    timeout_seconds: float
    max_retries: int
    critical: bool
    automated: bool = True
    command: str | None = None
    depends_on: tuple[str, ...] = ()


# ── Step Table ───────────────────────────────────────────────────────────────

_PRE_VALIDATION = StepTemplate(
    slug="validate-pre",
    kind=StepKind.VALIDATION,
    action="pre_validation",
    description="Pre-rollback system validation",
    timeout_seconds=60,
    max_retries=0,
    critical=True,
)

_POST_VALIDATION = StepTemplate(
    slug="validate-post",
    kind=StepKind.VALIDATION,
    action="post_validation",
    description="Post-rollback system validation",
    timeout_seconds=180,
    max_retries=1,
    critical=True,
)

_MIDDLE_STEPS: dict[PointKind, tuple[StepTemplate, ...]] = {
    PointKind.DEPLOYMENT: (
        StepTemplate(
            slug="stop-services",
            kind=StepKind.SERVICE,
            action="stop",
            description="Stop application services",
            timeout_seconds=120,
            max_retries=2,
            critical=True,
            command="systemctl stop app",
        ),
        StepTemplate(
            slug="rollback-files",
            kind=StepKind.FILE,
            action="restore",
            description="Restore application files",
            timeout_seconds=300,
            max_retries=1,
            critical=False,
            depends_on=("stop-services",),
        ),
        StepTemplate(
            slug="start-services",
            kind=StepKind.SERVICE,
            action="start",
            description="Start application services",
            timeout_seconds=120,
            max_retries=2,
            critical=True,
            command="systemctl start app",
            depends_on=("rollback-files",),
        ),
    ),
    PointKind.DATABASE: (
        StepTemplate(
            slug="rollback-database",
            kind=StepKind.DATABASE,
            action="restore",
            description="Rollback database to previous state",
            timeout_seconds=600,
            max_retries=0,
            critical=True,
            automated=False,
        ),
    ),
    PointKind.CONFIG: (
        StepTemplate(
            slug="rollback-config",
            kind=StepKind.CONFIG,
            action="restore",
            description="Restore configuration settings",
            timeout_seconds=60,
            max_retries=1,
            critical=False,
        ),
    ),
    PointKind.FEATURE: (
        StepTemplate(
            slug="rollback-features",
            kind=StepKind.CONFIG,
            action="restore",
            description="Restore feature flag states",
            timeout_seconds=60,
            max_retries=1,
            critical=False,
        ),
    ),
    PointKind.SYSTEM: (
        StepTemplate(
            slug="rollback-environment",
            kind=StepKind.SERVICE,
            action="restore",
            description="Restore environment variables, services and resources",
            timeout_seconds=300,
            max_retries=1,
            critical=True,
        ),
    ),
}


def verify_step_order(steps: tuple[RollbackStep, ...] | list[RollbackStep]) -> None:
    """
    Check that every dependency appears earlier in the sequence.

    Raises:
        PlanError: On duplicate ids, unknown dependencies or forward
            references.
    """
    seen: set[str] = set()
    all_ids = [s.id for s in steps]
    if len(all_ids) != len(set(all_ids)):
        raise PlanError("Duplicate step ids in rollback plan")
    for step in steps:
        for dep in step.depends_on:
            if dep not in all_ids:
                raise PlanError(
                    f"Step {step.id!r} depends on unknown step {dep!r}",
                    details={"step_id": step.id, "dependency": dep},
                )
            if dep not in seen:
                raise PlanError(
                    f"Step {step.id!r} is ordered before its dependency {dep!r}",
                    details={"step_id": step.id, "dependency": dep},
                )
        seen.add(step.id)


class PlanBuilder:
    """
    Builds rollback plans from rollback points.

    Args:
        approval_policy: Decides ``approval_required`` for each plan.
        validation: Controls the generated health and smoke checks.
    """

    def __init__(
        self,
        approval_policy: ApprovalPolicy | None = None,
        validation: ValidationConfig | None = None,
    ) -> None:
        self._approval_policy = approval_policy or ApprovalPolicy()
        self._validation = validation or ValidationConfig()

    def build(self, point: RollbackPoint) -> RollbackPlan:
        """
        Build the plan for one rollback point.

        Args:
            point: The point to roll back to.

        Returns:
            A frozen RollbackPlan whose steps respect their dependencies.

        Raises:
            PlanError: If the generated steps are inconsistent.
        """
        steps = self._build_steps(point)
        verify_step_order(steps)

        plan = RollbackPlan(
            id=new_id("PLAN"),
            point_id=point.id,
            environment=point.environment,
            steps=steps,
            risks=point.risks,
            approval_required=self._approval_policy.requires_approval(point),
            pre_validation=self._pre_validation(),
            post_validation=self._post_validation(),
            estimated_duration_minutes=sum(s.timeout_seconds for s in steps) / 60,
        )
        logger.info(
            "Built rollback plan %s for point %s (%d steps, approval_required=%s)",
            plan.id,
            point.id,
            len(plan.steps),
            plan.approval_required,
        )
        return plan

    def _build_steps(self, point: RollbackPoint) -> tuple[RollbackStep, ...]:
        middle = _MIDDLE_STEPS.get(point.kind)
        if middle is None:
            raise PlanError(f"No rollback steps defined for kind {point.kind.value!r}")

        post = replace(_POST_VALIDATION, depends_on=(middle[-1].slug,))

        templates = (_PRE_VALIDATION, *middle, post)
        return tuple(
            self._bind(template, point.id, order)
            for order, template in enumerate(templates, start=1)
        )

    @staticmethod
    def _bind(template: StepTemplate, point_id: str, order: int) -> RollbackStep:
        return RollbackStep(
            id=f"{template.slug}-{point_id}",
            order=order,
            kind=template.kind,
            action=template.action,
            description=template.description,
            automated=template.automated,
            timeout_seconds=template.timeout_seconds,
            max_retries=template.max_retries,
            depends_on=tuple(f"{dep}-{point_id}" for dep in template.depends_on),
            critical=template.critical,
            command=template.command,
        )

    def _pre_validation(self) -> tuple[ValidationStep, ...]:
        return (
            ValidationStep(
                id="health-check-pre",
                kind=ValidationKind.HEALTH_CHECK,
                description="System health check before rollback",
                check=f"curl -f {self._validation.health_check_url}",
                expected_result={"status": "ok"},
                timeout_seconds=30,
                critical=True,
            ),
        )

    def _post_validation(self) -> tuple[ValidationStep, ...]:
        checks = [
            ValidationStep(
                id="health-check-post",
                kind=ValidationKind.HEALTH_CHECK,
                description="System health check after rollback",
                check=f"curl -f {self._validation.health_check_url}",
                expected_result={"status": "ok"},
                timeout_seconds=30,
                critical=True,
            )
        ]
        if self._validation.include_smoke_test:
            checks.append(
                ValidationStep(
                    id="functional-test-post",
                    kind=ValidationKind.FUNCTIONAL,
                    description="Basic functionality test",
                    check=self._validation.smoke_test_command,
                    expected_result={"passed": True},
                    timeout_seconds=120,
                    critical=False,
                )
            )
        return tuple(checks)
