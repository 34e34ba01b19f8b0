"""
Approval Gate
~~~~~~~~~~~~~

Decides which rollback plans need a named approver and enforces that
sign-off before an execution is created.
"""

from __future__ import annotations

import logging
from typing import Any

from plyra_rollback.config.schema import ApprovalConfig
from plyra_rollback.core.models import RollbackPlan, RollbackPoint
from plyra_rollback.exceptions import ApprovalRejectedError, ApprovalRequiredError

__all__ = ["ApprovalPolicy", "ApprovalGate"]

logger = logging.getLogger(__name__)


class ApprovalPolicy:
    """
    The rule that marks a rollback point as needing approval.

    A point needs approval when its environment, its kind or the severity
    of any of its risks appears in the configured lists.
    """

    def __init__(self, config: ApprovalConfig | None = None) -> None:
        self._config = config or ApprovalConfig()

    @property
    def config(self) -> ApprovalConfig:
        return self._config

    def reasons(self, point: RollbackPoint) -> list[str]:
        """Return every matching rule, described for humans."""
        reasons: list[str] = []
        if point.environment in self._config.required_environments:
            reasons.append(f"environment is {point.environment.value}")
        if point.kind in self._config.required_kinds:
            reasons.append(f"kind is {point.kind.value}")
        severities = sorted(
            {r.severity for r in point.risks if r.severity in self._config.required_severities},
            key=lambda s: s.rank(),
        )
        for severity in severities:
            reasons.append(f"a {severity.value} risk is attached")
        return reasons

    def requires_approval(self, point: RollbackPoint) -> bool:
        return bool(self.reasons(point))


class ApprovalGate:
    """
    Enforces sign-off at execution time.

    Approval is required when the plan was built with ``approval_required``
    or when the policy, recomputed against the point, says so. A
    configured approver allow-list and the distinct-approver rule are
    checked only when approval is required.
    """

    def __init__(self, policy: ApprovalPolicy) -> None:
        self._policy = policy
        self._approval_log: list[dict[str, Any]] = []

    @property
    def approval_log(self) -> list[dict[str, Any]]:
        return list(self._approval_log)

    def check(
        self,
        plan: RollbackPlan,
        point: RollbackPoint,
        executed_by: str,
        approved_by: str | None,
    ) -> None:
        """
        Raise if the plan may not run with the given approver.

        Raises:
            ApprovalRequiredError: Approval is required and none was given.
            ApprovalRejectedError: The approver is not acceptable.
        """
        reasons = self._policy.reasons(point)
        if plan.approval_required and not reasons:
            reasons = ["the plan is marked approval_required"]
        if not reasons:
            return

        config = self._policy.config
        if not approved_by:
            logger.info(
                "ApprovalGate: plan %s refused, approval required (%s)",
                plan.id,
                "; ".join(reasons),
            )
            raise ApprovalRequiredError(
                f"Plan {plan.id} requires approval",
                plan_id=plan.id,
                reasons=reasons,
            )

        if config.allowed_approvers and approved_by not in config.allowed_approvers:
            raise ApprovalRejectedError(
                f"{approved_by!r} may not approve plan {plan.id}",
                plan_id=plan.id,
                reasons=reasons,
                what_happened=(
                    f'"{approved_by}" is not in the approver allow-list, so '
                    f'plan "{plan.id}" was not started.'
                ),
                policy_triggered="approval.allowed_approvers",
                how_to_fix=(
                    "1. Ask one of the configured approvers to sign off\n"
                    "2. Or add the approver to approval.allowed_approvers"
                ),
            )

        if config.require_distinct_approver and approved_by == executed_by:
            raise ApprovalRejectedError(
                f"{executed_by!r} may not approve their own rollback",
                plan_id=plan.id,
                reasons=reasons,
                what_happened=(
                    f'"{executed_by}" both requested and approved plan '
                    f'"{plan.id}".'
                ),
                policy_triggered="approval.require_distinct_approver",
                how_to_fix=(
                    "1. Have a second operator approve the plan\n"
                    "2. Or set approval.require_distinct_approver: false"
                ),
            )

        self._approval_log.append(
            {"plan_id": plan.id, "approved_by": approved_by, "reasons": reasons}
        )
        logger.info("ApprovalGate: plan %s approved by %s", plan.id, approved_by)
