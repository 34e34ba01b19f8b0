"""Risk assessment, approval policy and rollback plan construction."""

from plyra_rollback.planning.approval import ApprovalGate, ApprovalPolicy
from plyra_rollback.planning.plan_builder import PlanBuilder, verify_step_order
from plyra_rollback.planning.risk_assessor import (
    ConfiguredRiskRule,
    DatabaseDataLossRule,
    ProductionDowntimeRule,
    RiskAssessor,
    RiskRule,
)

__all__ = [
    "ApprovalGate",
    "ApprovalPolicy",
    "PlanBuilder",
    "verify_step_order",
    "RiskAssessor",
    "RiskRule",
    "ProductionDowntimeRule",
    "DatabaseDataLossRule",
    "ConfiguredRiskRule",
]
