"""
Risk Assessor
~~~~~~~~~~~~~

Deterministic rule table that maps a rollback point's kind and target
environment to the risks of rolling it back. Pure: no I/O, no clock.

Built-in rules:
- production environment ⇒ high-severity downtime risk
- database kind ⇒ critical data-loss risk

Further rules come from configuration (``risk_rules:``) or ``add_rule()``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable

from plyra_rollback.config.schema import RiskRuleConfig
from plyra_rollback.core.enums import Environment, PointKind, RiskKind, Severity
from plyra_rollback.core.models import Risk

__all__ = [
    "RiskRule",
    "ProductionDowntimeRule",
    "DatabaseDataLossRule",
    "ConfiguredRiskRule",
    "RiskAssessor",
]

logger = logging.getLogger(__name__)


class RiskRule(ABC):
    """
    One entry of the risk table.

    Subclasses must implement:
        - name: A unique string identifier.
        - assess(): Return the risks this rule attaches, possibly none.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this rule."""
        ...

    @abstractmethod
    def assess(self, kind: PointKind, environment: Environment) -> list[Risk]:
        """
        Assess one (kind, environment) pair.

        Args:
            kind: The rollback point kind.
            environment: The target environment.

        Returns:
            Zero or more risks.
        """
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class ProductionDowntimeRule(RiskRule):
    """Any rollback in production risks downtime."""

    @property
    def name(self) -> str:
        return "production_downtime"

    def assess(self, kind: PointKind, environment: Environment) -> list[Risk]:
        if environment != Environment.PRODUCTION:
            return []
        return [
            Risk(
                kind=RiskKind.DOWNTIME,
                severity=Severity.HIGH,
                probability=80,
                description="Production downtime during rollback",
                mitigation="Use blue-green deployment strategy",
            )
        ]


class DatabaseDataLossRule(RiskRule):
    """Rolling back a database can lose data written since the snapshot."""

    @property
    def name(self) -> str:
        return "database_data_loss"

    def assess(self, kind: PointKind, environment: Environment) -> list[Risk]:
        if kind != PointKind.DATABASE:
            return []
        return [
            Risk(
                kind=RiskKind.DATA_LOSS,
                severity=Severity.CRITICAL,
                probability=30,
                description="Potential data loss during database rollback",
                mitigation="Create full backup before rollback",
            )
        ]


class ConfiguredRiskRule(RiskRule):
    """A rule declared in the ``risk_rules`` section of the configuration."""

    def __init__(self, config: RiskRuleConfig) -> None:
        self._name = config.name
        self._kinds = set(config.kinds)
        self._environments = set(config.environments)
        self._risk = Risk(
            kind=config.risk.kind,
            severity=config.risk.severity,
            probability=config.risk.probability,
            description=config.risk.description,
            mitigation=config.risk.mitigation,
        )

    @property
    def name(self) -> str:
        return self._name

    def _matches(self, kind: PointKind, environment: Environment) -> bool:
        kind_ok = "*" in self._kinds or kind.value in self._kinds
        env_ok = "*" in self._environments or environment.value in self._environments
        return kind_ok and env_ok

    def assess(self, kind: PointKind, environment: Environment) -> list[Risk]:
        if not self._matches(kind, environment):
            return []
        return [self._risk]


class RiskAssessor:
    """
    Evaluates every registered rule in registration order.

    The same (kind, environment) pair always yields the same list.

    Args:
        rules: Extra rules appended after the built-in ones.
        include_builtin: Register the production and database rules.
    """

    def __init__(
        self,
        rules: Iterable[RiskRule] | None = None,
        include_builtin: bool = True,
    ) -> None:
        self._rules: list[RiskRule] = []
        if include_builtin:
            self._rules.extend([ProductionDowntimeRule(), DatabaseDataLossRule()])
        for rule in rules or ():
            self.add_rule(rule)

    @classmethod
    def from_config(cls, rule_configs: Iterable[RiskRuleConfig]) -> RiskAssessor:
        """Build an assessor with the built-in rules plus configured ones."""
        return cls(rules=[ConfiguredRiskRule(rc) for rc in rule_configs])

    @property
    def rules(self) -> list[RiskRule]:
        return list(self._rules)

    def add_rule(self, rule: RiskRule) -> None:
        """Register an additional rule. Duplicate names are rejected."""
        if any(r.name == rule.name for r in self._rules):
            raise ValueError(f"Risk rule {rule.name!r} is already registered")
        self._rules.append(rule)
        logger.debug("Registered risk rule %s", rule.name)

    def assess(self, kind: PointKind, environment: Environment) -> list[Risk]:
        """
        Return every risk attached by the registered rules.

        Args:
            kind: The rollback point kind.
            environment: The target environment.

        Returns:
            Risks in rule-registration order.
        """
        risks: list[Risk] = []
        for rule in self._rules:
            risks.extend(rule.assess(kind, environment))
        return risks
