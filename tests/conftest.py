"""Shared fixtures for plyra-rollback tests."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from plyra_rollback import RollbackService
from plyra_rollback.collaborators import (
    SimulatedSnapshotCapture,
    StepRunner,
    ValidationRunner,
)
from plyra_rollback.config.loader import load_config_from_dict
from plyra_rollback.core.enums import Environment
from plyra_rollback.core.models import (
    Execution,
    RollbackPlan,
    RollbackStep,
    ValidationStep,
)


def _matches(step_id: str, keys: Any) -> bool:
    return any(step_id == key or step_id.startswith(f"{key}-") for key in keys)


class ScriptedStepRunner(StepRunner):
    """
    Step runner whose behaviour is scripted per step id (or id prefix).

    Args:
        failures: step -> number of failing attempts; -1 fails forever.
        time_out: steps that always report a timeout.
        hang: steps that sleep until the executor's timeout fires.
        gate: event awaited before every step.
    """

    def __init__(
        self,
        failures: dict[str, int] | None = None,
        time_out: tuple[str, ...] = (),
        hang: tuple[str, ...] = (),
        gate: asyncio.Event | None = None,
    ) -> None:
        self.failures = dict(failures or {})
        self.time_out = time_out
        self.hang = hang
        self.gate = gate
        self.calls: list[str] = []

    async def run(self, step: RollbackStep, deadline: float) -> str:
        self.calls.append(step.id)
        if self.gate is not None:
            await self.gate.wait()
        if _matches(step.id, self.hang):
            await asyncio.sleep(3600)
        if _matches(step.id, self.time_out):
            raise TimeoutError(f"{step.id} passed its deadline")
        for key, remaining in self.failures.items():
            if _matches(step.id, (key,)) and remaining:
                if remaining > 0:
                    self.failures[key] = remaining - 1
                raise RuntimeError(f"{step.id} exploded")
        return f"ran {step.id}"


class ScriptedValidationRunner(ValidationRunner):
    """Returns the expected result unless a check id is overridden."""

    def __init__(self, results: dict[str, Any] | None = None) -> None:
        self.results = dict(results or {})
        self.calls: list[str] = []

    async def check(self, step: ValidationStep, deadline: float) -> Any:
        self.calls.append(step.id)
        for key, value in self.results.items():
            if _matches(step.id, (key,)):
                if isinstance(value, Exception):
                    raise value
                return value
        return step.expected_result


class FailingSnapshotCapture(SimulatedSnapshotCapture):
    """Every capture raises."""

    def capture_config(self, environment: Environment) -> Any:
        raise OSError("config volume not mounted")

    def capture_files(self) -> list[Any]:
        raise OSError("file share unreachable")

    def capture_database(self) -> Any:
        raise OSError("database dump failed")


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_service():
    """Factory for services with a config override dict and collaborators."""

    def _make(config: dict | None = None, **kwargs: Any) -> RollbackService:
        service = RollbackService(load_config_from_dict(config or {}), **kwargs)
        service.audit_log.clear_exporters()
        return service

    return _make


@pytest.fixture
def service(make_service) -> RollbackService:
    """A default service with simulated collaborators and no exporters."""
    return make_service()


def make_step(
    step_id: str,
    order: int = 1,
    *,
    critical: bool = True,
    max_retries: int = 0,
    timeout_seconds: float = 5,
    depends_on: tuple[str, ...] = (),
) -> RollbackStep:
    from plyra_rollback.core.enums import StepKind

    return RollbackStep(
        id=step_id,
        order=order,
        kind=StepKind.SERVICE,
        action="restore",
        description=f"step {step_id}",
        timeout_seconds=timeout_seconds,
        max_retries=max_retries,
        depends_on=depends_on,
        critical=critical,
    )


def make_check(check_id: str, *, critical: bool = True) -> ValidationStep:
    from plyra_rollback.core.enums import ValidationKind

    return ValidationStep(
        id=check_id,
        kind=ValidationKind.HEALTH_CHECK,
        description=f"check {check_id}",
        check="curl -f http://localhost/health",
        expected_result={"status": "ok"},
        timeout_seconds=5,
        critical=critical,
    )


def make_plan(
    steps: list[RollbackStep],
    pre: list[ValidationStep] | None = None,
    post: list[ValidationStep] | None = None,
) -> RollbackPlan:
    return RollbackPlan(
        id="PLAN_test",
        point_id="RP_test",
        environment=Environment.STAGING,
        steps=tuple(steps),
        pre_validation=tuple(pre or ()),
        post_validation=tuple(post or ()),
    )


def make_execution(plan: RollbackPlan, execution_id: str = "EXEC_test") -> Execution:
    return Execution(
        id=execution_id,
        plan_id=plan.id,
        point_id=plan.point_id,
        environment=plan.environment,
        executed_by="alice",
    )
