"""
Simulated Collaborators
~~~~~~~~~~~~~~~~~~~~~~~

Stand-ins used when no real snapshot/step/validation integration is
configured. They log what they would do and report success, so the
engine can be exercised end to end without touching real systems.
"""

from __future__ import annotations

import logging
from typing import Any

from plyra_rollback.collaborators.base import (
    SnapshotCapture,
    StepRunner,
    ValidationRunner,
)
from plyra_rollback.core.enums import Environment
from plyra_rollback.core.models import RollbackStep, ValidationStep

__all__ = [
    "SimulatedSnapshotCapture",
    "SimulatedStepRunner",
    "SimulatedValidationRunner",
]

logger = logging.getLogger(__name__)


class SimulatedSnapshotCapture(SnapshotCapture):
    """Records what would have been captured, without reading anything."""

    def capture_files(self) -> list[Any]:
        logger.info("SimulatedSnapshotCapture: skipping file capture")
        return []

    def capture_database(self) -> Any:
        logger.info("SimulatedSnapshotCapture: skipping database capture")
        return {"simulated": True}

    def capture_config(self, environment: Environment) -> Any:
        logger.info(
            "SimulatedSnapshotCapture: skipping config capture for %s",
            environment.value,
        )
        return {"simulated": True, "environment": environment.value}

    def capture_feature_flags(self) -> list[Any]:
        logger.info("SimulatedSnapshotCapture: skipping feature flag capture")
        return []

    def capture_environment(self) -> Any:
        logger.info("SimulatedSnapshotCapture: skipping environment capture")
        return {"simulated": True}


class SimulatedStepRunner(StepRunner):
    """Logs each step and reports it as completed."""

    async def run(self, step: RollbackStep, deadline: float) -> str:
        logger.info(
            "SimulatedStepRunner: %s %s step %s (%s)",
            step.action,
            step.kind.value,
            step.id,
            step.command or "no command",
        )
        return f"Step {step.id} completed successfully"


class SimulatedValidationRunner(ValidationRunner):
    """Logs each check and returns its expected result, so every check passes."""

    async def check(self, step: ValidationStep, deadline: float) -> Any:
        logger.info("SimulatedValidationRunner: %s (%s)", step.description, step.check)
        return step.expected_result
