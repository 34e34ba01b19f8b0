"""
Collaborator Contracts
~~~~~~~~~~~~~~~~~~~~~~

Abstract base classes for the external systems the rollback engine
drives but does not implement: snapshot capture, step execution and
validation checks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from plyra_rollback.core.enums import Environment, PointKind
from plyra_rollback.core.models import RollbackStep, ValidationStep

__all__ = [
    "SnapshotBundle",
    "SnapshotCapture",
    "StepRunner",
    "ValidationRunner",
]


@dataclass
class SnapshotBundle:
    """
    Everything captured for one rollback point.

    The engine never looks inside these values; they are handed back to
    the step runner through the point's ``snapshot_ref``.
    """

    files: list[Any] | None = None
    database: Any = None
    configuration: Any = None
    features: list[Any] | None = None
    environment: Any = None
    captured_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"captured_at": self.captured_at.isoformat()}
        for key in ("files", "database", "configuration", "features", "environment"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


class SnapshotCapture(ABC):
    """
    Captures system state before a risky change.

    Subclasses implement one method per kind of state. ``capture()``
    routes a rollback point kind to the methods it needs.
    """

    @abstractmethod
    def capture_files(self) -> list[Any]:
        """Capture application files."""
        ...

    @abstractmethod
    def capture_database(self) -> Any:
        """Capture database schema, migrations and (optionally) data."""
        ...

    @abstractmethod
    def capture_config(self, environment: Environment) -> Any:
        """Capture configuration for one environment."""
        ...

    @abstractmethod
    def capture_feature_flags(self) -> list[Any]:
        """Capture feature flag states."""
        ...

    @abstractmethod
    def capture_environment(self) -> Any:
        """Capture environment variables, services and resources."""
        ...

    def capture(self, kind: PointKind, environment: Environment) -> SnapshotBundle:
        """
        Capture the state a rollback of ``kind`` will need.

        Args:
            kind: The type of change being protected.
            environment: The target environment.

        Returns:
            A SnapshotBundle with the relevant sections filled in.
        """
        bundle = SnapshotBundle()
        if kind == PointKind.DEPLOYMENT:
            bundle.files = self.capture_files()
            bundle.configuration = self.capture_config(environment)
        elif kind == PointKind.DATABASE:
            bundle.database = self.capture_database()
        elif kind == PointKind.CONFIG:
            bundle.configuration = self.capture_config(environment)
        elif kind == PointKind.FEATURE:
            bundle.features = self.capture_feature_flags()
        elif kind == PointKind.SYSTEM:
            bundle.environment = self.capture_environment()
        return bundle

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


class StepRunner(ABC):
    """
    Executes one rollback step.

    Implementations must honor ``deadline`` (a ``time.monotonic()`` value)
    and return promptly once it passes. The executor additionally bounds
    every call with the step's timeout.
    """

    @abstractmethod
    async def run(self, step: RollbackStep, deadline: float) -> str:
        """
        Run the step.

        Returns:
            Output text to record on the executed step.

        Raises:
            Exception: Any exception counts as a failed attempt.
        """
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


class ValidationRunner(ABC):
    """Performs one pre- or post-rollback validation check."""

    @abstractmethod
    async def check(self, step: ValidationStep, deadline: float) -> Any:
        """
        Run the check and return the actual result.

        The executor compares the result with ``step.expected_result``.

        Raises:
            Exception: Any exception counts as a failed check.
        """
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
