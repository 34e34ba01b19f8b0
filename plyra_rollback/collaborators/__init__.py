"""External collaborator contracts and simulated defaults."""

from plyra_rollback.collaborators.base import (
    SnapshotBundle,
    SnapshotCapture,
    StepRunner,
    ValidationRunner,
)
from plyra_rollback.collaborators.simulated import (
    SimulatedSnapshotCapture,
    SimulatedStepRunner,
    SimulatedValidationRunner,
)

__all__ = [
    "SnapshotBundle",
    "SnapshotCapture",
    "StepRunner",
    "ValidationRunner",
    "SimulatedSnapshotCapture",
    "SimulatedStepRunner",
    "SimulatedValidationRunner",
]
