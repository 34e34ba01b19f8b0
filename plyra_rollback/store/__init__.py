"""Persistence for rollback points, plans and executions."""

from plyra_rollback.store.backends import (
    MemoryBackend,
    RecordBackend,
    SQLiteBackend,
    create_backend,
)
from plyra_rollback.store.ledger import ExecutionLedger
from plyra_rollback.store.plan_store import PlanStore
from plyra_rollback.store.point_store import RollbackPointStore

__all__ = [
    "RecordBackend",
    "MemoryBackend",
    "SQLiteBackend",
    "create_backend",
    "ExecutionLedger",
    "PlanStore",
    "RollbackPointStore",
]
