"""
Plan Store
~~~~~~~~~~

Registry of built rollback plans. Plans are frozen, so readers share
the stored instances.
"""

from __future__ import annotations

import logging
import threading

from plyra_rollback.core.models import RollbackPlan
from plyra_rollback.exceptions import NotFoundError
from plyra_rollback.store.backends import MemoryBackend, RecordBackend

__all__ = ["PlanStore"]

logger = logging.getLogger(__name__)

_COLLECTION = "plans"


class PlanStore:
    """Keeps every plan by id, written through to the backend."""

    def __init__(self, backend: RecordBackend | None = None) -> None:
        self._backend = backend or MemoryBackend()
        self._plans: dict[str, RollbackPlan] = {}
        self._sync_lock = threading.RLock()
        for data in self._backend.all(_COLLECTION):
            try:
                plan = RollbackPlan.from_dict(data)
            except (KeyError, ValueError) as exc:
                logger.error("Skipping unreadable rollback plan record: %s", exc)
                continue
            self._plans[plan.id] = plan

    def add(self, plan: RollbackPlan) -> None:
        with self._sync_lock:
            self._backend.put(_COLLECTION, plan.id, plan.to_dict())
            self._plans[plan.id] = plan

    def get(self, plan_id: str) -> RollbackPlan:
        """Return a plan by id, or raise NotFoundError."""
        with self._sync_lock:
            plan = self._plans.get(plan_id)
        if plan is None:
            raise NotFoundError(resource="Rollback plan", resource_id=plan_id)
        return plan

    def for_point(self, point_id: str) -> list[RollbackPlan]:
        """Return the plans built from one point, oldest first."""
        with self._sync_lock:
            plans = [p for p in self._plans.values() if p.point_id == point_id]
        return sorted(plans, key=lambda p: p.created_at)

    def __len__(self) -> int:
        return len(self._plans)
