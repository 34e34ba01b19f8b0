"""
Execution Ledger
~~~~~~~~~~~~~~~~

Audit trail of rollback executions, indexed by plan, environment and
status. Executions are never deleted.

The executor is the only writer: it calls ``save()`` after every state
change, which replaces the stored copy and writes through to the
backend. Readers always receive deep copies, so a caller can never
observe a half-applied update or mutate the ledger's state.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections import defaultdict

from plyra_rollback.core.enums import Environment, ErrorSeverity, ExecutionStatus
from plyra_rollback.core.models import Execution, ExecutionError, utcnow
from plyra_rollback.exceptions import NotFoundError
from plyra_rollback.store.backends import MemoryBackend, RecordBackend

__all__ = ["ExecutionLedger", "RESTART_MESSAGE"]

logger = logging.getLogger(__name__)

_COLLECTION = "executions"

RESTART_MESSAGE = "interrupted by process restart"


class ExecutionLedger:
    """
    Indexed store of executions.

    On construction, executions loaded from the backend that were still
    pending or in progress are marked failed: the process that ran them
    is gone.
    """

    def __init__(self, backend: RecordBackend | None = None) -> None:
        self._backend = backend or MemoryBackend()
        self._executions: dict[str, Execution] = {}
        self._by_plan: dict[str, set[str]] = defaultdict(set)
        self._by_environment: dict[Environment, set[str]] = defaultdict(set)
        self._by_status: dict[ExecutionStatus, set[str]] = defaultdict(set)
        self._sync_lock = threading.RLock()
        self._load()

    def _load(self) -> None:
        recovered = 0
        for data in self._backend.all(_COLLECTION):
            try:
                execution = Execution.from_dict(data)
            except (KeyError, ValueError) as exc:
                logger.error("Skipping unreadable execution record: %s", exc)
                continue
            if execution.status.is_active():
                now = utcnow()
                execution.errors.append(
                    ExecutionError(
                        step_id=execution.current_step_id or "",
                        message=RESTART_MESSAGE,
                        severity=ErrorSeverity.CRITICAL,
                        recovered=False,
                        timestamp=now,
                    )
                )
                execution.status = ExecutionStatus.FAILED
                execution.end_time = now
                execution.current_step_id = None
                self._backend.put(_COLLECTION, execution.id, execution.to_dict())
                recovered += 1
            self._index(execution)
        if recovered:
            logger.warning(
                "Marked %d interrupted executions as failed after restart", recovered
            )

    def _index(self, execution: Execution) -> None:
        previous = self._executions.get(execution.id)
        if previous is not None:
            self._by_status[previous.status].discard(execution.id)
        self._executions[execution.id] = execution
        self._by_plan[execution.plan_id].add(execution.id)
        self._by_environment[execution.environment].add(execution.id)
        self._by_status[execution.status].add(execution.id)

    def save(self, execution: Execution) -> None:
        """Store a snapshot of the execution and write it through."""
        snapshot = copy.deepcopy(execution)
        with self._sync_lock:
            self._backend.put(_COLLECTION, snapshot.id, snapshot.to_dict())
            self._index(snapshot)

    def get(self, execution_id: str) -> Execution:
        """Return a copy of one execution, or raise NotFoundError."""
        with self._sync_lock:
            execution = self._executions.get(execution_id)
            if execution is None:
                raise NotFoundError(resource="Execution", resource_id=execution_id)
            return copy.deepcopy(execution)

    def query(
        self,
        environment: Environment | None = None,
        status: ExecutionStatus | None = None,
        plan_id: str | None = None,
        limit: int | None = None,
    ) -> list[Execution]:
        """
        Return matching executions, newest first.

        Args:
            environment: Only executions targeting this environment.
            status: Only executions in this status.
            plan_id: Only executions of this plan.
            limit: Maximum number of results.
        """
        with self._sync_lock:
            ids = set(self._executions)
            if environment is not None:
                ids &= self._by_environment.get(Environment(environment), set())
            if status is not None:
                ids &= self._by_status.get(ExecutionStatus(status), set())
            if plan_id is not None:
                ids &= self._by_plan.get(plan_id, set())
            matches = [copy.deepcopy(self._executions[i]) for i in ids]

        matches.sort(key=lambda e: e.start_time, reverse=True)
        if limit is not None:
            matches = matches[:limit]
        return matches

    def active_for(self, environment: Environment) -> list[Execution]:
        """Return the pending or in-progress executions in one environment."""
        return [
            e
            for e in self.query(environment=environment)
            if e.status.is_active()
        ]

    def __len__(self) -> int:
        return len(self._executions)
