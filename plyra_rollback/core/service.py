"""
RollbackService — Engine Facade
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

The primary entry point for plyra-rollback. Wires the point store, plan
builder, approval gate, executor and ledger together from one
configuration and exposes the public API for creating rollback points,
planning and executing rollbacks, and inspecting the results.

There is no global instance: construct one explicitly with
``RollbackService(config)``, ``RollbackService.from_config(path)`` or
``RollbackService.default()``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from plyra_rollback.collaborators.base import (
    SnapshotCapture,
    StepRunner,
    ValidationRunner,
)
from plyra_rollback.collaborators.simulated import (
    SimulatedSnapshotCapture,
    SimulatedStepRunner,
    SimulatedValidationRunner,
)
from plyra_rollback.config.defaults import DEFAULT_CONFIG
from plyra_rollback.config.loader import load_config, load_config_from_dict
from plyra_rollback.config.schema import EngineConfig
from plyra_rollback.core.enums import (
    Environment,
    ExecutionStatus,
    PointKind,
    PointStatus,
)
from plyra_rollback.core.executor import Executor
from plyra_rollback.core.leases import EnvironmentLeases
from plyra_rollback.core.models import (
    Execution,
    RollbackPlan,
    RollbackPoint,
    new_id,
)
from plyra_rollback.exceptions import (
    ApprovalRequiredError,
    ConflictError,
    InvalidStateError,
)
from plyra_rollback.observability.audit_log import AuditEvent, AuditFilter, AuditLogger
from plyra_rollback.observability.exporters.stdout_exporter import StdoutExporter
from plyra_rollback.observability.exporters.webhook_exporter import WebhookExporter
from plyra_rollback.observability.metrics import EngineMetrics, MetricsCollector
from plyra_rollback.planning.approval import ApprovalGate, ApprovalPolicy
from plyra_rollback.planning.plan_builder import PlanBuilder
from plyra_rollback.planning.risk_assessor import RiskAssessor
from plyra_rollback.store.backends import RecordBackend, create_backend
from plyra_rollback.store.ledger import ExecutionLedger
from plyra_rollback.store.plan_store import PlanStore
from plyra_rollback.store.point_store import RollbackPointStore

__all__ = ["RollbackService"]

logger = logging.getLogger(__name__)


class RollbackService:
    """
    Rollback orchestration engine.

    Args:
        config: Validated engine configuration. Defaults apply when omitted.
        snapshot_capture: Captures state for new rollback points.
        step_runner: Performs rollback steps.
        validation_runner: Performs pre/post validation checks.
        backend: Repository for points, plans and executions. Built from
            ``config.storage`` when omitted.
        risk_assessor: Overrides the assessor built from ``config.risk_rules``.
        clock: Returns the current UTC time for rollback point timestamps
            and retention.

    Collaborators left unset fall back to the simulated implementations,
    which log what they would do and succeed.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        snapshot_capture: SnapshotCapture | None = None,
        step_runner: StepRunner | None = None,
        validation_runner: ValidationRunner | None = None,
        backend: RecordBackend | None = None,
        risk_assessor: RiskAssessor | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or EngineConfig()

        # ── Collaborators ─────────────────────────────────────────
        if snapshot_capture is None:
            logger.warning("No SnapshotCapture configured, using SimulatedSnapshotCapture")
            snapshot_capture = SimulatedSnapshotCapture()
        if step_runner is None:
            logger.warning("No StepRunner configured, using SimulatedStepRunner")
            step_runner = SimulatedStepRunner()
        if validation_runner is None:
            logger.warning(
                "No ValidationRunner configured, using SimulatedValidationRunner"
            )
            validation_runner = SimulatedValidationRunner()

        # ── Subsystems ────────────────────────────────────────────
        self._backend = backend or create_backend(
            self._config.storage.backend, self._config.storage.db_path
        )
        self._audit_log = AuditLogger(
            max_entries=self._config.observability.audit_log_max_entries
        )
        self._metrics = MetricsCollector()
        self._risk_assessor = risk_assessor or RiskAssessor.from_config(
            self._config.risk_rules
        )
        self._approval_policy = ApprovalPolicy(self._config.approval)
        self._approval_gate = ApprovalGate(self._approval_policy)
        self._plan_builder = PlanBuilder(
            approval_policy=self._approval_policy,
            validation=self._config.validation,
        )

        store_kwargs: dict[str, Any] = {}
        if clock is not None:
            store_kwargs["clock"] = clock
        self._points = RollbackPointStore(
            snapshot_capture=snapshot_capture,
            risk_assessor=self._risk_assessor,
            backend=self._backend,
            retention=self._config.retention,
            audit_log=self._audit_log,
            metrics=self._metrics,
            protected_ids=self._protected_point_ids,
            **store_kwargs,
        )
        self._plans = PlanStore(self._backend)
        self._ledger = ExecutionLedger(self._backend)
        self._leases = EnvironmentLeases()
        self._executor = Executor(
            ledger=self._ledger,
            step_runner=step_runner,
            validation_runner=validation_runner,
            audit_log=self._audit_log,
            metrics=self._metrics,
            block_on_validation_failure=self._config.execution.block_on_validation_failure,
            retry_backoff_seconds=self._config.execution.retry_backoff_seconds,
        )
        self._tasks: dict[str, asyncio.Task[Execution]] = {}

        self._setup_exporters()

    # ── Class Methods (constructors) ──────────────────────────────

    @classmethod
    def from_config(cls, path: str, **kwargs: Any) -> RollbackService:
        """
        Create a service from a YAML config file.

        Args:
            path: Path to rollback_config.yaml.
            **kwargs: Collaborators, as accepted by ``__init__``.
        """
        return cls(config=load_config(path), **kwargs)

    @classmethod
    def default(cls, **kwargs: Any) -> RollbackService:
        """
        Create a service with default configuration.

        No config file needed. Useful for quick starts and tests.
        """
        return cls(config=load_config_from_dict(DEFAULT_CONFIG), **kwargs)

    def _setup_exporters(self) -> None:
        """Configure audit log exporters from config."""
        obs = self._config.observability
        for exporter_name in obs.exporters:
            if exporter_name == "stdout":
                self._audit_log.add_exporter(StdoutExporter())
            elif exporter_name == "webhook" and obs.webhook_url:
                self._audit_log.add_exporter(WebhookExporter(obs.webhook_url))

    # ── Properties ─────────────────────────────────────────────────

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def version(self) -> str:
        """Return the plyra-rollback version string."""
        from plyra_rollback import __version__

        return __version__

    @property
    def audit_log(self) -> AuditLogger:
        return self._audit_log

    # ── Rollback Points ───────────────────────────────────────────

    def create_rollback_point(
        self,
        kind: PointKind | str,
        description: str,
        version: str,
        environment: Environment | str,
        created_by: str,
        *,
        dependencies: Iterable[str] = (),
        metadata: dict[str, Any] | None = None,
    ) -> RollbackPoint:
        """
        Capture state and register a rollback point.

        Raises:
            SnapshotCaptureError: Capture failed; nothing was stored.
            RetentionError: The environment is full of points in use.
            NotFoundError: A dependency id is unknown.
        """
        return self._points.create(
            PointKind(kind),
            description,
            version,
            Environment(environment),
            created_by,
            dependencies=dependencies,
            metadata=metadata,
        )

    async def create_rollback_point_async(
        self,
        kind: PointKind | str,
        description: str,
        version: str,
        environment: Environment | str,
        created_by: str,
        *,
        dependencies: Iterable[str] = (),
        metadata: dict[str, Any] | None = None,
    ) -> RollbackPoint:
        """Async version of create_rollback_point."""
        return await self._points.create_async(
            PointKind(kind),
            description,
            version,
            Environment(environment),
            created_by,
            dependencies=dependencies,
            metadata=metadata,
        )

    def get_rollback_point(self, point_id: str) -> RollbackPoint:
        """Return a rollback point, or raise NotFoundError."""
        return self._points.get(point_id)

    def list_rollback_points(
        self, environment: Environment | str | None = None
    ) -> list[RollbackPoint]:
        """Return rollback points, newest first."""
        env = Environment(environment) if environment is not None else None
        return self._points.list(env)

    def cleanup_rollback_points(self, environment: Environment | str) -> list[str]:
        """
        Apply retention to one environment.

        Points used by active executions are kept.

        Returns:
            Ids of the dropped points.
        """
        return self._points.cleanup(Environment(environment))

    def _protected_point_ids(self) -> set[str]:
        # A cancelled execution keeps its lease until its in-flight step returns.
        leased = set(self._leases.held().values())
        return {
            e.point_id
            for e in self._ledger.query()
            if e.status.is_active() or e.id in leased
        }

    # ── Plans ─────────────────────────────────────────────────────

    def create_rollback_plan(self, point_id: str) -> RollbackPlan:
        """
        Build and register the rollback plan for a point.

        Raises:
            NotFoundError: Unknown point id.
            InvalidStateError: The point is no longer active.
            PlanError: The generated plan is inconsistent.
        """
        point = self._active_point(point_id)
        plan = self._plan_builder.build(point)
        self._plans.add(plan)
        self._metrics.increment("plans_created")
        self._audit_log.emit(
            "plan.created",
            plan.id,
            point_id=point.id,
            environment=plan.environment.value,
            steps=[s.id for s in plan.steps],
            approval_required=plan.approval_required,
            estimated_duration_minutes=plan.estimated_duration_minutes,
        )
        return plan

    def get_rollback_plan(self, plan_id: str) -> RollbackPlan:
        """Return a plan, or raise NotFoundError."""
        return self._plans.get(plan_id)

    def _active_point(self, point_id: str) -> RollbackPoint:
        point = self._points.get(point_id)
        if point.status != PointStatus.ACTIVE:
            raise InvalidStateError(
                f"Rollback point {point_id} is {point.status.value}",
                details={"status": point.status.value},
            )
        return point

    # ── Executions ────────────────────────────────────────────────

    async def execute_rollback(
        self,
        plan_id: str,
        executed_by: str,
        approved_by: str | None = None,
    ) -> Execution:
        """
        Start executing a plan in the background.

        Returns immediately with the pending execution. Poll
        ``get_execution`` or await ``wait_for_execution`` for the outcome.

        Raises:
            NotFoundError: Unknown plan, or its point is gone.
            InvalidStateError: The plan's point is no longer active.
            ApprovalRequiredError: Approval is required and missing.
            ApprovalRejectedError: The approver is not acceptable.
            ConflictError: Another execution is active in the environment.
        """
        plan = self._plans.get(plan_id)
        point = self._active_point(plan.point_id)

        try:
            self._approval_gate.check(plan, point, executed_by, approved_by)
        except ApprovalRequiredError as exc:
            self._reject(plan, executed_by, exc.policy_triggered, exc.reasons)
            raise

        execution = Execution(
            id=new_id("EXEC"),
            plan_id=plan.id,
            point_id=point.id,
            environment=plan.environment,
            executed_by=executed_by,
            approved_by=approved_by,
        )
        try:
            self._leases.acquire(plan.environment, execution.id)
        except ConflictError as exc:
            self._reject(plan, executed_by, exc.policy_triggered, [exc.active_execution_id])
            raise

        try:
            task = self._executor.start(execution, plan)
        except BaseException:
            self._leases.release(plan.environment, execution.id)
            raise
        self._tasks[execution.id] = task
        task.add_done_callback(
            lambda t, eid=execution.id, env=plan.environment: self._on_task_done(t, eid, env)
        )
        logger.info(
            "Dispatched execution %s of plan %s in %s (executed_by=%s, approved_by=%s)",
            execution.id,
            plan.id,
            plan.environment.value,
            executed_by,
            approved_by,
        )
        return self._ledger.get(execution.id)

    def _reject(
        self,
        plan: RollbackPlan,
        executed_by: str,
        policy: str,
        reasons: list[str],
    ) -> None:
        self._metrics.increment("executions_rejected")
        self._audit_log.emit(
            "execution.rejected",
            plan.id,
            environment=plan.environment.value,
            executed_by=executed_by,
            policy=policy,
            reasons=reasons,
        )

    def _on_task_done(
        self, task: asyncio.Task[Execution], execution_id: str, environment: Environment
    ) -> None:
        self._leases.release(environment, execution_id)
        self._tasks.pop(execution_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Execution task %s ended with an error: %s", execution_id, exc)

    def cancel_execution(self, execution_id: str) -> Execution:
        """
        Cancel a pending or in-progress execution.

        The step currently running finishes and is recorded; no further
        step starts.

        Raises:
            NotFoundError: Unknown execution id.
            InvalidStateError: The execution already finished.
        """
        return self._executor.cancel(execution_id)

    async def wait_for_execution(
        self, execution_id: str, timeout: float | None = None
    ) -> Execution:
        """
        Wait for an execution's background task, then return its record.

        Raises:
            NotFoundError: Unknown execution id.
            TimeoutError: The task did not finish within ``timeout`` seconds.
        """
        execution = self._ledger.get(execution_id)
        task = self._tasks.get(execution_id)
        if task is not None and not task.done():
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        elif execution.status.is_terminal():
            return execution
        return self._ledger.get(execution_id)

    def get_execution(self, execution_id: str) -> Execution:
        """Return a copy of an execution, or raise NotFoundError."""
        return self._ledger.get(execution_id)

    def list_executions(
        self,
        environment: Environment | str | None = None,
        status: ExecutionStatus | str | None = None,
        limit: int | None = None,
    ) -> list[Execution]:
        """Return executions, newest first."""
        return self._ledger.query(
            environment=Environment(environment) if environment is not None else None,
            status=ExecutionStatus(status) if status is not None else None,
            limit=limit,
        )

    # ── Observability ─────────────────────────────────────────────

    def add_exporter(self, exporter: Any) -> None:
        """
        Add an audit log exporter.

        Args:
            exporter: An object implementing ``export(AuditEvent)``.
        """
        self._audit_log.add_exporter(exporter)

    def get_audit_log(self, filters: AuditFilter | None = None) -> list[AuditEvent]:
        """Query the audit trail."""
        return self._audit_log.query(filters)

    def get_metrics(self) -> EngineMetrics:
        """Return a metrics snapshot."""
        return self._metrics.snapshot()

    async def aclose(self) -> None:
        """Cancel running executions and wait for their tasks to exit."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._backend.close()

    # ── Sidecar ───────────────────────────────────────────────────

    def serve(self, host: str | None = None, port: int | None = None) -> None:
        """
        Start the HTTP sidecar server.

        Args:
            host: Bind address. Defaults to ``sidecar.host``.
            port: Port number. Defaults to ``sidecar.port``.
        """
        try:
            import uvicorn

            from plyra_rollback.sidecar.server import create_app
        except ImportError as exc:
            raise ImportError(
                "Sidecar requires FastAPI and uvicorn. "
                "Install with: pip install plyra-rollback[sidecar]"
            ) from exc

        app = create_app(self)
        uvicorn.run(
            app,
            host=host or self._config.sidecar.host,
            port=port or self._config.sidecar.port,
        )

    def __repr__(self) -> str:
        return (
            f"<RollbackService points={len(self._points)} "
            f"executions={len(self._ledger)} backend={self._backend!r}>"
        )
