"""
Rollback Executor
~~~~~~~~~~~~~~~~~

Runs a rollback plan as a state machine:

    pending → in_progress → {completed | failed | cancelled}

Pre-validation checks run first, then the plan's steps in order, then
post-validation checks. Each step attempt is bounded by its timeout and
retried up to ``max_retries`` times. A critical step that exhausts its
retries aborts the execution; a non-critical one is recorded and the
run continues. A failed critical validation check aborts the execution
unless validation blocking is switched off.

Every change to an execution goes through the executor's lock and is
written to the ledger before the lock is released. Cancellation is
cooperative: it takes effect immediately on the record and is honored
at the next step boundary, while a step that is already running still
has its outcome recorded.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Mapping
from typing import Any

from plyra_rollback.collaborators.base import StepRunner, ValidationRunner
from plyra_rollback.core.enums import (
    ErrorSeverity,
    ExecutionStatus,
    StepPhase,
    StepStatus,
)
from plyra_rollback.core.models import (
    ExecutedStep,
    Execution,
    ExecutionError,
    RollbackPlan,
    RollbackStep,
    ValidationStep,
    utcnow,
)
from plyra_rollback.exceptions import (
    ExecutionFailure,
    InvalidStateError,
    StepExecutionFailure,
    ValidationFailure,
)
from plyra_rollback.observability.audit_log import AuditLogger
from plyra_rollback.observability.metrics import MetricsCollector
from plyra_rollback.store.ledger import ExecutionLedger

__all__ = ["Executor", "result_matches"]

logger = logging.getLogger(__name__)


def result_matches(expected: Any, actual: Any) -> bool:
    """
    Compare a validation result with its expected value.

    A mapping matches when every expected key is present in ``actual``
    with a matching value (extra keys are allowed). Anything else must be
    equal.
    """
    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            return False
        return all(
            key in actual and result_matches(value, actual[key])
            for key, value in expected.items()
        )
    return expected == actual


class Executor:
    """
    Drives executions of rollback plans.

    Args:
        ledger: Receives every state change.
        step_runner: Performs rollback steps.
        validation_runner: Performs validation checks.
        audit_log: Receives execution lifecycle events.
        metrics: Counts starts, outcomes, retries and failures.
        block_on_validation_failure: Whether a failed critical validation
            check aborts the execution.
        retry_backoff_seconds: Pause between attempts of the same step.
    """

    def __init__(
        self,
        ledger: ExecutionLedger,
        step_runner: StepRunner,
        validation_runner: ValidationRunner,
        audit_log: AuditLogger | None = None,
        metrics: MetricsCollector | None = None,
        block_on_validation_failure: bool = True,
        retry_backoff_seconds: float = 0.0,
    ) -> None:
        self._ledger = ledger
        self._step_runner = step_runner
        self._validation_runner = validation_runner
        self._audit_log = audit_log
        self._metrics = metrics or MetricsCollector()
        self._block_on_validation_failure = block_on_validation_failure
        self._retry_backoff_seconds = retry_backoff_seconds
        self._live: dict[str, Execution] = {}
        self._sync_lock = threading.RLock()

    # ── Dispatch ─────────────────────────────────────────────────────────────

    def start(self, execution: Execution, plan: RollbackPlan) -> asyncio.Task[Execution]:
        """
        Persist a pending execution and schedule its background task.

        Must be called from a running event loop.
        """
        with self._sync_lock:
            self._live[execution.id] = execution
            self._ledger.save(execution)
        self._metrics.execution_started(execution.environment.value)
        return asyncio.create_task(self.run(execution, plan), name=f"rollback-{execution.id}")

    def is_live(self, execution_id: str) -> bool:
        with self._sync_lock:
            return execution_id in self._live

    async def run(self, execution: Execution, plan: RollbackPlan) -> Execution:
        """Run ``plan`` against ``execution`` until it reaches a terminal state."""
        with self._sync_lock:
            self._live.setdefault(execution.id, execution)
        try:
            if not self._transition(execution, ExecutionStatus.IN_PROGRESS):
                return self._ledger.get(execution.id)
            self._emit("execution.started", execution, point_id=execution.point_id)
            await self._run_phases(execution, plan)
            self._transition(execution, ExecutionStatus.COMPLETED)
        except ExecutionFailure as exc:
            logger.error("Execution %s aborted at %s: %s", execution.id, exc.step_id, exc)
            self._transition(execution, ExecutionStatus.FAILED)
        except asyncio.CancelledError:
            logger.warning("Execution %s task was cancelled", execution.id)
            self._transition(
                execution,
                ExecutionStatus.CANCELLED,
                error=ExecutionError(
                    step_id=execution.current_step_id or "",
                    message="Execution task was cancelled",
                    severity=ErrorSeverity.WARNING,
                    recovered=False,
                ),
            )
            raise
        except Exception as exc:
            logger.exception("Execution %s crashed", execution.id)
            self._transition(
                execution,
                ExecutionStatus.FAILED,
                error=ExecutionError(
                    step_id=execution.current_step_id or "",
                    message=f"Unexpected error: {type(exc).__name__}: {exc}",
                    severity=ErrorSeverity.CRITICAL,
                    recovered=False,
                ),
            )
        finally:
            with self._sync_lock:
                self._live.pop(execution.id, None)
        return self._ledger.get(execution.id)

    # ── Phases ───────────────────────────────────────────────────────────────

    async def _run_phases(self, execution: Execution, plan: RollbackPlan) -> None:
        total = plan.total_units
        done = 0

        for check in plan.pre_validation:
            if self._stopped(execution):
                return
            record = await self._run_validation(execution, check, StepPhase.PRE_VALIDATION)
            done += 1
            self._step_finished(execution, record, done, total)
            self._raise_if_blocking(check, record)

        attempted: set[str] = set()
        for step in plan.steps:
            if self._stopped(execution):
                return
            missing = [dep for dep in step.depends_on if dep not in attempted]
            if missing:
                record = self._skip_step(execution, step, missing)
            else:
                attempted.add(step.id)
                record = await self._run_step(execution, step)
            done += 1
            self._step_finished(execution, record, done, total)
            if record.status == StepStatus.FAILED and step.critical:
                raise StepExecutionFailure(
                    f"Critical step {step.id} failed: {record.error}",
                    step_id=step.id,
                )

        for check in plan.post_validation:
            if self._stopped(execution):
                return
            record = await self._run_validation(execution, check, StepPhase.POST_VALIDATION)
            done += 1
            self._step_finished(execution, record, done, total)
            self._raise_if_blocking(check, record)

    def _raise_if_blocking(self, check: ValidationStep, record: ExecutedStep) -> None:
        if (
            record.status == StepStatus.FAILED
            and check.critical
            and self._block_on_validation_failure
        ):
            raise ValidationFailure(
                f"Critical validation {check.id} failed: {record.error}",
                step_id=check.id,
            )

    def _stopped(self, execution: Execution) -> bool:
        with self._sync_lock:
            return execution.status.is_terminal()

    # ── Steps ────────────────────────────────────────────────────────────────

    def _begin(self, execution: Execution, step_id: str, phase: StepPhase) -> ExecutedStep:
        record = ExecutedStep(step_id=step_id, phase=phase, status=StepStatus.IN_PROGRESS)
        with self._sync_lock:
            execution.executed_steps.append(record)
            if not execution.status.is_terminal():
                execution.current_step_id = step_id
            self._ledger.save(execution)
        return record

    def _skip_step(
        self, execution: Execution, step: RollbackStep, missing: list[str]
    ) -> ExecutedStep:
        now = utcnow()
        record = ExecutedStep(
            step_id=step.id,
            phase=StepPhase.STEPS,
            start_time=now,
            end_time=now,
            status=StepStatus.SKIPPED,
            error=f"Dependencies not attempted: {', '.join(missing)}",
        )
        with self._sync_lock:
            execution.executed_steps.append(record)
            self._ledger.save(execution)
        logger.warning("Skipping step %s: dependencies %s not attempted", step.id, missing)
        return record

    async def _run_step(self, execution: Execution, step: RollbackStep) -> ExecutedStep:
        record = self._begin(execution, step.id, StepPhase.STEPS)
        attempts = step.max_retries + 1
        last_error = ""

        for attempt in range(attempts):
            if attempt > 0:
                if self._stopped(execution):
                    last_error = f"{last_error} (not retried: execution cancelled)"
                    break
                with self._sync_lock:
                    record.retry_count = attempt
                    self._ledger.save(execution)
                self._metrics.increment("step_retries")
                logger.warning(
                    "Retrying step %s (attempt %d/%d): %s",
                    step.id,
                    attempt + 1,
                    attempts,
                    last_error,
                )
                if self._retry_backoff_seconds:
                    await asyncio.sleep(self._retry_backoff_seconds)

            deadline = time.monotonic() + step.timeout_seconds
            try:
                output = await asyncio.wait_for(
                    self._step_runner.run(step, deadline),
                    timeout=step.timeout_seconds,
                )
            except TimeoutError:
                last_error = f"Timed out after {step.timeout_seconds}s"
            except Exception as exc:
                last_error = f"{type(exc).__name__}: {exc}"
            else:
                with self._sync_lock:
                    record.status = StepStatus.COMPLETED
                    record.output = output if isinstance(output, str) else str(output)
                    record.end_time = utcnow()
                    self._ledger.save(execution)
                logger.info("Step %s completed (retries=%d)", step.id, record.retry_count)
                return record

        severity = ErrorSeverity.CRITICAL if step.critical else ErrorSeverity.ERROR
        with self._sync_lock:
            record.status = StepStatus.FAILED
            record.error = last_error
            record.end_time = utcnow()
            execution.errors.append(
                ExecutionError(
                    step_id=step.id,
                    message=(
                        f"Step {step.id} failed after {record.retry_count + 1} "
                        f"attempt(s): {last_error}"
                    ),
                    severity=severity,
                    recovered=False,
                )
            )
            self._ledger.save(execution)
        self._metrics.increment("step_failures")
        logger.error(
            "Step %s failed after %d attempt(s) (critical=%s): %s",
            step.id,
            record.retry_count + 1,
            step.critical,
            last_error,
        )
        return record

    async def _run_validation(
        self, execution: Execution, check: ValidationStep, phase: StepPhase
    ) -> ExecutedStep:
        record = self._begin(execution, check.id, phase)
        deadline = time.monotonic() + check.timeout_seconds
        error: str | None = None
        actual: Any = None
        try:
            actual = await asyncio.wait_for(
                self._validation_runner.check(check, deadline),
                timeout=check.timeout_seconds,
            )
        except TimeoutError:
            error = f"Timed out after {check.timeout_seconds}s"
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
        else:
            if not result_matches(check.expected_result, actual):
                error = f"Expected {check.expected_result!r}, got {actual!r}"

        with self._sync_lock:
            record.end_time = utcnow()
            if error is None:
                record.status = StepStatus.COMPLETED
                record.output = str(actual)
            else:
                record.status = StepStatus.FAILED
                record.error = error
                if not check.critical:
                    severity, recovered = ErrorSeverity.WARNING, True
                elif self._block_on_validation_failure:
                    severity, recovered = ErrorSeverity.CRITICAL, False
                else:
                    severity, recovered = ErrorSeverity.ERROR, True
                execution.errors.append(
                    ExecutionError(
                        step_id=check.id,
                        message=f"Validation {check.id} failed: {error}",
                        severity=severity,
                        recovered=recovered,
                    )
                )
            self._ledger.save(execution)

        if error is None:
            logger.info("Validation %s passed", check.id)
        else:
            logger.warning(
                "Validation %s failed (critical=%s): %s", check.id, check.critical, error
            )
        return record

    # ── State ────────────────────────────────────────────────────────────────

    def _step_finished(
        self, execution: Execution, record: ExecutedStep, done: int, total: int
    ) -> None:
        with self._sync_lock:
            percent = min(done * 100 // total, 99) if total else 99
            if percent > execution.progress_percent and not execution.status.is_terminal():
                execution.progress_percent = percent
            self._ledger.save(execution)
            progress = execution.progress_percent
        self._emit(
            "execution.step_finished",
            execution,
            step_id=record.step_id,
            phase=record.phase.value,
            status=record.status.value,
            retry_count=record.retry_count,
            progress_percent=progress,
        )

    def _transition(
        self,
        execution: Execution,
        status: ExecutionStatus,
        error: ExecutionError | None = None,
    ) -> bool:
        """Apply a state change. Returns False if the execution was already terminal."""
        with self._sync_lock:
            if execution.status.is_terminal():
                logger.info(
                    "Ignoring %s for execution %s: already %s",
                    status.value,
                    execution.id,
                    execution.status.value,
                )
                return False
            execution.status = status
            if error is not None:
                execution.errors.append(error)
            if status == ExecutionStatus.COMPLETED:
                execution.progress_percent = 100
            if status.is_terminal():
                execution.end_time = utcnow()
                execution.current_step_id = None
            self._ledger.save(execution)

        if status.is_terminal():
            self._metrics.execution_finished(status.value)
            self._emit(
                f"execution.{status.value}",
                execution,
                progress_percent=execution.progress_percent,
                errors=len(execution.errors),
            )
            logger.info("Execution %s %s", execution.id, status.value)
        else:
            logger.info("Execution %s is %s", execution.id, status.value)
        return True

    def cancel(self, execution_id: str) -> Execution:
        """
        Cancel a pending or in-progress execution.

        Raises:
            NotFoundError: The id is unknown.
            InvalidStateError: The execution is already terminal.
        """
        with self._sync_lock:
            execution = self._live.get(execution_id)
            if execution is None:
                stored = self._ledger.get(execution_id)
                if stored.status.is_terminal():
                    raise InvalidStateError(
                        f"Execution {execution_id} is already {stored.status.value}",
                        details={"status": stored.status.value},
                    )
                execution = stored
            if not self._transition(execution, ExecutionStatus.CANCELLED):
                raise InvalidStateError(
                    f"Execution {execution_id} is already {execution.status.value}",
                    details={"status": execution.status.value},
                )
            return self._ledger.get(execution_id)

    def _emit(self, event_type: str, execution: Execution, **details: Any) -> None:
        if self._audit_log is None:
            return
        self._audit_log.emit(
            event_type,
            execution.id,
            environment=execution.environment.value,
            plan_id=execution.plan_id,
            **details,
        )
