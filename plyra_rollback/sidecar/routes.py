"""
Sidecar Routes
~~~~~~~~~~~~~~

FastAPI route handlers for the HTTP sidecar server.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import AwareDatetime

from plyra_rollback.core.enums import Environment, ExecutionStatus
from plyra_rollback.exceptions import (
    ApprovalRequiredError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PlanError,
    RetentionError,
    RollbackEngineError,
    SnapshotCaptureError,
)
from plyra_rollback.observability.audit_log import AuditFilter
from plyra_rollback.sidecar.models import (
    CreatePointRequest,
    ErrorResponse,
    ExecuteRequest,
    HealthResponse,
)

if TYPE_CHECKING:
    from plyra_rollback.core.service import RollbackService

__all__ = ["register_routes", "status_code_for"]

_STATUS_CODES: list[tuple[type[RollbackEngineError], int]] = [
    (NotFoundError, 404),
    (ApprovalRequiredError, 403),
    (ConflictError, 409),
    (InvalidStateError, 409),
    (SnapshotCaptureError, 502),
    (RetentionError, 507),
    (PlanError, 422),
]


def status_code_for(exc: RollbackEngineError) -> int:
    """Map an engine exception to an HTTP status code."""
    for exc_type, code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return code
    return 500


def _error_body(exc: RollbackEngineError) -> dict[str, Any]:
    return ErrorResponse(
        error=type(exc).__name__,
        message=exc.args[0] if exc.args else "",
        details=exc.details,
        policy_triggered=getattr(exc, "policy_triggered", None),
        how_to_fix=getattr(exc, "how_to_fix", None),
    ).model_dump()


def register_routes(app: Any, service: RollbackService) -> None:
    """Register all sidecar routes on the FastAPI app."""
    from fastapi import Query, Request
    from fastapi.responses import JSONResponse, PlainTextResponse

    @app.exception_handler(RollbackEngineError)
    async def engine_error_handler(request: Request, exc: RollbackEngineError) -> Any:
        return JSONResponse(status_code=status_code_for(exc), content=_error_body(exc))

    # ── Rollback points ───────────────────────────────────────────

    @app.post("/points", status_code=201)
    async def create_point(req: CreatePointRequest) -> dict[str, Any]:
        """Capture state and create a rollback point."""
        point = await service.create_rollback_point_async(
            req.kind,
            req.description,
            req.version,
            req.environment,
            req.created_by,
            dependencies=req.dependencies,
            metadata=req.metadata,
        )
        return point.to_dict()

    @app.get("/points")
    async def list_points(
        environment: Environment | None = Query(None),
    ) -> dict[str, list[dict]]:
        """List rollback points, newest first."""
        points = service.list_rollback_points(environment)
        return {"points": [p.to_dict() for p in points]}

    @app.get("/points/{point_id}")
    async def get_point(point_id: str) -> dict[str, Any]:
        return service.get_rollback_point(point_id).to_dict()

    @app.post("/points/{point_id}/plans", status_code=201)
    async def create_plan(point_id: str) -> dict[str, Any]:
        """Build the rollback plan for a point."""
        return service.create_rollback_plan(point_id).to_dict()

    # ── Plans and executions ──────────────────────────────────────

    @app.get("/plans/{plan_id}")
    async def get_plan(plan_id: str) -> dict[str, Any]:
        return service.get_rollback_plan(plan_id).to_dict()

    @app.post("/plans/{plan_id}/execute", status_code=202)
    async def execute_plan(plan_id: str, req: ExecuteRequest) -> dict[str, Any]:
        """Start executing a plan. Poll GET /executions/{id} for progress."""
        execution = await service.execute_rollback(
            plan_id, req.executed_by, approved_by=req.approved_by
        )
        return execution.to_dict()

    @app.get("/executions")
    async def list_executions(
        environment: Environment | None = Query(None),
        status: ExecutionStatus | None = Query(None),
        limit: int | None = Query(None, ge=1),
    ) -> dict[str, list[dict]]:
        executions = service.list_executions(environment, status, limit=limit)
        return {"executions": [e.to_dict() for e in executions]}

    @app.get("/executions/{execution_id}")
    async def get_execution(execution_id: str) -> dict[str, Any]:
        return service.get_execution(execution_id).to_dict()

    @app.post("/executions/{execution_id}/cancel")
    async def cancel_execution(execution_id: str) -> dict[str, Any]:
        return service.cancel_execution(execution_id).to_dict()

    # ── Observability ─────────────────────────────────────────────

    @app.get("/audit")
    async def get_audit(
        event_type: str | None = Query(None),
        subject_id: str | None = Query(None),
        environment: str | None = Query(None),
        from_time: AwareDatetime | None = Query(None),
        to_time: AwareDatetime | None = Query(None),
        limit: int = Query(100, ge=1),
    ) -> dict[str, list[dict]]:
        """Query the audit trail."""
        audit_filter = AuditFilter(
            event_type=event_type,
            subject_id=subject_id,
            environment=environment,
            from_time=from_time,
            to_time=to_time,
            limit=limit,
        )
        events = service.get_audit_log(audit_filter)
        return {"events": [e.to_dict() for e in events]}

    @app.get("/metrics", response_class=PlainTextResponse)
    async def get_metrics() -> str:
        """Get Prometheus-format metrics."""
        return service.get_metrics().to_prometheus()

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(
            status="ok",
            version=service.version,
            active_executions=service.get_metrics().active_executions,
        )
