"""
Sidecar Pydantic Models
~~~~~~~~~~~~~~~~~~~~~~~

Request/response models for the HTTP sidecar endpoints.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from plyra_rollback.core.enums import Environment, PointKind

__all__ = [
    "CreatePointRequest",
    "ExecuteRequest",
    "ErrorResponse",
    "HealthResponse",
]


class CreatePointRequest(BaseModel):
    """Request body for POST /points."""

    kind: PointKind
    description: str
    version: str
    environment: Environment
    created_by: str
    dependencies: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ExecuteRequest(BaseModel):
    """Request body for POST /plans/{plan_id}/execute."""

    executed_by: str
    approved_by: str | None = None


class ErrorResponse(BaseModel):
    """Body returned for engine errors."""

    error: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    policy_triggered: str | None = None
    how_to_fix: str | None = None


class HealthResponse(BaseModel):
    """Response for GET /health."""

    status: str = "ok"
    version: str = ""
    active_executions: int = 0
