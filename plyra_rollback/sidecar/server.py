"""
Sidecar Server
~~~~~~~~~~~~~~

FastAPI HTTP sidecar exposing a RollbackService to other languages and
to operators.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from plyra_rollback.core.service import RollbackService

__all__ = ["create_app"]


def create_app(service: RollbackService) -> Any:
    """
    Create a FastAPI application wired to the given RollbackService.

    Args:
        service: The service to expose via HTTP.

    Returns:
        A FastAPI application instance.
    """
    try:
        from fastapi import FastAPI
        from fastapi.middleware.cors import CORSMiddleware
    except ImportError as exc:
        raise ImportError(
            "FastAPI is required for the sidecar server. "
            "Install with: pip install plyra-rollback[sidecar]"
        ) from exc

    app = FastAPI(
        title="plyra-rollback Sidecar",
        description="HTTP API for rollback points, plans and executions",
        version=service.version,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from plyra_rollback.sidecar.routes import register_routes

    register_routes(app, service)
    return app
