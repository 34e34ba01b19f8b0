"""
Sidecar ASGI entry point for standalone uvicorn usage.

Reads $PLYRA_ROLLBACK_CONFIG when set, otherwise uses defaults.

Usage:
    uvicorn plyra_rollback.sidecar.app:app --host 127.0.0.1 --port 8080
"""

from plyra_rollback.config.loader import resolve_config_path
from plyra_rollback.core.service import RollbackService
from plyra_rollback.sidecar.server import create_app

_config_path = resolve_config_path(None)
_service = (
    RollbackService.from_config(_config_path)
    if _config_path
    else RollbackService.default()
)
app = create_app(_service)
