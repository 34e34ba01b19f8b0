"""
Default Configuration
~~~~~~~~~~~~~~~~~~~~~

Sensible defaults for the rollback engine when no config file is provided.
"""

from __future__ import annotations

__all__ = ["DEFAULT_CONFIG"]

DEFAULT_CONFIG: dict = {
    "version": "1.0",
    "retention": {
        "max_rollback_points": 10,
        "retention_days": 30,
    },
    "approval": {
        "required_environments": ["production"],
        "required_kinds": ["database"],
        "required_severities": ["critical"],
        "allowed_approvers": [],
        "require_distinct_approver": False,
    },
    "execution": {
        "block_on_validation_failure": True,
        "retry_backoff_seconds": 0.0,
    },
    "validation": {
        "include_smoke_test": True,
        "health_check_url": "http://localhost:3000/health",
        "smoke_test_command": "make smoke-test",
    },
    "risk_rules": [],
    "storage": {
        "backend": "memory",
        "db_path": None,
    },
    "observability": {
        "exporters": ["stdout"],
        "audit_log_max_entries": 10000,
        "webhook_url": None,
    },
    "sidecar": {
        "host": "0.0.0.0",
        "port": 8080,
    },
}
