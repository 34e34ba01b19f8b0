"""
Configuration Schema
~~~~~~~~~~~~~~~~~~~~

Pydantic models for validating rollback engine configuration.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from plyra_rollback.core.enums import (
    Environment,
    PointKind,
    RiskKind,
    Severity,
)

__all__ = [
    "EngineConfig",
    "RetentionConfig",
    "ApprovalConfig",
    "ExecutionConfig",
    "ValidationConfig",
    "RiskConfig",
    "RiskRuleConfig",
    "StorageConfig",
    "ObservabilityConfig",
    "SidecarConfig",
]


class RetentionConfig(BaseModel):
    """Per-environment retention of rollback points."""

    max_rollback_points: int = Field(default=10, ge=1)
    retention_days: float = Field(default=30, gt=0)


class ApprovalConfig(BaseModel):
    """When a plan needs a named approver, and who may approve."""

    required_environments: list[Environment] = Field(
        default_factory=lambda: [Environment.PRODUCTION]
    )
    required_kinds: list[PointKind] = Field(
        default_factory=lambda: [PointKind.DATABASE]
    )
    required_severities: list[Severity] = Field(
        default_factory=lambda: [Severity.CRITICAL]
    )
    allowed_approvers: list[str] = Field(default_factory=list)
    require_distinct_approver: bool = False


class ExecutionConfig(BaseModel):
    """Executor behaviour."""

    block_on_validation_failure: bool = True
    retry_backoff_seconds: float = Field(default=0.0, ge=0.0)


class ValidationConfig(BaseModel):
    """Generated pre/post validation checks."""

    include_smoke_test: bool = True
    health_check_url: str = "http://localhost:3000/health"
    smoke_test_command: str = "make smoke-test"


class RiskConfig(BaseModel):
    """The risk attached when a configured rule matches."""

    kind: RiskKind
    severity: Severity
    probability: int = Field(ge=0, le=100)
    description: str = ""
    mitigation: str = ""


class RiskRuleConfig(BaseModel):
    """A single configured risk rule."""

    name: str
    kinds: list[str] = Field(default_factory=lambda: ["*"])
    environments: list[str] = Field(default_factory=lambda: ["*"])
    risk: RiskConfig

    @field_validator("kinds")
    @classmethod
    def validate_kinds(cls, v: list[str]) -> list[str]:
        """Every entry must be a known point kind or the wildcard."""
        for item in v:
            if item != "*" and item not in PointKind.__members__.values():
                raise ValueError(f"Unknown rollback point kind: {item!r}")
        return v

    @field_validator("environments")
    @classmethod
    def validate_environments(cls, v: list[str]) -> list[str]:
        """Every entry must be a known environment or the wildcard."""
        for item in v:
            if item != "*" and item not in Environment.__members__.values():
                raise ValueError(f"Unknown environment: {item!r}")
        return v


class StorageConfig(BaseModel):
    """Where points, plans and executions are persisted."""

    backend: Literal["memory", "sqlite"] = "memory"
    db_path: str | None = None

    @model_validator(mode="after")
    def validate_db_path(self) -> StorageConfig:
        """An explicit db_path only makes sense for the sqlite backend."""
        if self.db_path and self.backend != "sqlite":
            raise ValueError("storage.db_path requires storage.backend 'sqlite'")
        return self


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    exporters: list[Literal["stdout", "webhook"]] = Field(
        default_factory=lambda: ["stdout"]
    )
    audit_log_max_entries: int = Field(default=10000, ge=100)
    webhook_url: str | None = None

    @model_validator(mode="after")
    def validate_webhook(self) -> ObservabilityConfig:
        """The webhook exporter needs a URL."""
        if "webhook" in self.exporters and not self.webhook_url:
            raise ValueError("observability.webhook_url is required for 'webhook'")
        return self


class SidecarConfig(BaseModel):
    """HTTP sidecar server configuration."""

    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)


class EngineConfig(BaseModel):
    """
    Root configuration model for the rollback engine.

    Validated on load with clear error messages for invalid values.
    """

    version: str = "1.0"
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    risk_rules: list[RiskRuleConfig] = Field(default_factory=list)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    sidecar: SidecarConfig = Field(default_factory=SidecarConfig)
