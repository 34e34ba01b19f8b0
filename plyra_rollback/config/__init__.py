"""Rollback engine configuration — loading, validation, and defaults."""

from plyra_rollback.config.defaults import DEFAULT_CONFIG
from plyra_rollback.config.loader import load_config, load_config_from_dict
from plyra_rollback.config.schema import EngineConfig

__all__ = [
    "load_config",
    "load_config_from_dict",
    "EngineConfig",
    "DEFAULT_CONFIG",
]
