"""
Configuration Loader
~~~~~~~~~~~~~~~~~~~~

Loads and validates rollback_config.yaml, merging with defaults.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import yaml
from pydantic import ValidationError

from plyra_rollback.config.defaults import DEFAULT_CONFIG
from plyra_rollback.config.schema import EngineConfig
from plyra_rollback.exceptions import (
    ConfigFileNotFoundError,
    ConfigValidationError,
)

__all__ = ["load_config", "load_config_from_dict", "resolve_config_path"]

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PLYRA_ROLLBACK_CONFIG"


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts, with override taking precedence. Lists are replaced."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def resolve_config_path(path: str | None) -> str | None:
    """Return the explicit path, else the one named by $PLYRA_ROLLBACK_CONFIG."""
    return path or os.environ.get(CONFIG_ENV_VAR) or None


def load_config(path: str) -> EngineConfig:
    """
    Load configuration from a YAML file.

    Merges user config with defaults and validates via Pydantic.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Validated EngineConfig instance.

    Raises:
        ConfigFileNotFoundError: If the file doesn't exist.
        ConfigValidationError: If the YAML is malformed or fails validation.
    """
    if not os.path.exists(path):
        raise ConfigFileNotFoundError(f"Configuration file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            user_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigValidationError(
            f"Invalid YAML in configuration file: {exc}"
        ) from exc

    if not isinstance(user_config, dict):
        raise ConfigValidationError(
            f"Configuration root must be a mapping, got {type(user_config).__name__}"
        )

    logger.debug("Loaded rollback configuration from %s", path)
    return load_config_from_dict(user_config)


def load_config_from_dict(data: dict[str, Any]) -> EngineConfig:
    """
    Load configuration from a dictionary, merging with defaults.

    Args:
        data: Configuration dictionary.

    Returns:
        Validated EngineConfig instance.

    Raises:
        ConfigValidationError: If validation fails.
    """
    merged = _deep_merge(DEFAULT_CONFIG, data)

    try:
        return EngineConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigValidationError(
            f"Configuration validation failed: {exc}",
            details={"errors": exc.errors(include_url=False)},
        ) from exc
