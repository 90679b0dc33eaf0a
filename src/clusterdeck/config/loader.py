"""Configuration loader for clusterdeck.

Loads process settings and deployment descriptors from YAML (or JSON) files
with ``${VAR}`` environment variable substitution.

Settings resolution order (later wins):
1. DeployerSettings defaults
2. Settings file (``clusterdeck.yaml`` in the working directory, or an
   explicit path)
3. ``CLUSTERDECK_*`` environment variables
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from clusterdeck.config.defaults import SETTINGS_FILE_NAME
from clusterdeck.config.env_loader import substitute_env_vars
from clusterdeck.config.validator import (
    descriptor_validation_error,
    flatten_pydantic_errors,
)
from clusterdeck.lib.errors import ConfigError, FileNotFoundError
from clusterdeck.models.config import DeployerSettings
from clusterdeck.models.descriptor import DeploymentDescriptor

logger = logging.getLogger(__name__)

# Environment variable to field name mapping
ENV_VAR_MAP = {
    "files_path": "CLUSTERDECK_FILES_PATH",
    "ssh_user": "CLUSTERDECK_SSH_USER",
    "cluster_poll_interval": "CLUSTERDECK_CLUSTER_POLL_INTERVAL",
    "cluster_ready_timeout": "CLUSTERDECK_CLUSTER_READY_TIMEOUT",
    "default_deploy_type": "CLUSTERDECK_DEFAULT_DEPLOY_TYPE",
}


def _parse_env_value(field_name: str, value: str) -> Any:
    """Parse an environment variable value to the field's type.

    Args:
        field_name: Name of the settings field
        value: Raw string value

    Returns:
        Parsed value; ``none``/``null``/empty disables the readiness timeout

    Raises:
        ValueError: If value cannot be parsed
    """
    if field_name == "cluster_ready_timeout":
        if value.strip().lower() in ("", "none", "null"):
            return None
        return float(value)
    if field_name == "cluster_poll_interval":
        return float(value)
    return value


def _env_overrides(env_vars: Mapping[str, str]) -> dict[str, Any]:
    """Collect settings overrides from environment variables."""
    overrides: dict[str, Any] = {}
    for field_name, env_var_name in ENV_VAR_MAP.items():
        if env_var_name not in env_vars:
            continue
        try:
            overrides[field_name] = _parse_env_value(field_name, env_vars[env_var_name])
        except ValueError as exc:
            raise ConfigError(
                field=env_var_name,
                message=f"Invalid value {env_vars[env_var_name]!r}: {exc}",
            ) from exc
    return overrides


def _read_yaml_with_env_substitution(path: Path) -> dict[str, Any] | None:
    """Read a YAML file with environment variable substitution.

    JSON files parse too, since JSON is a subset of YAML.

    Raises:
        OSError: If file cannot be read
        yaml.YAMLError: If parsing fails
        ConfigError: If env var substitution fails
    """
    raw_text = path.read_text(encoding="utf-8")
    substituted = substitute_env_vars(raw_text)
    content = yaml.safe_load(substituted)
    return content if content else None


def _load_mapping(path: Path, field: str) -> dict[str, Any] | None:
    try:
        content = _read_yaml_with_env_substitution(path)
    except OSError as exc:
        raise ConfigError(field=field, message=f"Failed to read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(field=field, message=f"Invalid YAML in {path}: {exc}") from exc

    if content is not None and not isinstance(content, dict):
        raise ConfigError(
            field=field,
            message=f"Expected a mapping at the top of {path}, got {type(content).__name__}",
        )
    return content


def load_settings(
    settings_path: Path | None = None,
    env_vars: Mapping[str, str] | None = None,
) -> DeployerSettings:
    """Resolve process settings.

    Args:
        settings_path: Explicit settings file; must exist when given
        env_vars: Environment mapping (defaults to ``os.environ``)

    Returns:
        Validated DeployerSettings

    Raises:
        FileNotFoundError: If an explicit settings file is missing
        ConfigError: If the file or environment values are invalid
    """
    env = os.environ if env_vars is None else env_vars
    data: dict[str, Any] = {}

    if settings_path is not None:
        if not settings_path.exists():
            raise FileNotFoundError(
                str(settings_path), "Settings file does not exist."
            )
        path: Path | None = settings_path
    else:
        default_path = Path.cwd() / SETTINGS_FILE_NAME
        path = default_path if default_path.exists() else None

    if path is not None:
        logger.debug("Loading settings from %s", path)
        data.update(_load_mapping(path, field="settings") or {})

    data.update(_env_overrides(env))

    try:
        return DeployerSettings.model_validate(data)
    except PydanticValidationError as exc:
        raise ConfigError(
            field="settings", message="; ".join(flatten_pydantic_errors(exc))
        ) from exc


def parse_descriptor(data: Any, source: str = "<input>") -> DeploymentDescriptor:
    """Validate raw descriptor data.

    Raises:
        ValidationError: If the descriptor is incomplete or inconsistent
    """
    try:
        return DeploymentDescriptor.model_validate(data)
    except PydanticValidationError as exc:
        raise descriptor_validation_error(exc, source) from exc


def load_descriptor(path: Path) -> DeploymentDescriptor:
    """Load a deployment descriptor from a YAML or JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigError: If the file cannot be read or parsed
        ValidationError: If the descriptor is invalid
    """
    if not path.exists():
        raise FileNotFoundError(str(path), "Deployment descriptor does not exist.")

    content = _load_mapping(path, field="descriptor")
    if content is None:
        raise ConfigError(field="descriptor", message=f"Descriptor {path} is empty")
    return parse_descriptor(content, source=str(path))
