"""Environment variable helpers for clusterdeck configuration."""

from __future__ import annotations

import os
import re
from pathlib import Path

from dotenv import load_dotenv

from clusterdeck.lib.errors import ConfigError

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def substitute_env_vars(text: str) -> str:
    """Replace ``${VAR_NAME}`` references with environment variable values.

    Args:
        text: Raw configuration text

    Returns:
        Text with every reference substituted

    Raises:
        ConfigError: If a referenced variable is not set
    """

    def _replace(match: re.Match[str]) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                field=var_name,
                message=f"Environment variable '{var_name}' is not set",
            )
        return value

    return ENV_VAR_PATTERN.sub(_replace, text)


def load_env_file(path: Path | None = None) -> bool:
    """Load variables from a ``.env`` file without overriding existing ones.

    Args:
        path: Explicit ``.env`` path; defaults to ``./.env``

    Returns:
        True if a file was found and loaded
    """
    env_path = path or Path.cwd() / ".env"
    if not env_path.exists():
        return False
    return load_dotenv(env_path, override=False)
