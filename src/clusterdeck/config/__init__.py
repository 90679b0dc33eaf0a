"""Settings and deployment descriptor loading for clusterdeck.

Main components:
- load_settings: Resolve process settings from file and environment
- load_descriptor / parse_descriptor: Validate deployment descriptors
- Environment variable substitution (${VAR_NAME} pattern)
"""

from clusterdeck.config.env_loader import load_env_file, substitute_env_vars
from clusterdeck.config.loader import load_descriptor, load_settings, parse_descriptor

__all__ = [
    "load_settings",
    "load_descriptor",
    "parse_descriptor",
    "substitute_env_vars",
    "load_env_file",
]
