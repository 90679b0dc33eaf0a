"""CloudWatch log groups for container output."""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import ClientError

from clusterdeck.deploy.aws.session import error_code
from clusterdeck.lib.errors import DeploymentError
from clusterdeck.models.descriptor import DeploymentDescriptor


def create_log_group(logs: Any, group_name: str, log: logging.Logger) -> None:
    """Create a log group; an existing group counts as success."""
    try:
        logs.create_log_group(logGroupName=group_name)
    except ClientError as exc:
        if error_code(exc) == "ResourceAlreadyExistsException":
            log.info("Skip creating log group %s as it already exists", group_name)
            return
        raise DeploymentError(
            operation="create",
            message=f"Unable to create log group {group_name}: {exc}",
        ) from exc


def setup_log_groups(
    logs: Any, descriptor: DeploymentDescriptor, log: logging.Logger
) -> None:
    """Create one log group per container definition."""
    for group_name in descriptor.container_names():
        create_log_group(logs, group_name, log)
