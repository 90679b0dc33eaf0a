"""Cluster backend deployers."""

from __future__ import annotations

import uuid

from clusterdeck.deploy.aws.session import AWSClients
from clusterdeck.deploy.deployers.base import BaseDeployer
from clusterdeck.lib.errors import DeploymentError
from clusterdeck.lib.logging_config import create_deployment_logger
from clusterdeck.models.config import DeployerSettings
from clusterdeck.models.descriptor import DeploymentDescriptor
from clusterdeck.models.registry import AWSProfile

SUPPORTED_DEPLOY_TYPES = ("ECS",)


def create_unique_deployment_name(name: str) -> str:
    """Append a short random upper-case suffix to a deployment name."""
    return f"{name}-{uuid.uuid4().hex[:8].upper()}"


def create_deployer(
    deploy_type: str,
    settings: DeployerSettings,
    profile: AWSProfile,
    descriptor: DeploymentDescriptor,
    create_name: bool = False,
    clients: AWSClients | None = None,
) -> BaseDeployer:
    """Create the deployer for a backend technology tag.

    Args:
        deploy_type: Backend tag, e.g. ``ECS``
        settings: Process-wide deployer settings
        profile: AWS credentials of the deployment owner
        descriptor: Accepted deployment descriptor
        create_name: Give the deployment a unique name before creating it
        clients: Pre-built AWS clients, mainly for tests

    Raises:
        DeploymentError: If the backend is unknown or not implemented
    """
    deploy_type = deploy_type.upper()
    if create_name:
        descriptor = descriptor.model_copy(
            update={"name": create_unique_deployment_name(descriptor.name)}
        )

    if deploy_type == "ECS":
        from clusterdeck.deploy.deployers.aws_ecs import ECSDeployer

        log = create_deployment_logger(settings.files_path, descriptor.name)
        return ECSDeployer(settings, profile, descriptor, log, clients=clients)

    if deploy_type == "K8S":
        raise DeploymentError(
            operation="create",
            message=(
                "Kubernetes deployer is not implemented yet. "
                "ECS is the only supported deploy type for now."
            ),
        )

    raise DeploymentError(
        operation="create",
        message=f"Unsupported deploy type: {deploy_type}",
    )


__all__ = [
    "BaseDeployer",
    "SUPPORTED_DEPLOY_TYPES",
    "create_deployer",
    "create_unique_deployment_name",
]
