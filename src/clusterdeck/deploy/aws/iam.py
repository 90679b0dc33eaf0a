"""IAM role and instance profile for cluster nodes."""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import ClientError

from clusterdeck.config.defaults import DEFAULT_ROLE_POLICY, TRUST_DOCUMENT
from clusterdeck.deploy.aws.session import error_code
from clusterdeck.lib.errors import DeploymentError
from clusterdeck.lib.polling import wait_for
from clusterdeck.models.cluster import ClusterState
from clusterdeck.models.descriptor import DeploymentDescriptor


def setup_iam(
    iam: Any,
    state: ClusterState,
    descriptor: DeploymentDescriptor,
    log: logging.Logger,
) -> None:
    """Create the node role, its policy and the instance profile carrying it."""
    try:
        log.info("Creating IAM role %s", state.role_name)
        iam.create_role(
            RoleName=state.role_name, AssumeRolePolicyDocument=TRUST_DOCUMENT
        )
        state.role_created = True

        policy_document = descriptor.iam_role.policy_document or DEFAULT_ROLE_POLICY
        iam.put_role_policy(
            RoleName=state.role_name,
            PolicyName=state.policy_name,
            PolicyDocument=policy_document,
        )
        state.role_policy_created = True

        iam.create_instance_profile(InstanceProfileName=state.instance_profile_name)
        state.instance_profile_created = True
    except ClientError as exc:
        raise DeploymentError(
            operation="create", message=f"Unable to set up IAM role: {exc}"
        ) from exc

    wait_for(
        iam,
        "instance_profile_exists",
        f"instance profile {state.instance_profile_name} exists",
        InstanceProfileName=state.instance_profile_name,
    )

    try:
        iam.add_role_to_instance_profile(
            InstanceProfileName=state.instance_profile_name,
            RoleName=state.role_name,
        )
    except ClientError as exc:
        raise DeploymentError(
            operation="create",
            message=f"Unable to add role to instance profile: {exc}",
        ) from exc
    state.role_attached = True


def _ignore_missing(exc: ClientError, what: str, log: logging.Logger) -> None:
    if error_code(exc) == "NoSuchEntity":
        log.info("%s already deleted", what)
        return
    raise DeploymentError(
        operation="delete", message=f"Unable to delete {what}: {exc}"
    ) from exc


def detach_role(iam: Any, state: ClusterState, log: logging.Logger) -> None:
    """Remove the role from the instance profile."""
    try:
        iam.remove_role_from_instance_profile(
            InstanceProfileName=state.instance_profile_name,
            RoleName=state.role_name,
        )
    except ClientError as exc:
        _ignore_missing(exc, f"role {state.role_name} from instance profile", log)
    state.role_attached = False


def delete_instance_profile(iam: Any, state: ClusterState, log: logging.Logger) -> None:
    """Delete the instance profile."""
    try:
        iam.delete_instance_profile(InstanceProfileName=state.instance_profile_name)
    except ClientError as exc:
        _ignore_missing(exc, f"instance profile {state.instance_profile_name}", log)
    state.instance_profile_created = False


def delete_role_policy(iam: Any, state: ClusterState, log: logging.Logger) -> None:
    """Delete the inline role policy."""
    try:
        iam.delete_role_policy(RoleName=state.role_name, PolicyName=state.policy_name)
    except ClientError as exc:
        _ignore_missing(exc, f"role policy {state.policy_name}", log)
    state.role_policy_created = False


def delete_role(iam: Any, state: ClusterState, log: logging.Logger) -> None:
    """Delete the node role."""
    try:
        iam.delete_role(RoleName=state.role_name)
    except ClientError as exc:
        _ignore_missing(exc, f"role {state.role_name}", log)
    state.role_created = False
