"""ECS cluster, task definition and service steps."""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import ClientError

from clusterdeck.config.defaults import PLACEMENT_ATTRIBUTE_NAME
from clusterdeck.deploy.aws.session import error_code
from clusterdeck.lib.errors import DeploymentError
from clusterdeck.lib.polling import poll_until
from clusterdeck.models.cluster import ClusterState
from clusterdeck.models.descriptor import DeploymentDescriptor, NodeMapping


def _failure_message(failures: list[dict[str, Any]]) -> str:
    return ", ".join(str(failure.get("reason", failure)) for failure in failures)


def placement_expression(mapping: NodeMapping) -> str:
    """Placement constraint expression pinning a mapping's service."""
    return f"attribute:{PLACEMENT_ATTRIBUTE_NAME} == {mapping.placement_attribute}"


def setup_cluster(
    ecs: Any,
    state: ClusterState,
    descriptor: DeploymentDescriptor,
    log: logging.Logger,
) -> None:
    """Create the ECS cluster and register every task definition."""
    try:
        ecs.create_cluster(clusterName=state.cluster_name)
    except ClientError as exc:
        raise DeploymentError(
            operation="create", message=f"Unable to create cluster: {exc}"
        ) from exc
    state.cluster_created = True

    for task in descriptor.task_definitions:
        log.info("Registering task definition %s", task.family)
        try:
            ecs.register_task_definition(**task.to_ecs(descriptor.region))
        except ClientError as exc:
            raise DeploymentError(
                operation="create",
                message=f"Unable to register task definition {task.family}: {exc}",
            ) from exc
        state.task_families.append(task.family)


def registered_instance_count(ecs: Any, cluster_name: str) -> int:
    """Return how many container instances are registered with a cluster."""
    try:
        response = ecs.describe_clusters(clusters=[cluster_name])
    except ClientError as exc:
        raise DeploymentError(
            operation="create", message=f"Unable to describe ECS cluster: {exc}"
        ) from exc

    failures = response.get("failures") or []
    if failures:
        raise DeploymentError(
            operation="create",
            message=f"Unable to describe ECS cluster: {_failure_message(failures)}",
        )
    clusters = response.get("clusters") or []
    if not clusters:
        raise DeploymentError(
            operation="create", message=f"ECS cluster {cluster_name} not found"
        )
    return int(clusters[0].get("registeredContainerInstancesCount", 0))


def wait_until_cluster_ready(
    ecs: Any,
    state: ClusterState,
    descriptor: DeploymentDescriptor,
    log: logging.Logger,
    *,
    interval: float,
    timeout: float | None,
) -> None:
    """Poll until every node has registered with the ECS cluster."""
    total = len(descriptor.nodes)

    def _ready() -> bool:
        registered = registered_instance_count(ecs, state.cluster_name)
        if registered >= total:
            return True
        log.info("Cluster not ready. registered %d, total %d", registered, total)
        return False

    poll_until(
        _ready,
        interval=interval,
        timeout=timeout,
        description=f"{total} container instances register with {state.cluster_name}",
    )


def describe_container_instances(ecs: Any, cluster_name: str) -> list[dict[str, Any]]:
    """Return every container instance registered with a cluster."""
    arns = ecs.list_container_instances(cluster=cluster_name).get(
        "containerInstanceArns", []
    )
    if not arns:
        return []
    response = ecs.describe_container_instances(
        cluster=cluster_name, containerInstances=arns
    )
    return list(response.get("containerInstances", []))


def assign_placement_attributes(
    ecs: Any,
    state: ClusterState,
    descriptor: DeploymentDescriptor,
    log: logging.Logger,
) -> None:
    """Tag each mapped node's container instance with its placement attribute."""
    try:
        container_instances = describe_container_instances(ecs, state.cluster_name)
    except ClientError as exc:
        raise DeploymentError(
            operation="create",
            message=f"Unable to describe container instances: {exc}",
        ) from exc

    for instance in container_instances:
        found = state.node_for_instance(instance.get("ec2InstanceId", ""))
        if found is not None:
            found[1].agent_registration_id = instance["containerInstanceArn"]

    for mapping in descriptor.node_mapping:
        node_info = state.node_infos.get(mapping.id)
        if node_info is None:
            raise DeploymentError(
                operation="create",
                message=f"Unable to find node id {mapping.id} in instance map",
            )
        if not node_info.agent_registration_id:
            raise DeploymentError(
                operation="create",
                message=f"Node {mapping.id} is not registered with the ECS cluster",
            )

        log.info(
            "Setting %s=%s on node %d",
            PLACEMENT_ATTRIBUTE_NAME,
            mapping.placement_attribute,
            mapping.id,
        )
        try:
            ecs.put_attributes(
                cluster=state.cluster_name,
                attributes=[
                    {
                        "name": PLACEMENT_ATTRIBUTE_NAME,
                        "value": mapping.placement_attribute,
                        "targetType": "container-instance",
                        "targetId": node_info.agent_registration_id,
                    }
                ],
            )
        except ClientError as exc:
            raise DeploymentError(
                operation="create",
                message=f"Unable to put attribute on node {mapping.id}: {exc}",
            ) from exc


def create_services(
    ecs: Any,
    state: ClusterState,
    descriptor: DeploymentDescriptor,
    log: logging.Logger,
) -> None:
    """Start one single-task service per node mapping."""
    for mapping in descriptor.node_mapping:
        log.info("Starting service %s on node %d", mapping.service_name, mapping.id)
        try:
            ecs.create_service(
                cluster=state.cluster_name,
                serviceName=mapping.service_name,
                taskDefinition=mapping.task,
                desiredCount=1,
                placementConstraints=[
                    {"type": "memberOf", "expression": placement_expression(mapping)}
                ],
            )
        except ClientError as exc:
            raise DeploymentError(
                operation="create",
                message=f"Unable to start service {mapping.service_name}: {exc}",
            ) from exc
        state.service_names.append(mapping.service_name)


def _service_is_gone(exc: ClientError) -> bool:
    return error_code(exc) in (
        "ServiceNotFoundException",
        "ServiceNotActiveException",
        "ClusterNotFoundException",
    )


def _no_active_revision(exc: ClientError) -> bool:
    message = str(exc.response.get("Error", {}).get("Message", ""))
    return (
        error_code(exc) == "ClientException"
        and "Unable to describe task definition" in message
    )


def stop_services(ecs: Any, state: ClusterState, log: logging.Logger) -> None:
    """Drain every service to zero tasks, then delete it."""
    failed: list[str] = []
    for service_name in list(state.service_names):
        try:
            ecs.update_service(
                cluster=state.cluster_name, service=service_name, desiredCount=0
            )
            ecs.delete_service(cluster=state.cluster_name, service=service_name)
        except ClientError as exc:
            if not _service_is_gone(exc):
                log.warning("Unable to clean up service %s: %s", service_name, exc)
                failed.append(service_name)
                continue
            log.info("Service %s already deleted", service_name)
        state.service_names.remove(service_name)

    if failed:
        raise DeploymentError(
            operation="delete",
            message=f"Unable to clean up services: {', '.join(failed)}",
        )


def deregister_task_definitions(
    ecs: Any, state: ClusterState, log: logging.Logger
) -> None:
    """Deregister the live revision of every registered task family."""
    failed: list[str] = []
    for family in list(state.task_families):
        try:
            response = ecs.describe_task_definition(taskDefinition=family)
        except ClientError as exc:
            if _no_active_revision(exc):
                log.info("Task definition %s has no active revision", family)
                state.task_families.remove(family)
            else:
                log.warning("Unable to describe task definition %s: %s", family, exc)
                failed.append(family)
            continue

        task_definition = response["taskDefinition"]
        if task_definition.get("status") == "INACTIVE":
            state.task_families.remove(family)
            continue
        revision = f"{family}:{task_definition['revision']}"
        try:
            ecs.deregister_task_definition(taskDefinition=revision)
        except ClientError as exc:
            log.warning("Unable to deregister %s: %s", revision, exc)
            failed.append(revision)
            continue
        state.task_families.remove(family)

    if failed:
        raise DeploymentError(
            operation="delete",
            message=f"Unable to clean up task definitions: {', '.join(failed)}",
        )


def delete_cluster(ecs: Any, state: ClusterState, log: logging.Logger) -> None:
    """Delete the ECS cluster."""
    try:
        ecs.delete_cluster(cluster=state.cluster_name)
    except ClientError as exc:
        if error_code(exc) == "ClusterNotFoundException":
            log.info("ECS cluster %s already deleted", state.cluster_name)
        else:
            raise DeploymentError(
                operation="delete", message=f"Unable to delete cluster: {exc}"
            ) from exc
    state.cluster_created = False
