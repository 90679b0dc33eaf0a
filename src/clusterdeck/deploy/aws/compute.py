"""EC2 key pair and instance steps."""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import ClientError

from clusterdeck.config.defaults import (
    DEPLOYMENT_TAG_KEY,
    ECS_AMIS,
    ECS_USER_DATA_TEMPLATE,
    WEAVE_PEER_GROUP_TAG_KEY,
)
from clusterdeck.deploy.aws.session import error_code
from clusterdeck.lib.errors import DeploymentError
from clusterdeck.lib.polling import wait_for
from clusterdeck.models.cluster import ClusterState, KeyPairHandle, NodeInfo
from clusterdeck.models.descriptor import DeploymentDescriptor, Node

LIVE_INSTANCE_STATES = ["pending", "running", "stopping", "stopped"]


def deployment_tags(name: str) -> list[dict[str, str]]:
    """Tags put on every instance of a deployment."""
    return [
        {"Key": DEPLOYMENT_TAG_KEY, "Value": name},
        {"Key": WEAVE_PEER_GROUP_TAG_KEY, "Value": name},
    ]


def image_for(node: Node, region: str) -> str:
    """Return the AMI a node boots from."""
    if node.image_id:
        return node.image_id
    try:
        return ECS_AMIS[region]
    except KeyError:
        raise DeploymentError(
            operation="create",
            message=f"No ECS-optimized image known for region {region}",
        ) from None


def create_key_pair(ec2: Any, state: ClusterState, log: logging.Logger) -> KeyPairHandle:
    """Create the deployment key pair, once."""
    if state.key_pair is not None:
        return state.key_pair

    log.info("Creating key pair %s", state.key_name)
    try:
        response = ec2.create_key_pair(KeyName=state.key_name)
    except ClientError as exc:
        raise DeploymentError(
            operation="create", message=f"Unable to create key pair: {exc}"
        ) from exc

    state.key_pair = KeyPairHandle(
        key_name=response["KeyName"], key_material=response["KeyMaterial"]
    )
    return state.key_pair


def launch_instances(
    ec2: Any,
    state: ClusterState,
    descriptor: DeploymentDescriptor,
    log: logging.Logger,
) -> None:
    """Launch one instance per node and wait until they pass status checks."""
    key_pair = create_key_pair(ec2, state, log)
    user_data = ECS_USER_DATA_TEMPLATE.format(cluster_name=state.cluster_name)
    tags = deployment_tags(state.name)

    for node in descriptor.nodes:
        log.info("Launching %s instance for node %d", node.instance_type, node.id)
        try:
            response = ec2.run_instances(
                ImageId=image_for(node, descriptor.region),
                InstanceType=node.instance_type,
                KeyName=key_pair.key_name,
                MinCount=1,
                MaxCount=1,
                NetworkInterfaces=[
                    {
                        "AssociatePublicIpAddress": True,
                        "DeleteOnTermination": True,
                        "DeviceIndex": 0,
                        "Groups": [state.security_group_id],
                        "SubnetId": state.subnet_id,
                    }
                ],
                IamInstanceProfile={"Name": state.instance_profile_name},
                UserData=user_data,
                TagSpecifications=[{"ResourceType": "instance", "Tags": tags}],
            )
        except ClientError as exc:
            raise DeploymentError(
                operation="create",
                message=f"Unable to run instance for node {node.id}: {exc}",
            ) from exc

        instance_id = response["Instances"][0]["InstanceId"]
        state.instance_ids.append(instance_id)
        state.node_infos[node.id] = NodeInfo(instance_id=instance_id)

    wait_for(
        ec2,
        "instance_exists",
        "instances exist",
        InstanceIds=list(state.instance_ids),
    )
    try:
        ec2.create_tags(Resources=list(state.instance_ids), Tags=tags)
    except ClientError as exc:
        raise DeploymentError(
            operation="create", message=f"Unable to tag instances: {exc}"
        ) from exc

    log.info("Waiting for %d instances to pass status checks", len(state.instance_ids))
    wait_for(
        ec2,
        "instance_status_ok",
        "instances pass status checks",
        InstanceIds=list(state.instance_ids),
    )


def _instances(response: dict[str, Any]) -> list[dict[str, Any]]:
    return [
        instance
        for reservation in response.get("Reservations", [])
        for instance in reservation.get("Instances", [])
    ]


def populate_addresses(
    ec2: Any,
    state: ClusterState,
    descriptor: DeploymentDescriptor,
    log: logging.Logger,
) -> None:
    """Record each node's public DNS name and private IP address."""
    try:
        response = ec2.describe_instances(InstanceIds=list(state.instance_ids))
    except ClientError as exc:
        raise DeploymentError(
            operation="create", message=f"Unable to describe instances: {exc}"
        ) from exc

    for instance in _instances(response):
        found = state.node_for_instance(instance["InstanceId"])
        if found is None:
            continue
        node_id, node_info = found
        node_info.public_address = instance.get("PublicDnsName")
        node_info.private_address = instance.get("PrivateIpAddress")
        log.debug(
            "Node %d: public %s, private %s",
            node_id,
            node_info.public_address,
            node_info.private_address,
        )


def find_deployment_instances(ec2: Any, name: str) -> list[dict[str, Any]]:
    """Return live instances tagged with a deployment name."""
    response = ec2.describe_instances(
        Filters=[
            {"Name": f"tag:{DEPLOYMENT_TAG_KEY}", "Values": [name]},
            {"Name": "instance-state-name", "Values": LIVE_INSTANCE_STATES},
        ]
    )
    return _instances(response)


def terminate_instances(ec2: Any, state: ClusterState, log: logging.Logger) -> None:
    """Terminate every instance and wait until they are gone."""
    if not state.instance_ids:
        return

    log.info("Terminating instances %s", ", ".join(state.instance_ids))
    try:
        ec2.terminate_instances(InstanceIds=list(state.instance_ids))
    except ClientError as exc:
        raise DeploymentError(
            operation="delete", message=f"Unable to terminate instances: {exc}"
        ) from exc

    wait_for(
        ec2,
        "instance_terminated",
        "instances are terminated",
        InstanceIds=list(state.instance_ids),
    )
    state.instance_ids = []


def delete_key_pair(ec2: Any, state: ClusterState, log: logging.Logger) -> None:
    """Delete the deployment key pair."""
    log.info("Deleting key pair %s", state.key_name)
    try:
        ec2.delete_key_pair(KeyName=state.key_name)
    except ClientError as exc:
        if error_code(exc) != "InvalidKeyPair.NotFound":
            raise DeploymentError(
                operation="delete", message=f"Unable to delete key pair: {exc}"
            ) from exc
    state.key_pair = None
