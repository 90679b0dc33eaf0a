"""VPC, subnet, internet gateway and security group steps.

Every network resource carries a ``Name`` tag derived from the deployment
name, so teardown can locate resources by tag even when the in-memory ids
were lost.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from botocore.exceptions import ClientError

from clusterdeck.config.defaults import (
    INGRESS_CIDR,
    REQUIRED_INGRESS,
    SUBNET_CIDR,
    VPC_CIDR,
)
from clusterdeck.deploy.aws.session import error_code, name_tag
from clusterdeck.lib.errors import DeploymentError, NotFoundError
from clusterdeck.lib.polling import wait_for
from clusterdeck.models.cluster import ClusterState
from clusterdeck.models.descriptor import DeploymentDescriptor


def build_ingress_rules(allowed_ports: Iterable[int]) -> list[tuple[int, str]]:
    """Return the sorted, de-duplicated ingress rules for a deployment.

    The always-open ports are merged with every allowed port as TCP.
    """
    rules = set(REQUIRED_INGRESS)
    rules.update((port, "tcp") for port in allowed_ports)
    return sorted(rules)


def _ingress_permission(port: int, protocol: str) -> dict[str, Any]:
    return {
        "IpProtocol": protocol,
        "FromPort": port,
        "ToPort": port,
        "IpRanges": [{"CidrIp": INGRESS_CIDR}],
    }


def _create_vpc(ec2: Any, state: ClusterState, log: logging.Logger) -> None:
    log.info("Creating VPC %s", state.vpc_name)
    response = ec2.create_vpc(CidrBlock=VPC_CIDR)
    state.vpc_id = response["Vpc"]["VpcId"]

    ec2.modify_vpc_attribute(VpcId=state.vpc_id, EnableDnsSupport={"Value": True})
    ec2.modify_vpc_attribute(VpcId=state.vpc_id, EnableDnsHostnames={"Value": True})
    ec2.create_tags(Resources=[state.vpc_id], Tags=name_tag(state.vpc_name))


def _create_subnet(ec2: Any, state: ClusterState, log: logging.Logger) -> None:
    log.info("Creating subnet %s", state.subnet_name)
    response = ec2.create_subnet(VpcId=state.vpc_id, CidrBlock=SUBNET_CIDR)
    state.subnet_id = response["Subnet"]["SubnetId"]

    wait_for(
        ec2,
        "subnet_available",
        f"subnet {state.subnet_id} is available",
        SubnetIds=[state.subnet_id],
    )
    ec2.create_tags(Resources=[state.subnet_id], Tags=name_tag(state.subnet_name))


def _create_internet_gateway(ec2: Any, state: ClusterState, log: logging.Logger) -> None:
    log.info("Creating internet gateway %s", state.internet_gateway_name)
    response = ec2.create_internet_gateway()
    state.internet_gateway_id = response["InternetGateway"]["InternetGatewayId"]

    wait_for(
        ec2,
        "internet_gateway_exists",
        f"internet gateway {state.internet_gateway_id} exists",
        InternetGatewayIds=[state.internet_gateway_id],
    )
    ec2.create_tags(
        Resources=[state.internet_gateway_id],
        Tags=name_tag(state.internet_gateway_name),
    )
    ec2.attach_internet_gateway(
        InternetGatewayId=state.internet_gateway_id, VpcId=state.vpc_id
    )


def _create_default_route(ec2: Any, state: ClusterState) -> None:
    response = ec2.describe_route_tables(
        Filters=[{"Name": "vpc-id", "Values": [state.vpc_id]}]
    )
    route_tables = response.get("RouteTables") or []
    if not route_tables:
        raise DeploymentError(
            operation="create",
            message=f"Unable to find route table for VPC {state.vpc_id}",
        )

    result = ec2.create_route(
        DestinationCidrBlock=INGRESS_CIDR,
        GatewayId=state.internet_gateway_id,
        RouteTableId=route_tables[0]["RouteTableId"],
    )
    if not result.get("Return"):
        raise DeploymentError(
            operation="create", message="Unable to create route to internet gateway"
        )


def _create_security_group(
    ec2: Any,
    state: ClusterState,
    descriptor: DeploymentDescriptor,
    log: logging.Logger,
) -> None:
    log.info("Creating security group %s", state.security_group_name)
    response = ec2.create_security_group(
        GroupName=state.security_group_name,
        Description=state.security_group_name,
        VpcId=state.vpc_id,
    )
    state.security_group_id = response["GroupId"]

    for port, protocol in build_ingress_rules(descriptor.allowed_ports):
        ec2.authorize_security_group_ingress(
            GroupId=state.security_group_id,
            IpPermissions=[_ingress_permission(port, protocol)],
        )


def setup_network(
    ec2: Any,
    state: ClusterState,
    descriptor: DeploymentDescriptor,
    log: logging.Logger,
) -> None:
    """Create the VPC, subnet, gateway, default route and security group."""
    try:
        _create_vpc(ec2, state, log)
        _create_subnet(ec2, state, log)
        _create_internet_gateway(ec2, state, log)
        _create_default_route(ec2, state)
        _create_security_group(ec2, state, descriptor, log)
    except ClientError as exc:
        raise DeploymentError(
            operation="create", message=f"Unable to set up network: {exc}"
        ) from exc


def find_tagged_resources(ec2: Any, resource_type: str, name: str) -> list[str]:
    """Return ids of resources of one type carrying ``Name=<name>``."""
    response = ec2.describe_tags(
        Filters=[
            {"Name": "resource-type", "Values": [resource_type]},
            {"Name": "key", "Values": ["Name"]},
            {"Name": "value", "Values": [name]},
        ]
    )
    return [tag["ResourceId"] for tag in response.get("Tags", [])]


def resolve_vpc_id(ec2: Any, state: ClusterState, operation: str = "delete") -> str:
    """Locate the deployment VPC by its Name tag and record its id.

    Raises:
        NotFoundError: If no VPC carries the tag
    """
    try:
        vpc_ids = find_tagged_resources(ec2, "vpc", state.vpc_name)
    except ClientError as exc:
        raise DeploymentError(
            operation=operation, message=f"Unable to describe tags for VPC: {exc}"
        ) from exc
    if not vpc_ids:
        raise NotFoundError(
            resource="vpc",
            message=f"Unable to find VPC {state.vpc_name}",
            operation=operation,
        )
    state.vpc_id = vpc_ids[0]
    return state.vpc_id


def delete_security_groups(ec2: Any, state: ClusterState, log: logging.Logger) -> None:
    """Delete security groups named after the deployment inside its VPC."""
    filters = [{"Name": "group-name", "Values": [state.security_group_name]}]
    if state.vpc_id:
        filters.append({"Name": "vpc-id", "Values": [state.vpc_id]})

    try:
        response = ec2.describe_security_groups(Filters=filters)
        for group in response.get("SecurityGroups", []):
            log.info("Deleting security group %s", group["GroupId"])
            ec2.delete_security_group(GroupId=group["GroupId"])
    except ClientError as exc:
        raise DeploymentError(
            operation="delete", message=f"Unable to delete security group: {exc}"
        ) from exc
    state.security_group_id = None


def _tagged_or_known(
    ec2: Any, resource_type: str, name: str, known_id: str | None
) -> list[str]:
    """Ids tagged ``Name=<name>``, else the id recorded before tagging."""
    resource_ids = find_tagged_resources(ec2, resource_type, name)
    if not resource_ids and known_id:
        resource_ids = [known_id]
    return resource_ids


def delete_internet_gateway(ec2: Any, state: ClusterState, log: logging.Logger) -> None:
    """Detach and delete the deployment's internet gateway."""
    try:
        gateway_ids = _tagged_or_known(
            ec2,
            "internet-gateway",
            state.internet_gateway_name,
            state.internet_gateway_id,
        )
        for gateway_id in gateway_ids:
            try:
                if state.vpc_id:
                    log.info("Detaching internet gateway %s", gateway_id)
                    try:
                        ec2.detach_internet_gateway(
                            InternetGatewayId=gateway_id, VpcId=state.vpc_id
                        )
                    except ClientError as exc:
                        if error_code(exc) != "Gateway.NotAttached":
                            raise
                log.info("Deleting internet gateway %s", gateway_id)
                ec2.delete_internet_gateway(InternetGatewayId=gateway_id)
            except ClientError as exc:
                if error_code(exc) != "InvalidInternetGatewayID.NotFound":
                    raise
                log.info("Internet gateway %s already deleted", gateway_id)
    except ClientError as exc:
        raise DeploymentError(
            operation="delete", message=f"Unable to delete internet gateway: {exc}"
        ) from exc
    state.internet_gateway_id = None


def delete_subnet(ec2: Any, state: ClusterState, log: logging.Logger) -> None:
    """Delete the deployment's subnet."""
    try:
        subnet_ids = _tagged_or_known(ec2, "subnet", state.subnet_name, state.subnet_id)
        for subnet_id in subnet_ids:
            log.info("Deleting subnet %s", subnet_id)
            try:
                ec2.delete_subnet(SubnetId=subnet_id)
            except ClientError as exc:
                if error_code(exc) != "InvalidSubnetID.NotFound":
                    raise
                log.info("Subnet %s already deleted", subnet_id)
    except ClientError as exc:
        raise DeploymentError(
            operation="delete", message=f"Unable to delete subnet: {exc}"
        ) from exc
    state.subnet_id = None


def delete_vpc(ec2: Any, state: ClusterState, log: logging.Logger) -> None:
    """Delete the deployment's VPC."""
    if not state.vpc_id:
        return
    log.info("Deleting VPC %s", state.vpc_id)
    try:
        ec2.delete_vpc(VpcId=state.vpc_id)
    except ClientError as exc:
        if error_code(exc) != "InvalidVpcID.NotFound":
            raise DeploymentError(
                operation="delete", message=f"Unable to delete VPC: {exc}"
            ) from exc
    state.vpc_id = None
