"""AWS ECS deployer implementation."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from botocore.exceptions import ClientError
from pydantic import ValidationError as PydanticValidationError

from clusterdeck.config.defaults import ECS_AMIS, PLACEMENT_ATTRIBUTE_NAME
from clusterdeck.deploy.aws import compute, ecs, iam, logs, network, upload
from clusterdeck.deploy.aws.session import AWSClients, create_clients
from clusterdeck.deploy.deployers.base import BaseDeployer
from clusterdeck.deploy.pipeline import ProvisioningPipeline, Step, TeardownPipeline
from clusterdeck.lib.errors import DeploymentError, NotFoundError, ValidationError
from clusterdeck.models.cluster import (
    ClusterState,
    DeploymentResult,
    ECSStoreInfo,
    KeyPairHandle,
    NodeInfo,
    ServiceAddress,
    ServiceMapping,
    StoredNodeInfo,
)
from clusterdeck.models.config import DeployerSettings
from clusterdeck.models.descriptor import DeploymentDescriptor
from clusterdeck.models.registry import AWSProfile


def validate_region(descriptor: DeploymentDescriptor) -> None:
    """Ensure every node has an image to boot in the descriptor's region.

    Raises:
        ValidationError: If the region has no known ECS image and a node does
            not name its own
    """
    if descriptor.region in ECS_AMIS:
        return
    if all(node.image_id for node in descriptor.nodes):
        return
    raise ValidationError(
        field="region",
        message="Region is not supported by the ECS deployer",
        expected=", ".join(sorted(ECS_AMIS)),
        actual=descriptor.region,
    )


class ECSDeployer(BaseDeployer):
    """Provision a cluster of EC2 nodes running ECS services."""

    deploy_type = "ECS"

    def __init__(
        self,
        settings: DeployerSettings,
        profile: AWSProfile,
        descriptor: DeploymentDescriptor,
        log: logging.Logger,
        clients: AWSClients | None = None,
    ) -> None:
        """Initialize the ECS deployer.

        Args:
            settings: Process-wide deployer settings
            profile: AWS credentials of the deployment owner
            descriptor: Accepted deployment descriptor
            log: Per-deployment logger
            clients: Pre-built AWS clients; created from ``profile`` if omitted

        Raises:
            ValidationError: If the descriptor's region is not supported
        """
        validate_region(descriptor)
        super().__init__(settings, descriptor, log)
        self.profile = profile
        self.clients = clients or create_clients(profile, descriptor.region)
        self.state = ClusterState(name=descriptor.name, region=descriptor.region)

    # Provisioning

    def _provisioning_steps(self, uploaded_files: Mapping[str, str]) -> list[Step]:
        c = self.clients
        s = self.state
        d = self.descriptor
        log = self.log
        return [
            Step("log groups", lambda: logs.setup_log_groups(c.logs, d, log)),
            Step("ecs cluster", lambda: ecs.setup_cluster(c.ecs, s, d, log)),
            Step("iam", lambda: iam.setup_iam(c.iam, s, d, log)),
            Step("network", lambda: network.setup_network(c.ec2, s, d, log)),
            Step("instances", lambda: compute.launch_instances(c.ec2, s, d, log)),
            Step("addresses", lambda: compute.populate_addresses(c.ec2, s, d, log)),
            Step(
                "upload files",
                lambda: upload.upload_files(
                    s, d, uploaded_files, self.settings.ssh_user, log
                ),
                skip_if=lambda: not d.files,
            ),
            Step(
                "cluster ready",
                lambda: ecs.wait_until_cluster_ready(
                    c.ecs,
                    s,
                    d,
                    log,
                    interval=self.settings.cluster_poll_interval,
                    timeout=self.settings.cluster_ready_timeout,
                ),
            ),
            Step(
                "placement attributes",
                lambda: ecs.assign_placement_attributes(c.ecs, s, d, log),
            ),
            Step("services", lambda: ecs.create_services(c.ecs, s, d, log)),
        ]

    def create_deployment(self, uploaded_files: Mapping[str, str]) -> DeploymentResult:
        self.log.info("Creating ECS deployment %s in %s", self.name, self.state.region)
        pipeline = ProvisioningPipeline(
            self._provisioning_steps(uploaded_files),
            rollback=self._teardown,
            logger=self.log,
        )
        pipeline.run()
        self.log.info("ECS deployment %s is ready", self.name)
        return DeploymentResult(
            name=self.name,
            deploy_type=self.deploy_type,
            service_mappings=self.get_service_mappings(),
        )

    # Teardown

    def _resolve_network(self) -> None:
        try:
            network.resolve_vpc_id(self.clients.ec2, self.state)
        except NotFoundError:
            if self.state.vpc_id is None:
                raise
            self.log.warning(
                "VPC %s is not tagged %s, using known id",
                self.state.vpc_id,
                self.state.vpc_name,
            )

    def _teardown_steps(self) -> list[Step]:
        c = self.clients
        s = self.state
        log = self.log
        return [
            Step(
                "check vpc",
                self._resolve_network,
                skip_if=lambda: not s.has_network,
                abort_on_failure=True,
            ),
            Step(
                "services",
                lambda: ecs.stop_services(c.ecs, s, log),
                skip_if=lambda: not s.service_names,
            ),
            Step(
                "task definitions",
                lambda: ecs.deregister_task_definitions(c.ecs, s, log),
                skip_if=lambda: not s.task_families,
            ),
            Step(
                "instances",
                lambda: compute.terminate_instances(c.ec2, s, log),
                skip_if=lambda: not s.instance_ids,
            ),
            Step(
                "role from instance profile",
                lambda: iam.detach_role(c.iam, s, log),
                skip_if=lambda: not s.role_attached,
            ),
            Step(
                "instance profile",
                lambda: iam.delete_instance_profile(c.iam, s, log),
                skip_if=lambda: not s.instance_profile_created,
            ),
            Step(
                "role policy",
                lambda: iam.delete_role_policy(c.iam, s, log),
                skip_if=lambda: not s.role_policy_created,
            ),
            Step(
                "role",
                lambda: iam.delete_role(c.iam, s, log),
                skip_if=lambda: not s.role_created,
            ),
            Step(
                "key pair",
                lambda: compute.delete_key_pair(c.ec2, s, log),
                skip_if=lambda: s.key_pair is None,
            ),
            Step(
                "security group",
                lambda: network.delete_security_groups(c.ec2, s, log),
                skip_if=lambda: not s.security_group_id,
            ),
            Step(
                "internet gateway",
                lambda: network.delete_internet_gateway(c.ec2, s, log),
                skip_if=lambda: not s.internet_gateway_id,
            ),
            Step(
                "subnet",
                lambda: network.delete_subnet(c.ec2, s, log),
                skip_if=lambda: not s.subnet_id,
            ),
            Step(
                "vpc",
                lambda: network.delete_vpc(c.ec2, s, log),
                skip_if=lambda: not s.vpc_id,
            ),
            Step(
                "ecs cluster",
                lambda: ecs.delete_cluster(c.ecs, s, log),
                skip_if=lambda: not s.cluster_created,
            ),
        ]

    def _teardown(self) -> None:
        TeardownPipeline(self._teardown_steps(), logger=self.log).run()
        self.state.clear()

    def delete_deployment(self) -> None:
        self.log.info("Deleting ECS deployment %s", self.name)
        self._teardown()
        self.log.info("ECS deployment %s is deleted", self.name)

    # Reload

    def reload_cluster_state(self, store_info: Mapping[str, Any] | None) -> None:
        ec2 = self.clients.ec2
        state = self.state
        try:
            stored = ECSStoreInfo.model_validate(store_info or {})
        except PydanticValidationError as exc:
            raise DeploymentError(
                operation="reload", message=f"Invalid store info: {exc}"
            ) from exc

        # Name-derived resources stay deletable even if the VPC is gone
        self._mark_named_resources()
        try:
            instances = compute.find_deployment_instances(ec2, state.name)
        except ClientError as exc:
            raise DeploymentError(
                operation="reload", message=f"Unable to find instances: {exc}"
            ) from exc
        state.instance_ids = [instance["InstanceId"] for instance in instances]

        self._reload_vpc_id(stored)
        try:
            self._reload_network_ids()
            container_instances = ecs.describe_container_instances(
                self.clients.ecs, state.cluster_name
            )
        except ClientError as exc:
            raise DeploymentError(
                operation="reload", message=f"Unable to reload cluster state: {exc}"
            ) from exc

        if stored.node_infos:
            state.node_infos = {
                node_id: NodeInfo(**info.model_dump())
                for node_id, info in stored.node_infos.items()
            }
        else:
            state.node_infos = self._node_infos_from_attributes(container_instances)

        for instance in instances:
            found = state.node_for_instance(instance["InstanceId"])
            if found is not None:
                found[1].public_address = instance.get("PublicDnsName")
                found[1].private_address = instance.get("PrivateIpAddress")
        for container_instance in container_instances:
            found = state.node_for_instance(container_instance.get("ec2InstanceId", ""))
            if found is not None:
                found[1].agent_registration_id = container_instance[
                    "containerInstanceArn"
                ]

        self.log.info(
            "Reloaded ECS deployment %s: vpc %s, %d instances",
            state.name,
            state.vpc_id,
            len(state.instance_ids),
        )

    def _mark_named_resources(self) -> None:
        state = self.state
        state.key_pair = KeyPairHandle(key_name=state.key_name, key_material="")
        state.cluster_created = True
        state.task_families = [task.family for task in self.descriptor.task_definitions]
        state.service_names = [m.service_name for m in self.descriptor.node_mapping]
        state.role_created = True
        state.role_policy_created = True
        state.instance_profile_created = True
        state.role_attached = True

    def _reload_vpc_id(self, stored: ECSStoreInfo) -> None:
        """Locate the VPC by tag, falling back to the persisted id.

        Raises:
            NotFoundError: If neither the tag nor the store knows the VPC
        """
        try:
            network.resolve_vpc_id(self.clients.ec2, self.state, operation="reload")
        except NotFoundError:
            if stored.vpc_id is None:
                try:
                    self._reload_network_ids()
                except ClientError as exc:
                    self.log.warning(
                        "Unable to look up subnet and gateway tags: %s", exc
                    )
                raise
            self.log.warning(
                "VPC %s is not tagged, using stored id %s",
                self.state.vpc_name,
                stored.vpc_id,
            )
            self.state.vpc_id = stored.vpc_id

    def _reload_network_ids(self) -> None:
        ec2 = self.clients.ec2
        state = self.state
        subnet_ids = network.find_tagged_resources(ec2, "subnet", state.subnet_name)
        state.subnet_id = subnet_ids[0] if subnet_ids else None
        gateway_ids = network.find_tagged_resources(
            ec2, "internet-gateway", state.internet_gateway_name
        )
        state.internet_gateway_id = gateway_ids[0] if gateway_ids else None
        if state.vpc_id is None:
            return
        groups = ec2.describe_security_groups(
            Filters=[
                {"Name": "group-name", "Values": [state.security_group_name]},
                {"Name": "vpc-id", "Values": [state.vpc_id]},
            ]
        ).get("SecurityGroups", [])
        state.security_group_id = groups[0]["GroupId"] if groups else None

    def _node_infos_from_attributes(
        self, container_instances: list[dict[str, Any]]
    ) -> dict[int, NodeInfo]:
        by_attribute = {m.placement_attribute: m.id for m in self.descriptor.node_mapping}
        node_infos: dict[int, NodeInfo] = {}
        for container_instance in container_instances:
            for attribute in container_instance.get("attributes", []):
                if attribute.get("name") != PLACEMENT_ATTRIBUTE_NAME:
                    continue
                node_id = by_attribute.get(attribute.get("value", ""))
                if node_id is not None:
                    node_infos[node_id] = NodeInfo(
                        instance_id=container_instance["ec2InstanceId"]
                    )
        return node_infos

    # Service lookup

    def get_service_address(self, service: str) -> ServiceAddress:
        found = self.descriptor.find_container(service)
        if found is None or not found[1].port_mappings:
            raise NotFoundError(
                resource="container",
                message=f"Unable to find container {service} in task definitions",
            )
        task, container = found

        node_id = next(
            (m.id for m in self.descriptor.node_mapping if m.task == task.family),
            None,
        )
        if node_id is None:
            raise NotFoundError(
                resource="node mapping",
                message=f"Unable to find task {task.family} in node mappings",
            )

        node_info = self.state.node_infos.get(node_id)
        if node_info is None or not node_info.public_address:
            raise NotFoundError(
                resource="node", message=f"Unable to find node {node_id} in cluster"
            )
        return ServiceAddress(
            host=node_info.public_address,
            port=container.port_mappings[0].published_port,
        )

    def get_service_mappings(self) -> dict[str, ServiceMapping]:
        tasks = {task.family: task for task in self.descriptor.task_definitions}
        mappings: dict[str, ServiceMapping] = {}
        for mapping in self.descriptor.node_mapping:
            node_info = self.state.node_infos.get(mapping.id)
            if node_info is None:
                continue
            ports = [
                container.port_mappings[0].published_port
                for container in tasks[mapping.task].container_definitions
                if container.port_mappings
            ]
            mappings[mapping.service_name] = ServiceMapping(
                node_id=mapping.id,
                public_url=_url(node_info.public_address, ports),
                private_url=_url(node_info.private_address, ports),
            )
        return mappings

    # Persistence

    def get_store_info(self) -> dict[str, Any]:
        info = ECSStoreInfo(
            vpc_id=self.state.vpc_id,
            instance_ids=list(self.state.instance_ids),
            node_infos={
                node_id: StoredNodeInfo(
                    instance_id=node_info.instance_id,
                    agent_registration_id=node_info.agent_registration_id,
                    public_address=node_info.public_address,
                    private_address=node_info.private_address,
                )
                for node_id, node_info in self.state.node_infos.items()
            },
        )
        return info.model_dump(mode="json")

    def new_store_info(self) -> dict[str, Any]:
        return ECSStoreInfo().model_dump(mode="json")


def _url(address: str | None, ports: list[int]) -> str | None:
    if not address:
        return None
    if not ports:
        return address
    return f"{address}:{ports[0]}"
