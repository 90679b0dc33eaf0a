"""Pydantic models for deployment descriptors.

A descriptor is everything a user submits to get a cluster: the nodes to
launch, the container task definitions to register, which task runs on which
node, extra firewall ports, the IAM role policy and files to copy onto the
nodes. Descriptors are immutable once accepted.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Port = Annotated[int, Field(ge=1, le=65535)]


class Node(BaseModel):
    """A compute node to launch.

    Attributes:
        id: Logical node id referenced by node mappings
        instance_type: EC2 instance type (e.g., t2.medium)
        image_id: AMI override; defaults to the region's ECS-optimized AMI
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: int = Field(..., ge=1, description="Logical node id")
    instance_type: str = Field(..., min_length=1, description="EC2 instance type")
    image_id: str | None = Field(default=None, description="AMI override")


class PortMapping(BaseModel):
    """Container to host port mapping."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    container_port: Port
    host_port: Port | None = None
    protocol: str = Field(default="tcp", pattern="^(tcp|udp)$")

    @property
    def published_port(self) -> int:
        """Host port the container is reachable on."""
        return self.host_port or self.container_port


class ContainerDefinition(BaseModel):
    """A single container inside a task definition."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., min_length=1, description="Container name")
    image: str = Field(..., min_length=1, description="Container image")
    cpu: int | None = Field(default=None, ge=0, description="CPU units")
    memory: int | None = Field(default=None, ge=4, description="Hard memory limit (MiB)")
    memory_reservation: int | None = Field(
        default=None, ge=4, description="Soft memory limit (MiB)"
    )
    essential: bool = Field(default=True)
    port_mappings: list[PortMapping] = Field(default_factory=list)
    environment: dict[str, str] = Field(default_factory=dict)
    command: list[str] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)

    def to_ecs(self, region: str) -> dict[str, Any]:
        """Return the ECS ``containerDefinitions`` entry for this container.

        Every container logs through the ``awslogs`` driver into a log group
        named after the container.
        """
        definition: dict[str, Any] = {
            "name": self.name,
            "image": self.image,
            "essential": self.essential,
            "logConfiguration": {
                "logDriver": "awslogs",
                "options": {
                    "awslogs-group": self.name,
                    "awslogs-region": region,
                    "awslogs-stream-prefix": "awslogs",
                },
            },
        }
        if self.cpu is not None:
            definition["cpu"] = self.cpu
        if self.memory is not None:
            definition["memory"] = self.memory
        if self.memory_reservation is not None:
            definition["memoryReservation"] = self.memory_reservation
        if self.port_mappings:
            definition["portMappings"] = [
                {
                    "containerPort": mapping.container_port,
                    "hostPort": mapping.published_port,
                    "protocol": mapping.protocol,
                }
                for mapping in self.port_mappings
            ]
        if self.environment:
            definition["environment"] = [
                {"name": key, "value": value} for key, value in self.environment.items()
            ]
        if self.command:
            definition["command"] = list(self.command)
        if self.links:
            definition["links"] = list(self.links)
        return definition


class TaskDefinition(BaseModel):
    """An ECS task definition family."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    family: str = Field(..., min_length=1, description="Task definition family")
    network_mode: str = Field(default="bridge", description="Docker network mode")
    container_definitions: list[ContainerDefinition] = Field(..., min_length=1)

    def to_ecs(self, region: str) -> dict[str, Any]:
        """Return ``RegisterTaskDefinition`` keyword arguments."""
        return {
            "family": self.family,
            "networkMode": self.network_mode,
            "containerDefinitions": [
                container.to_ecs(region) for container in self.container_definitions
            ],
        }


class NodeMapping(BaseModel):
    """Places one task family on one logical node.

    Attributes:
        id: Logical node id
        task: Task definition family
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: int = Field(..., ge=1, description="Logical node id")
    task: str = Field(..., min_length=1, description="Task definition family")

    @property
    def service_name(self) -> str:
        """ECS service name derived from the mapping."""
        return f"{self.task}-{self.id}"

    @property
    def placement_attribute(self) -> str:
        """Container-instance attribute value pinning the service to its node."""
        return f"{self.id}-{self.task}"


class IdentityRoleSpec(BaseModel):
    """IAM role policy granted to every node."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    policy_document: str | None = Field(
        default=None, description="IAM policy JSON; a default ECS policy is used if unset"
    )


class FileUpload(BaseModel):
    """A previously uploaded file to copy onto every node."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    file_id: str = Field(..., min_length=1, description="Uploaded file id")
    path: str = Field(..., min_length=1, description="Target path on the node")


class DeploymentDescriptor(BaseModel):
    """Main deployment descriptor model.

    Attributes:
        name: Deployment name (a unique suffix may be appended on creation)
        region: AWS region
        user_id: Owner; selects the stored AWS profile
        nodes: Nodes to launch, in order
        task_definitions: Task definitions to register
        node_mapping: Task placement on nodes; one ECS service per entry
        allowed_ports: Extra TCP ports to open to the world
        iam_role: Node IAM role policy
        files: Files to upload to every node
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., min_length=1, pattern=r"^[A-Za-z0-9][A-Za-z0-9-]*$")
    region: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    nodes: list[Node] = Field(..., min_length=1)
    task_definitions: list[TaskDefinition] = Field(default_factory=list)
    node_mapping: list[NodeMapping] = Field(default_factory=list)
    allowed_ports: list[Port] = Field(default_factory=list)
    iam_role: IdentityRoleSpec = Field(default_factory=IdentityRoleSpec)
    files: list[FileUpload] = Field(default_factory=list)

    @field_validator("nodes")
    @classmethod
    def validate_unique_node_ids(cls, v: list[Node]) -> list[Node]:
        """Validate node ids are unique."""
        ids = [node.id for node in v]
        duplicates = sorted({node_id for node_id in ids if ids.count(node_id) > 1})
        if duplicates:
            raise ValueError(f"Duplicate node ids: {duplicates}")
        return v

    @field_validator("task_definitions")
    @classmethod
    def validate_unique_families(cls, v: list[TaskDefinition]) -> list[TaskDefinition]:
        """Validate task definition families are unique."""
        families = [task.family for task in v]
        if len(families) != len(set(families)):
            raise ValueError(f"Duplicate task definition families: {families}")
        return v

    @model_validator(mode="after")
    def validate_node_mapping(self) -> DeploymentDescriptor:
        """Validate mappings reference declared nodes and tasks, one per node."""
        node_ids = {node.id for node in self.nodes}
        families = {task.family for task in self.task_definitions}
        mapped = [mapping.id for mapping in self.node_mapping]
        shared = sorted({node_id for node_id in mapped if mapped.count(node_id) > 1})
        if shared:
            raise ValueError(
                f"node_mapping assigns more than one task to nodes {shared}"
            )
        for mapping in self.node_mapping:
            if mapping.id not in node_ids:
                raise ValueError(
                    f"node_mapping references unknown node id {mapping.id}"
                )
            if mapping.task not in families:
                raise ValueError(
                    f"node_mapping references unknown task '{mapping.task}'"
                )
        return self

    def find_container(self, container_name: str) -> tuple[TaskDefinition, ContainerDefinition] | None:
        """Return the task definition and container with the given name."""
        for task in self.task_definitions:
            for container in task.container_definitions:
                if container.name == container_name:
                    return task, container
        return None

    def container_names(self) -> list[str]:
        """Return every container name across all task definitions."""
        return [
            container.name
            for task in self.task_definitions
            for container in task.container_definitions
        ]
