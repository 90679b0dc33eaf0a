"""Cluster state tracked while a deployment is provisioned.

ClusterState is owned by exactly one deployer. Every field stays empty until
the pipeline step that creates the matching resource succeeds; teardown uses
that emptiness to skip resource kinds that were never created.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field


@dataclass
class NodeInfo:
    """Links a logical node id to the EC2 instance realizing it.

    Attributes:
        instance_id: EC2 instance id, known after launch
        agent_registration_id: ECS container-instance ARN, known after the
            agent registers with the cluster
        public_address: Public DNS name
        private_address: Private IP address
    """

    instance_id: str
    agent_registration_id: str | None = None
    public_address: str | None = None
    private_address: str | None = None


@dataclass(frozen=True)
class KeyPairHandle:
    """EC2 key pair created for a deployment."""

    key_name: str
    key_material: str = field(repr=False)


@dataclass
class ClusterState:
    """Provisioned resource identifiers for one deployment."""

    name: str
    region: str
    vpc_id: str | None = None
    subnet_id: str | None = None
    internet_gateway_id: str | None = None
    security_group_id: str | None = None
    key_pair: KeyPairHandle | None = None
    instance_ids: list[str] = field(default_factory=list)
    node_infos: dict[int, NodeInfo] = field(default_factory=dict)
    cluster_created: bool = False
    task_families: list[str] = field(default_factory=list)
    role_created: bool = False
    role_policy_created: bool = False
    instance_profile_created: bool = False
    role_attached: bool = False
    service_names: list[str] = field(default_factory=list)

    @property
    def cluster_name(self) -> str:
        return self.name

    @property
    def vpc_name(self) -> str:
        return f"{self.name}-vpc"

    @property
    def subnet_name(self) -> str:
        return f"{self.name}-subnet"

    @property
    def internet_gateway_name(self) -> str:
        return self.name

    @property
    def security_group_name(self) -> str:
        return self.name

    @property
    def key_name(self) -> str:
        return f"{self.name}-key"

    @property
    def role_name(self) -> str:
        return f"{self.name}-role"

    @property
    def policy_name(self) -> str:
        return f"{self.name}-policy"

    @property
    def instance_profile_name(self) -> str:
        return self.name

    @property
    def has_network(self) -> bool:
        """Whether any network resource was created."""
        return any(
            (
                self.vpc_id,
                self.subnet_id,
                self.internet_gateway_id,
                self.security_group_id,
            )
        )

    def node_for_instance(self, instance_id: str) -> tuple[int, NodeInfo] | None:
        """Return the node id and NodeInfo realized by an EC2 instance."""
        for node_id, node_info in self.node_infos.items():
            if node_info.instance_id == instance_id:
                return node_id, node_info
        return None

    def clear(self) -> None:
        """Forget every provisioned resource after a teardown."""
        self.vpc_id = None
        self.subnet_id = None
        self.internet_gateway_id = None
        self.security_group_id = None
        self.key_pair = None
        self.instance_ids = []
        self.node_infos = {}
        self.cluster_created = False
        self.task_families = []
        self.role_created = False
        self.role_policy_created = False
        self.instance_profile_created = False
        self.role_attached = False
        self.service_names = []


class StoredNodeInfo(BaseModel):
    """Persisted form of NodeInfo."""

    model_config = ConfigDict(extra="forbid")

    instance_id: str
    agent_registration_id: str | None = None
    public_address: str | None = None
    private_address: str | None = None


class ECSStoreInfo(BaseModel):
    """Cluster details persisted for an ECS deployment.

    Used to rebuild cluster state after the process restarts.
    """

    model_config = ConfigDict(extra="forbid")

    vpc_id: str | None = Field(default=None, description="VPC id")
    instance_ids: list[str] = Field(default_factory=list, description="EC2 instances")
    node_infos: dict[int, StoredNodeInfo] = Field(
        default_factory=dict, description="Node infos keyed by logical node id"
    )


class ServiceAddress(BaseModel):
    """Reachable network endpoint of a service."""

    model_config = ConfigDict(extra="forbid")

    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class ServiceMapping(BaseModel):
    """Where a mapped service runs."""

    model_config = ConfigDict(extra="forbid")

    node_id: int
    public_url: str | None = None
    private_url: str | None = None


class DeploymentResult(BaseModel):
    """Outcome of a successful provisioning run."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Deployment name")
    deploy_type: str = Field(..., description="Backend technology tag")
    service_mappings: dict[str, ServiceMapping] = Field(
        default_factory=dict, description="Where each mapped service runs"
    )
