"""Registry and persistence models for deployments and user profiles."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from clusterdeck.models.descriptor import DeploymentDescriptor


class DeploymentStatus(str, Enum):
    """Lifecycle status of a deployment."""

    CREATING = "Creating"
    READY = "Ready"
    DELETING = "Deleting"
    DELETED = "Deleted"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self is DeploymentStatus.DELETED


# Allowed lifecycle transitions; FAILED is reachable from every non-terminal state
STATUS_TRANSITIONS: dict[DeploymentStatus, frozenset[DeploymentStatus]] = {
    DeploymentStatus.CREATING: frozenset(
        {DeploymentStatus.READY, DeploymentStatus.FAILED}
    ),
    DeploymentStatus.READY: frozenset(
        {DeploymentStatus.DELETING, DeploymentStatus.FAILED}
    ),
    DeploymentStatus.FAILED: frozenset({DeploymentStatus.DELETING}),
    DeploymentStatus.DELETING: frozenset(
        {DeploymentStatus.DELETED, DeploymentStatus.FAILED}
    ),
    DeploymentStatus.DELETED: frozenset(),
}


def can_transition(current: DeploymentStatus, target: DeploymentStatus) -> bool:
    """Return True if ``current`` may move to ``target``."""
    return target in STATUS_TRANSITIONS[current]


class AWSProfile(BaseModel):
    """AWS credentials stored for a user."""

    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., min_length=1, description="User id")
    aws_id: str = Field(..., min_length=1, description="AWS access key id")
    aws_secret: str = Field(..., min_length=1, repr=False, description="AWS secret key")


class DeploymentRecord(BaseModel):
    """Persisted record of a deployment."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Unique deployment name")
    deploy_type: str = Field(..., description="Backend technology tag")
    user_id: str = Field(..., description="Owning user")
    status: DeploymentStatus = Field(..., description="Lifecycle status")
    created: datetime = Field(..., description="Creation timestamp (UTC)")
    updated: datetime | None = Field(default=None, description="Last update timestamp")
    descriptor: DeploymentDescriptor = Field(..., description="Accepted descriptor")
    store_info: dict[str, Any] | None = Field(
        default=None, description="Backend-defined cluster details"
    )


class StoreState(BaseModel):
    """Top-level store file content."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="1.0", description="Store file version")
    deployments: dict[str, DeploymentRecord] = Field(
        default_factory=dict, description="Deployments keyed by name"
    )
    profiles: dict[str, AWSProfile] = Field(
        default_factory=dict, description="AWS profiles keyed by user id"
    )


class DeploymentSummary(BaseModel):
    """Row returned by registry listings."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    deploy_type: str
    user_id: str
    status: DeploymentStatus
    created: datetime


@dataclass
class RegistryEntry:
    """In-memory registry entry for a live deployment.

    Attributes:
        name: Unique deployment name
        deploy_type: Backend technology tag
        user_id: Owning user
        created: Creation timestamp (UTC)
        status: Lifecycle status
        deployer: Backend deployer owning the cluster state
    """

    name: str
    deploy_type: str
    user_id: str
    created: datetime
    status: DeploymentStatus = DeploymentStatus.CREATING
    deployer: Any = field(default=None, repr=False)

    def summary(self) -> DeploymentSummary:
        return DeploymentSummary(
            name=self.name,
            deploy_type=self.deploy_type,
            user_id=self.user_id,
            status=self.status,
            created=self.created,
        )
