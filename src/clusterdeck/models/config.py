"""Pydantic model for clusterdeck process settings."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DeployerSettings(BaseModel):
    """Settings shared by every deployment handled by the process.

    Attributes:
        files_path: Base directory for the store file and deployment logs
        ssh_user: Login user on provisioned nodes
        cluster_poll_interval: Seconds between cluster readiness polls
        cluster_ready_timeout: Seconds before giving up on cluster readiness;
            None waits forever
        default_deploy_type: Backend used when none is given
    """

    model_config = ConfigDict(extra="forbid")

    files_path: Path = Field(default=Path(".clusterdeck"))
    ssh_user: str = Field(default="ec2-user", min_length=1)
    cluster_poll_interval: float = Field(default=3.0, gt=0)
    cluster_ready_timeout: float | None = Field(default=900.0)
    default_deploy_type: str = Field(default="ECS")

    @field_validator("cluster_ready_timeout")
    @classmethod
    def validate_timeout(cls, v: float | None) -> float | None:
        """Validate the readiness timeout is positive when set."""
        if v is not None and v <= 0:
            raise ValueError("cluster_ready_timeout must be positive or null")
        return v

    @field_validator("default_deploy_type")
    @classmethod
    def normalize_deploy_type(cls, v: str) -> str:
        return v.upper()
