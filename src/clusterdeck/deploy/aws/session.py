"""boto3 session and client helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import boto3
from botocore.exceptions import ClientError

from clusterdeck.models.registry import AWSProfile


@dataclass(frozen=True)
class AWSClients:
    """The AWS service clients one deployment talks to."""

    ec2: Any
    ecs: Any
    iam: Any
    logs: Any


def create_clients(profile: AWSProfile, region: str) -> AWSClients:
    """Create service clients for a user's credentials in one region."""
    session = boto3.session.Session(
        aws_access_key_id=profile.aws_id,
        aws_secret_access_key=profile.aws_secret,
        region_name=region,
    )
    return AWSClients(
        ec2=session.client("ec2"),
        ecs=session.client("ecs"),
        iam=session.client("iam"),
        logs=session.client("logs"),
    )


def error_code(exc: ClientError) -> str:
    """Return the AWS error code of a ClientError."""
    return str(exc.response.get("Error", {}).get("Code", ""))


def name_tag(name: str) -> list[dict[str, str]]:
    """Return a single ``Name`` tag."""
    return [{"Key": "Name", "Value": name}]
