"""Default values and fixed cloud documents used by clusterdeck."""

import json

# ECS-optimized AMIs by region, used when a node does not name its own image
ECS_AMIS: dict[str, str] = {
    "us-east-1": "ami-b2df2ca4",
    "us-east-2": "ami-832b0ee6",
    "us-west-1": "ami-dd104dbd",
    "us-west-2": "ami-022b9262",
    "eu-west-1": "ami-a7f2acc1",
    "eu-west-2": "ami-3fb6bc5b",
    "eu-central-1": "ami-ec2be583",
    "ap-northeast-1": "ami-c393d6a4",
    "ap-southeast-1": "ami-a88530cb",
    "ap-southeast-2": "ami-8af8ffe9",
    "ca-central-1": "ami-ead5688e",
}

# Ports always opened on the security group: ssh, http and the weave mesh
REQUIRED_INGRESS: frozenset[tuple[int, str]] = frozenset(
    {
        (22, "tcp"),
        (80, "tcp"),
        (6783, "tcp"),
        (6783, "udp"),
        (6784, "udp"),
    }
)

INGRESS_CIDR = "0.0.0.0/0"
VPC_CIDR = "172.31.0.0/28"
SUBNET_CIDR = "172.31.0.0/28"

# Container-instance attribute used to pin services to nodes
PLACEMENT_ATTRIBUTE_NAME = "imageId"

DEPLOYMENT_TAG_KEY = "Deployment"
WEAVE_PEER_GROUP_TAG_KEY = "weave:peerGroupName"

TRUST_DOCUMENT = json.dumps(
    {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Service": "ec2.amazonaws.com"},
                "Action": "sts:AssumeRole",
            }
        ],
    }
)

DEFAULT_ROLE_POLICY = json.dumps(
    {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": [
                    "ecs:CreateCluster",
                    "ecs:DeregisterContainerInstance",
                    "ecs:DiscoverPollEndpoint",
                    "ecs:Poll",
                    "ecs:RegisterContainerInstance",
                    "ecs:StartTelemetrySession",
                    "ecs:Submit*",
                    "ecs:StartTask",
                    "ecs:ListClusters",
                    "ecs:DescribeClusters",
                    "ecs:RegisterTaskDefinition",
                    "ecs:RunTask",
                    "ecs:StopTask",
                    "ecs:DescribeContainerInstances",
                    "ecs:DescribeTaskDefinition",
                    "ecs:ListContainerInstances",
                    "ecs:ListServices",
                    "ecs:ListTasks",
                    "ecs:DescribeTasks",
                    "ecr:GetAuthorizationToken",
                    "ecr:BatchCheckLayerAvailability",
                    "ecr:GetDownloadUrlForLayer",
                    "ecr:BatchGetImage",
                    "ec2:DescribeInstances",
                    "ec2:DescribeTags",
                    "logs:CreateLogStream",
                    "logs:PutLogEvents",
                ],
                "Resource": "*",
            }
        ],
    }
)

ECS_USER_DATA_TEMPLATE = """#!/bin/bash
echo ECS_CLUSTER={cluster_name} >> /etc/ecs/ecs.config
echo manual > /etc/weave/scope.override
weave launch"""

SETTINGS_FILE_NAME = "clusterdeck.yaml"
STORE_FILE_NAME = "deployments.json"
