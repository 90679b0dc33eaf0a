"""clusterdeck - Provision and tear down container clusters on AWS.

clusterdeck takes a deployment descriptor (nodes, container task definitions,
node/task mappings, firewall ports) and builds the whole stack for it: IAM
role, VPC networking, EC2 instances and an ECS cluster with one pinned
service per mapping. Deleting a deployment tears the stack down again.

Main features:
- Pluggable backend deployers selected by technology tag
- Ordered provisioning with best-effort rollback on failure
- Tag-based rediscovery of resources after a restart
- Thread-safe in-memory deployment registry backed by a JSON store
"""

from clusterdeck.lib.errors import (
    ClusterDeckError,
    ConfigError,
    DeploymentError,
    ValidationError,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ClusterDeckError",
    "ConfigError",
    "DeploymentError",
    "ValidationError",
]
