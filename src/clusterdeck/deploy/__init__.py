"""clusterdeck deployment engine.

This package provides the cluster lifecycle: the provisioning and teardown
pipelines, the AWS step library, backend deployers, the deployment registry
and its file store.
"""

from clusterdeck.deploy.manager import DeploymentManager
from clusterdeck.deploy.registry import DeploymentRegistry
from clusterdeck.deploy.store import FileStore

__all__ = [
    "DeploymentManager",
    "DeploymentRegistry",
    "FileStore",
]
