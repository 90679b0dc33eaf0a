"""Base interface for cluster backend deployers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from clusterdeck.lib.errors import UnsupportedOperationError
from clusterdeck.models.cluster import DeploymentResult, ServiceAddress, ServiceMapping
from clusterdeck.models.config import DeployerSettings
from clusterdeck.models.descriptor import DeploymentDescriptor


class BaseDeployer(ABC):
    """Abstract base class for cluster backend deployers.

    A deployer owns exactly one deployment: its descriptor, its cluster state
    and its log. Pipelines run synchronously on the caller's thread.
    """

    deploy_type: str = ""

    def __init__(
        self,
        settings: DeployerSettings,
        descriptor: DeploymentDescriptor,
        log: logging.Logger,
    ) -> None:
        self.settings = settings
        self.descriptor = descriptor
        self.log = log
        self._scheduler: Any = None

    @property
    def name(self) -> str:
        """Unique deployment name."""
        return self.descriptor.name

    @abstractmethod
    def create_deployment(
        self, uploaded_files: Mapping[str, str]
    ) -> DeploymentResult | None:
        """Provision the whole cluster.

        Not idempotent: call once per deployer.

        Args:
            uploaded_files: Local paths of uploaded files keyed by
                ``<user_id>_<file_id>``

        Returns:
            Backend-specific result, or None when the backend has none.

        Raises:
            ProvisioningError: If a step fails; whatever was created has
                already been torn down.
        """

    def update_deployment(self, descriptor: DeploymentDescriptor) -> None:
        """Update a running deployment in place.

        Raises:
            UnsupportedOperationError: Always
        """
        raise UnsupportedOperationError("update")

    def deploy_extensions(
        self, extensions: DeploymentDescriptor, merged: DeploymentDescriptor
    ) -> None:
        """Add nodes and tasks to a running deployment.

        Raises:
            UnsupportedOperationError: Always
        """
        raise UnsupportedOperationError("deploy_extensions")

    @abstractmethod
    def delete_deployment(self) -> None:
        """Tear down every resource of the deployment.

        Safe after a partial or a full creation, and safe to call twice.

        Raises:
            TeardownError: If one or more teardown steps failed
            NotFoundError: If the deployment network cannot be located
        """

    @abstractmethod
    def reload_cluster_state(self, store_info: Mapping[str, Any] | None) -> None:
        """Rebuild cluster state from the cloud after a restart.

        Args:
            store_info: Value previously returned by ``get_store_info``

        Raises:
            NotFoundError: If the deployment can no longer be located
        """

    @abstractmethod
    def get_service_address(self, service: str) -> ServiceAddress:
        """Return where a container's published port can be reached.

        Raises:
            NotFoundError: If the service is not mapped to a running node
        """

    def get_service_url(self, service: str) -> str:
        """Return a container's published endpoint as ``host:port``."""
        return str(self.get_service_address(service))

    @abstractmethod
    def get_service_mappings(self) -> dict[str, ServiceMapping]:
        """Return where every mapped service runs, keyed by service name."""

    @abstractmethod
    def get_store_info(self) -> dict[str, Any]:
        """Return cluster details to persist for ``reload_cluster_state``."""

    @abstractmethod
    def new_store_info(self) -> dict[str, Any]:
        """Return an empty store info value for this backend."""

    def get_scheduler(self) -> Any:
        """Return the job scheduler handle attached to this deployment."""
        return self._scheduler

    def set_scheduler(self, scheduler: Any) -> None:
        """Attach a job scheduler handle to this deployment."""
        self._scheduler = scheduler
