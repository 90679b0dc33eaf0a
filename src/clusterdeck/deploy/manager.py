"""Deployment lifecycle management.

The manager ties deployers, the registry and the store together: it moves a
deployment through its lifecycle states based on pipeline outcomes and
persists every transition.
"""

from __future__ import annotations

from collections.abc import Callable, Collection, Mapping
from datetime import datetime, timezone
from typing import Any

from clusterdeck.deploy.deployers import create_deployer
from clusterdeck.deploy.deployers.base import BaseDeployer
from clusterdeck.deploy.registry import DeploymentRegistry
from clusterdeck.deploy.store import FileStore
from clusterdeck.lib.errors import DeploymentError, ValidationError
from clusterdeck.lib.logging_config import close_deployment_logger, get_logger
from clusterdeck.models.cluster import DeploymentResult
from clusterdeck.models.config import DeployerSettings
from clusterdeck.models.descriptor import DeploymentDescriptor
from clusterdeck.models.registry import (
    AWSProfile,
    DeploymentRecord,
    DeploymentStatus,
    RegistryEntry,
)

logger = get_logger(__name__)

DeployerFactory = Callable[..., BaseDeployer]

# Statuses an interrupted process can leave behind; restored as FAILED
_INTERRUPTED = (DeploymentStatus.CREATING, DeploymentStatus.DELETING)


class DeploymentManager:
    """Create, delete and look up deployments."""

    def __init__(
        self,
        settings: DeployerSettings,
        registry: DeploymentRegistry,
        store: FileStore,
        deployer_factory: DeployerFactory = create_deployer,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.store = store
        self._deployer_factory = deployer_factory

    def _profile_for(self, user_id: str) -> AWSProfile:
        profile = self.registry.get_profile(user_id)
        if profile is None:
            raise ValidationError(
                field="user_id",
                message="No AWS profile is stored for this user",
                expected="a user with a stored AWS profile",
                actual=user_id,
            )
        return profile

    def _persist(
        self,
        entry: RegistryEntry,
        deployer: BaseDeployer,
        store_info: dict[str, Any] | None = None,
    ) -> None:
        if store_info is None:
            store_info = deployer.get_store_info()
        self.store.store_deployment(
            DeploymentRecord(
                name=entry.name,
                deploy_type=entry.deploy_type,
                user_id=entry.user_id,
                status=entry.status,
                created=entry.created,
                descriptor=deployer.descriptor,
                store_info=store_info,
            )
        )

    def _fail(self, entry: RegistryEntry, deployer: BaseDeployer) -> None:
        self.registry.transition(entry.name, DeploymentStatus.FAILED)
        self._persist(entry, deployer)

    def create(
        self,
        descriptor: DeploymentDescriptor,
        deploy_type: str | None = None,
        uploaded_files: Mapping[str, str] | None = None,
        create_name: bool = False,
    ) -> DeploymentResult | None:
        """Provision a new deployment and register it.

        Args:
            descriptor: Accepted deployment descriptor
            deploy_type: Backend tag; defaults to the configured backend
            uploaded_files: Local paths of uploaded files keyed by
                ``<user_id>_<file_id>``
            create_name: Append a unique suffix to the deployment name

        Raises:
            ValidationError: If the user has no stored AWS profile
            DeploymentError: If the backend is unknown or provisioning fails
        """
        profile = self._profile_for(descriptor.user_id)
        deploy_type = (deploy_type or self.settings.default_deploy_type).upper()
        deployer = self._deployer_factory(
            deploy_type, self.settings, profile, descriptor, create_name=create_name
        )

        entry = RegistryEntry(
            name=deployer.name,
            deploy_type=deploy_type,
            user_id=descriptor.user_id,
            created=datetime.now(timezone.utc),
            deployer=deployer,
        )
        self.registry.add(entry)
        self._persist(entry, deployer)
        logger.info("Creating deployment %s (%s)", entry.name, deploy_type)

        try:
            result = deployer.create_deployment(uploaded_files or {})
        except DeploymentError:
            logger.error("Deployment %s failed", entry.name)
            self._fail(entry, deployer)
            raise

        self.registry.transition(entry.name, DeploymentStatus.READY)
        self._persist(entry, deployer)
        logger.info("Deployment %s is ready", entry.name)
        return result

    def delete(self, name: str) -> None:
        """Tear down a deployment.

        Raises:
            NotFoundError: If the deployment is not registered
            DeploymentError: If the deployment cannot be deleted in its
                current status, or teardown fails
        """
        entry = self.registry.get(name)
        deployer: BaseDeployer = entry.deployer
        self.registry.transition(name, DeploymentStatus.DELETING)
        self._persist(entry, deployer)
        logger.info("Deleting deployment %s", name)

        try:
            deployer.delete_deployment()
        except DeploymentError:
            logger.error("Deleting deployment %s failed", name)
            self._fail(entry, deployer)
            raise

        self.registry.transition(name, DeploymentStatus.DELETED)
        self._persist(entry, deployer)
        close_deployment_logger(name)
        logger.info("Deployment %s is deleted", name)

    def service_url(self, name: str, service: str) -> str:
        """Return ``host:port`` of a service in a ready deployment."""
        entry = self.registry.get(name)
        if entry.status is not DeploymentStatus.READY:
            raise DeploymentError(
                operation="lookup",
                message=f"Deployment {name} is {entry.status.value}, not Ready",
            )
        return entry.deployer.get_service_url(service)

    def assign_scheduler(self, name: str, scheduler: Any) -> None:
        """Attach a job scheduler handle to a deployment."""
        self.registry.get(name).deployer.set_scheduler(scheduler)

    def restore(self, names: Collection[str] | None = None) -> int:
        """Rebuild deployers for persisted deployments that still exist.

        READY and FAILED deployments are reloaded from the cloud. A deployment
        interrupted while creating or deleting is restored as FAILED so that
        it can be deleted again. A deployment whose cluster state cannot be
        reloaded is restored as FAILED.

        Args:
            names: Only restore these deployments

        Returns:
            Number of deployments restored
        """
        self.registry.load()
        if names is None:
            records = self.store.load_deployments()
        else:
            records = [
                record
                for record in map(self.store.get_deployment, names)
                if record is not None
            ]

        restored = 0
        for record in records:
            if record.status.is_terminal:
                continue
            profile = self.registry.get_profile(record.user_id)
            if profile is None:
                logger.warning(
                    "Skipping deployment %s: no AWS profile for user %s",
                    record.name,
                    record.user_id,
                )
                continue

            deployer = self._deployer_factory(
                record.deploy_type, self.settings, profile, record.descriptor
            )
            status = record.status
            if status in _INTERRUPTED:
                status = DeploymentStatus.FAILED
            store_info = None
            try:
                deployer.reload_cluster_state(record.store_info)
            except DeploymentError as exc:
                logger.warning(
                    "Unable to reload deployment %s: %s", record.name, exc.message
                )
                status = DeploymentStatus.FAILED
                store_info = record.store_info or deployer.new_store_info()

            entry = RegistryEntry(
                name=record.name,
                deploy_type=record.deploy_type,
                user_id=record.user_id,
                created=record.created,
                status=status,
                deployer=deployer,
            )
            self.registry.add(entry)
            if status is not record.status:
                self._persist(entry, deployer, store_info)
            restored += 1

        logger.info("Restored %d deployments", restored)
        return restored
