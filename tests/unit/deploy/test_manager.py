"""Unit tests for DeploymentManager lifecycle handling."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from unittest.mock import MagicMock

import pytest

from clusterdeck.deploy.aws.session import AWSClients
from clusterdeck.deploy.deployers.aws_ecs import ECSDeployer
from clusterdeck.deploy.deployers.base import BaseDeployer
from clusterdeck.deploy.manager import DeploymentManager
from clusterdeck.deploy.registry import DeploymentRegistry
from clusterdeck.deploy.store import FileStore
from clusterdeck.lib.errors import (
    DeploymentError,
    NotFoundError,
    ProvisioningError,
    TeardownError,
    ValidationError,
)
from clusterdeck.models.cluster import DeploymentResult
from clusterdeck.models.config import DeployerSettings
from clusterdeck.models.descriptor import DeploymentDescriptor
from clusterdeck.models.registry import AWSProfile, DeploymentRecord, DeploymentStatus


def _fake_deployer(descriptor: DeploymentDescriptor) -> MagicMock:
    deployer = MagicMock(spec=BaseDeployer)
    deployer.name = descriptor.name
    deployer.descriptor = descriptor
    deployer.get_store_info.return_value = {"vpc_id": "vpc-1"}
    deployer.new_store_info.return_value = {}
    deployer.create_deployment.return_value = DeploymentResult(
        name=descriptor.name, deploy_type="ECS"
    )
    deployer.get_service_url.return_value = "ec2-1.compute.amazonaws.com:8080"
    return deployer


class FakeFactory:
    """Deployer factory recording the deployers it builds."""

    def __init__(self) -> None:
        self.deployers: list[MagicMock] = []
        self.calls: list[tuple[Any, ...]] = []

    def __call__(
        self,
        deploy_type: str,
        settings: DeployerSettings,
        profile: AWSProfile,
        descriptor: DeploymentDescriptor,
        create_name: bool = False,
    ) -> MagicMock:
        self.calls.append((deploy_type, profile.user_id, create_name))
        deployer = _fake_deployer(descriptor)
        self.deployers.append(deployer)
        return deployer


@pytest.fixture
def store(settings: DeployerSettings) -> FileStore:
    """Store under the test files directory."""
    return FileStore(settings.files_path)


@pytest.fixture
def factory() -> FakeFactory:
    """Recording deployer factory."""
    return FakeFactory()


@pytest.fixture
def manager(
    settings: DeployerSettings,
    store: FileStore,
    profile: AWSProfile,
    factory: FakeFactory,
) -> DeploymentManager:
    """Manager with alice's profile registered."""
    registry = DeploymentRegistry(store)
    store.store_profile(profile)
    registry.load()
    return DeploymentManager(settings, registry, store, deployer_factory=factory)


def _stored_status(store: FileStore, name: str) -> DeploymentStatus:
    record = store.get_deployment(name)
    assert record is not None
    return record.status


class TestCreate:
    """Tests for DeploymentManager.create()."""

    def test_success_is_ready(
        self,
        manager: DeploymentManager,
        store: FileStore,
        descriptor: DeploymentDescriptor,
        factory: FakeFactory,
    ) -> None:
        """A successful create ends READY in memory and on disk."""
        result = manager.create(descriptor)

        assert result is not None
        assert result.name == "demo"
        assert factory.calls == [("ECS", "alice", False)]
        assert manager.registry.get("demo").status is DeploymentStatus.READY
        assert _stored_status(store, "demo") is DeploymentStatus.READY
        record = store.get_deployment("demo")
        assert record is not None
        assert record.store_info == {"vpc_id": "vpc-1"}

    def test_failure_is_failed(
        self,
        manager: DeploymentManager,
        store: FileStore,
        descriptor: DeploymentDescriptor,
        factory: FakeFactory,
    ) -> None:
        """A failed create ends FAILED and re-raises."""
        original = factory.__call__

        def failing(*args: Any, **kwargs: Any) -> MagicMock:
            deployer = original(*args, **kwargs)
            deployer.create_deployment.side_effect = ProvisioningError(
                step="instances", message="InsufficientInstanceCapacity"
            )
            return deployer

        manager._deployer_factory = failing

        with pytest.raises(ProvisioningError):
            manager.create(descriptor)

        assert manager.registry.get("demo").status is DeploymentStatus.FAILED
        assert _stored_status(store, "demo") is DeploymentStatus.FAILED

    def test_missing_profile(
        self, manager: DeploymentManager, descriptor_data: dict[str, Any]
    ) -> None:
        """Users without a profile cannot deploy."""
        descriptor_data["user_id"] = "mallory"
        descriptor = DeploymentDescriptor.model_validate(descriptor_data)

        with pytest.raises(ValidationError) as exc_info:
            manager.create(descriptor)
        assert exc_info.value.field == "user_id"

    def test_duplicate_name(
        self, manager: DeploymentManager, descriptor: DeploymentDescriptor
    ) -> None:
        """A second deployment with the same name is rejected."""
        manager.create(descriptor)

        with pytest.raises(DeploymentError, match="already exists"):
            manager.create(descriptor)

    def test_deploy_type_and_unique_name(
        self,
        manager: DeploymentManager,
        descriptor: DeploymentDescriptor,
        factory: FakeFactory,
    ) -> None:
        """The backend tag is upper-cased and unique naming is forwarded."""
        manager.create(descriptor, deploy_type="ecs", create_name=True)

        assert factory.calls == [("ECS", "alice", True)]


class TestDelete:
    """Tests for DeploymentManager.delete()."""

    def test_success_is_deleted(
        self,
        manager: DeploymentManager,
        store: FileStore,
        descriptor: DeploymentDescriptor,
    ) -> None:
        """A successful delete ends DELETED and leaves the registry."""
        manager.create(descriptor)

        manager.delete("demo")

        assert _stored_status(store, "demo") is DeploymentStatus.DELETED
        with pytest.raises(NotFoundError):
            manager.registry.get("demo")
        deleted = manager.registry.list_deployments(status=DeploymentStatus.DELETED)
        assert [s.name for s in deleted] == ["demo"]

    def test_failure_is_failed_and_retryable(
        self,
        manager: DeploymentManager,
        store: FileStore,
        descriptor: DeploymentDescriptor,
        factory: FakeFactory,
    ) -> None:
        """A failed teardown ends FAILED and may be retried."""
        manager.create(descriptor)
        deployer = factory.deployers[0]
        deployer.delete_deployment.side_effect = [
            TeardownError({"vpc": "DependencyViolation"}),
            None,
        ]

        with pytest.raises(TeardownError):
            manager.delete("demo")
        assert _stored_status(store, "demo") is DeploymentStatus.FAILED

        manager.delete("demo")
        assert _stored_status(store, "demo") is DeploymentStatus.DELETED

    def test_delete_while_creating_is_rejected(
        self, manager: DeploymentManager, descriptor: DeploymentDescriptor
    ) -> None:
        """A deployment still being created cannot be deleted."""
        manager.create(descriptor)
        entry = manager.registry.get("demo")
        entry.status = DeploymentStatus.CREATING

        with pytest.raises(DeploymentError) as exc_info:
            manager.delete("demo")
        assert exc_info.value.operation == "status"


class TestServiceUrl:
    """Tests for DeploymentManager.service_url()."""

    def test_ready(
        self, manager: DeploymentManager, descriptor: DeploymentDescriptor
    ) -> None:
        """Ready deployments answer lookups."""
        manager.create(descriptor)

        assert (
            manager.service_url("demo", "nginx") == "ec2-1.compute.amazonaws.com:8080"
        )

    def test_not_ready(
        self,
        manager: DeploymentManager,
        descriptor: DeploymentDescriptor,
        factory: FakeFactory,
    ) -> None:
        """Failed deployments do not answer lookups."""
        manager.create(descriptor)
        factory.deployers[0].delete_deployment.side_effect = TeardownError(
            {"vpc": "in use"}
        )
        with pytest.raises(TeardownError):
            manager.delete("demo")

        with pytest.raises(DeploymentError, match="not Ready"):
            manager.service_url("demo", "nginx")

    def test_assign_scheduler(
        self,
        manager: DeploymentManager,
        descriptor: DeploymentDescriptor,
        factory: FakeFactory,
    ) -> None:
        """Schedulers are handed to the deployer."""
        manager.create(descriptor)
        scheduler = object()

        manager.assign_scheduler("demo", scheduler)

        factory.deployers[0].set_scheduler.assert_called_once_with(scheduler)


class TestRestore:
    """Tests for DeploymentManager.restore()."""

    def _fresh(
        self,
        settings: DeployerSettings,
        store: FileStore,
        factory: FakeFactory,
    ) -> DeploymentManager:
        return DeploymentManager(
            settings, DeploymentRegistry(store), store, deployer_factory=factory
        )

    def test_restores_ready_deployment(
        self,
        manager: DeploymentManager,
        settings: DeployerSettings,
        store: FileStore,
        descriptor: DeploymentDescriptor,
    ) -> None:
        """Persisted deployments are rebuilt and reloaded."""
        manager.create(descriptor)
        factory = FakeFactory()
        fresh = self._fresh(settings, store, factory)

        assert fresh.restore() == 1

        assert fresh.registry.get("demo").status is DeploymentStatus.READY
        factory.deployers[0].reload_cluster_state.assert_called_once_with(
            {"vpc_id": "vpc-1"}
        )

    def test_interrupted_create_becomes_failed(
        self,
        manager: DeploymentManager,
        settings: DeployerSettings,
        store: FileStore,
        descriptor: DeploymentDescriptor,
    ) -> None:
        """A deployment left CREATING is restored as FAILED."""
        manager.create(descriptor)
        record = store.get_deployment("demo")
        assert record is not None
        store.store_deployment(
            record.model_copy(update={"status": DeploymentStatus.CREATING})
        )

        fresh = self._fresh(settings, store, FakeFactory())
        fresh.restore()

        assert fresh.registry.get("demo").status is DeploymentStatus.FAILED
        assert _stored_status(store, "demo") is DeploymentStatus.FAILED

    def test_reload_failure_keeps_store_info(
        self,
        manager: DeploymentManager,
        settings: DeployerSettings,
        store: FileStore,
        descriptor: DeploymentDescriptor,
    ) -> None:
        """A deployment that cannot be reloaded is FAILED with its info kept."""
        manager.create(descriptor)
        factory = FakeFactory()
        original = factory.__call__

        def unreachable(*args: Any, **kwargs: Any) -> MagicMock:
            deployer = original(*args, **kwargs)
            deployer.reload_cluster_state.side_effect = NotFoundError(
                resource="vpc", message="Unable to find VPC demo-vpc"
            )
            deployer.get_store_info.return_value = {"vpc_id": None}
            return deployer

        fresh = DeploymentManager(
            settings, DeploymentRegistry(store), store, deployer_factory=unreachable
        )
        fresh.restore()

        assert fresh.registry.get("demo").status is DeploymentStatus.FAILED
        record = store.get_deployment("demo")
        assert record is not None
        assert record.status is DeploymentStatus.FAILED
        assert record.store_info == {"vpc_id": "vpc-1"}

    def test_skips_deleted_and_unnamed(
        self,
        manager: DeploymentManager,
        settings: DeployerSettings,
        store: FileStore,
        descriptor: DeploymentDescriptor,
    ) -> None:
        """DELETED records and names not asked for are not restored."""
        manager.create(descriptor)
        manager.delete("demo")
        other = descriptor.model_copy(update={"name": "other"})
        manager.create(other)

        fresh = self._fresh(settings, store, FakeFactory())

        assert fresh.restore(names=["demo"]) == 0
        assert fresh.restore(names=["other"]) == 1
        assert [s.name for s in fresh.registry.list_deployments()] == ["other"]

    def test_skips_users_without_profile(
        self,
        manager: DeploymentManager,
        settings: DeployerSettings,
        store: FileStore,
        descriptor: DeploymentDescriptor,
    ) -> None:
        """Deployments of users whose profile was removed are skipped."""
        manager.create(descriptor)
        store.delete_profile("alice")

        assert self._fresh(settings, store, FakeFactory()).restore() == 0


class TestRestoredTeardown:
    """Deleting restored ECS deployments whose VPC can no longer be found."""

    @pytest.fixture
    def ecs_manager(
        self,
        settings: DeployerSettings,
        store: FileStore,
        profile: AWSProfile,
        log: logging.Logger,
        aws_clients: AWSClients,
    ) -> DeploymentManager:
        """Manager building ECS deployers on mocked AWS clients."""

        def factory(
            deploy_type: str,
            settings: DeployerSettings,
            profile: AWSProfile,
            descriptor: DeploymentDescriptor,
            create_name: bool = False,
        ) -> ECSDeployer:
            return ECSDeployer(settings, profile, descriptor, log, clients=aws_clients)

        store.store_profile(profile)
        return DeploymentManager(
            settings, DeploymentRegistry(store), store, deployer_factory=factory
        )

    def _store_failed(
        self,
        store: FileStore,
        descriptor: DeploymentDescriptor,
        vpc_id: str | None = None,
    ) -> None:
        store.store_deployment(
            DeploymentRecord(
                name="demo",
                deploy_type="ECS",
                user_id="alice",
                status=DeploymentStatus.FAILED,
                created=datetime(2024, 1, 1, tzinfo=timezone.utc),
                descriptor=descriptor,
                store_info={"vpc_id": vpc_id, "instance_ids": [], "node_infos": {}},
            )
        )

    def test_named_resources_deleted_when_vpc_is_gone(
        self,
        ecs_manager: DeploymentManager,
        store: FileStore,
        descriptor: DeploymentDescriptor,
        aws_clients: AWSClients,
    ) -> None:
        """Resources located by name are torn down before the entry is DELETED."""
        aws_clients.ec2.describe_tags.side_effect = lambda **kwargs: {"Tags": []}
        self._store_failed(store, descriptor)

        ecs_manager.restore(["demo"])
        assert ecs_manager.registry.get("demo").status is DeploymentStatus.FAILED
        ecs_manager.delete("demo")

        assert _stored_status(store, "demo") is DeploymentStatus.DELETED
        assert aws_clients.ecs.delete_service.call_count == 2
        aws_clients.ec2.terminate_instances.assert_called_once_with(
            InstanceIds=["i-1", "i-2"]
        )
        aws_clients.iam.delete_instance_profile.assert_called_once_with(
            InstanceProfileName="demo"
        )
        aws_clients.iam.delete_role.assert_called_once_with(RoleName="demo-role")
        aws_clients.ec2.delete_key_pair.assert_called_once_with(KeyName="demo-key")
        aws_clients.ecs.delete_cluster.assert_called_once_with(cluster="demo")
        aws_clients.ec2.delete_vpc.assert_not_called()

    def test_stored_vpc_id_is_deleted(
        self,
        ecs_manager: DeploymentManager,
        store: FileStore,
        descriptor: DeploymentDescriptor,
        aws_clients: AWSClients,
    ) -> None:
        """An untagged VPC is deleted through the id kept in the store."""
        aws_clients.ec2.describe_tags.side_effect = lambda **kwargs: {"Tags": []}
        self._store_failed(store, descriptor, vpc_id="vpc-1")

        ecs_manager.restore(["demo"])
        ecs_manager.delete("demo")

        assert _stored_status(store, "demo") is DeploymentStatus.DELETED
        aws_clients.ec2.delete_vpc.assert_called_once_with(VpcId="vpc-1")
        aws_clients.iam.delete_role.assert_called_once_with(RoleName="demo-role")

    def test_orphaned_subnet_fails_delete(
        self,
        ecs_manager: DeploymentManager,
        store: FileStore,
        descriptor: DeploymentDescriptor,
        aws_clients: AWSClients,
    ) -> None:
        """Network resources without a resolvable VPC stop the delete."""
        aws_clients.ec2.describe_tags.side_effect = lambda **kwargs: (
            {"Tags": [{"ResourceId": "subnet-1"}]}
            if {"Name": "resource-type", "Values": ["subnet"]} in kwargs["Filters"]
            else {"Tags": []}
        )
        self._store_failed(store, descriptor)
        ecs_manager.restore(["demo"])

        with pytest.raises(NotFoundError):
            ecs_manager.delete("demo")

        assert _stored_status(store, "demo") is DeploymentStatus.FAILED
        aws_clients.iam.delete_role.assert_not_called()
        aws_clients.ec2.delete_subnet.assert_not_called()
