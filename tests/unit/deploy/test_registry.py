"""Unit tests for the deployment registry."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from clusterdeck.deploy.registry import DeploymentRegistry
from clusterdeck.deploy.store import FileStore
from clusterdeck.lib.errors import DeploymentError, NotFoundError
from clusterdeck.models.descriptor import DeploymentDescriptor
from clusterdeck.models.registry import (
    AWSProfile,
    DeploymentRecord,
    DeploymentStatus,
    RegistryEntry,
)

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _entry(name: str, user_id: str = "alice", minutes: int = 0) -> RegistryEntry:
    return RegistryEntry(
        name=name,
        deploy_type="ECS",
        user_id=user_id,
        created=BASE_TIME + timedelta(minutes=minutes),
    )


@pytest.mark.unit
class TestDeployments:
    """Tests for deployment entries."""

    def test_add_and_get(self) -> None:
        """Added deployments start CREATING."""
        registry = DeploymentRegistry()
        registry.add(_entry("demo"))

        assert registry.get("demo").status is DeploymentStatus.CREATING

    def test_duplicate_name(self) -> None:
        """Names are unique."""
        registry = DeploymentRegistry()
        registry.add(_entry("demo"))

        with pytest.raises(DeploymentError, match="already exists"):
            registry.add(_entry("demo"))

    def test_get_missing(self) -> None:
        """Unknown names raise NotFoundError."""
        with pytest.raises(NotFoundError):
            DeploymentRegistry().get("ghost")

    def test_lifecycle(self) -> None:
        """A deployment leaves memory when it reaches DELETED."""
        registry = DeploymentRegistry()
        registry.add(_entry("demo"))

        registry.transition("demo", DeploymentStatus.READY)
        registry.transition("demo", DeploymentStatus.DELETING)
        entry = registry.transition("demo", DeploymentStatus.DELETED)

        assert entry.status is DeploymentStatus.DELETED
        with pytest.raises(NotFoundError):
            registry.get("demo")

    def test_invalid_transition(self) -> None:
        """Forbidden transitions leave the status unchanged."""
        registry = DeploymentRegistry()
        registry.add(_entry("demo"))

        with pytest.raises(DeploymentError) as exc_info:
            registry.transition("demo", DeploymentStatus.DELETING)

        assert exc_info.value.operation == "status"
        assert registry.get("demo").status is DeploymentStatus.CREATING


@pytest.mark.unit
class TestListDeployments:
    """Tests for listing deployments."""

    def test_sorted_by_creation(self) -> None:
        """Listings are oldest first."""
        registry = DeploymentRegistry()
        registry.add(_entry("second", minutes=5))
        registry.add(_entry("first", minutes=1))

        names = [s.name for s in registry.list_deployments()]
        assert names == ["first", "second"]

    def test_filters(self) -> None:
        """Listings filter by user and status."""
        registry = DeploymentRegistry()
        registry.add(_entry("a", user_id="alice"))
        registry.add(_entry("b", user_id="bob", minutes=1))
        registry.transition("b", DeploymentStatus.READY)

        assert [s.name for s in registry.list_deployments(user_id="bob")] == ["b"]
        ready = registry.list_deployments(status=DeploymentStatus.READY)
        assert [s.name for s in ready] == ["b"]

    def test_deleted_come_from_store(
        self, tmp_path: Path, descriptor: DeploymentDescriptor
    ) -> None:
        """Deleted deployments are listed from persisted records."""
        store = FileStore(tmp_path)
        store.store_deployment(
            DeploymentRecord(
                name="old",
                deploy_type="ECS",
                user_id="alice",
                status=DeploymentStatus.DELETED,
                created=BASE_TIME,
                descriptor=descriptor,
            )
        )
        registry = DeploymentRegistry(store)
        registry.add(_entry("live"))

        deleted = registry.list_deployments(status=DeploymentStatus.DELETED)

        assert [s.name for s in deleted] == ["old"]
        assert [s.name for s in registry.list_deployments()] == ["live"]

    def test_concurrent_adds_and_listings(self) -> None:
        """Concurrent writers and readers never lose or corrupt entries."""
        registry = DeploymentRegistry()
        errors: list[Exception] = []

        def add_many(prefix: str) -> None:
            try:
                for i in range(50):
                    registry.add(_entry(f"{prefix}-{i}", minutes=i))
                    registry.list_deployments()
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [
            threading.Thread(target=add_many, args=(f"t{n}",)) for n in range(4)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(registry.list_deployments()) == 200


@pytest.mark.unit
class TestProfiles:
    """Tests for AWS profiles."""

    def test_set_get_delete(self, profile: AWSProfile) -> None:
        """Profiles are keyed by user id."""
        registry = DeploymentRegistry()
        registry.set_profile(profile)

        assert registry.get_profile("alice") == profile
        assert registry.delete_profile("alice")
        assert not registry.delete_profile("alice")
        assert registry.get_profile("alice") is None

    def test_load_from_store(self, tmp_path: Path, profile: AWSProfile) -> None:
        """load() reads profiles from the store."""
        store = FileStore(tmp_path)
        store.store_profile(profile)
        store.store_profile(
            AWSProfile(user_id="aaron", aws_id="AKIA2", aws_secret="other")
        )
        registry = DeploymentRegistry(store)

        registry.load()

        assert [p.user_id for p in registry.list_profiles()] == ["aaron", "alice"]

    def test_clear(self, profile: AWSProfile) -> None:
        """clear() drops deployments and profiles."""
        registry = DeploymentRegistry()
        registry.add(_entry("demo"))
        registry.set_profile(profile)

        registry.clear()

        assert registry.list_deployments() == []
        assert registry.list_profiles() == []
