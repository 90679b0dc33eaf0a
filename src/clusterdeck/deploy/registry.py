"""In-memory registry of deployments and user profiles.

The registry is the only state shared between deployment threads. A single
lock guards both maps; it is held only for the map access itself, and
listings are formatted from a snapshot after the lock is released.
"""

from __future__ import annotations

import threading

from clusterdeck.deploy.store import FileStore
from clusterdeck.lib.errors import DeploymentError, NotFoundError
from clusterdeck.lib.logging_config import get_logger
from clusterdeck.models.registry import (
    AWSProfile,
    DeploymentStatus,
    DeploymentSummary,
    RegistryEntry,
    can_transition,
)

logger = get_logger(__name__)


class DeploymentRegistry:
    """Deployments keyed by name and AWS profiles keyed by user id."""

    def __init__(self, store: FileStore | None = None) -> None:
        self._lock = threading.Lock()
        self._deployments: dict[str, RegistryEntry] = {}
        self._profiles: dict[str, AWSProfile] = {}
        self._store = store

    def load(self) -> None:
        """Populate profiles from the store."""
        if self._store is None:
            return
        profiles = self._store.load_profiles()
        with self._lock:
            self._profiles = {profile.user_id: profile for profile in profiles}
        logger.debug("Loaded %d profiles", len(profiles))

    def clear(self) -> None:
        """Drop every in-memory deployment and profile."""
        with self._lock:
            self._deployments.clear()
            self._profiles.clear()

    # Deployments

    def add(self, entry: RegistryEntry) -> None:
        """Register a new deployment.

        Raises:
            DeploymentError: If a deployment with the same name is registered
        """
        with self._lock:
            if entry.name in self._deployments:
                raise DeploymentError(
                    operation="create",
                    message=f"Deployment {entry.name} already exists",
                )
            self._deployments[entry.name] = entry

    def get(self, name: str) -> RegistryEntry:
        """Return a registered deployment.

        Raises:
            NotFoundError: If no deployment has that name
        """
        with self._lock:
            entry = self._deployments.get(name)
        if entry is None:
            raise NotFoundError(
                resource="deployment", message=f"Deployment {name} not found"
            )
        return entry

    def transition(self, name: str, status: DeploymentStatus) -> RegistryEntry:
        """Move a deployment to a new lifecycle status.

        A deployment reaching DELETED leaves the in-memory map.

        Raises:
            NotFoundError: If no deployment has that name
            DeploymentError: If the transition is not allowed
        """
        with self._lock:
            entry = self._deployments.get(name)
            if entry is None:
                raise NotFoundError(
                    resource="deployment", message=f"Deployment {name} not found"
                )
            current = entry.status
            if not can_transition(current, status):
                raise DeploymentError(
                    operation="status",
                    message=(
                        f"Deployment {name} cannot move from "
                        f"{current.value} to {status.value}"
                    ),
                )
            entry.status = status
            if status.is_terminal:
                del self._deployments[name]
        logger.debug("Deployment %s: %s -> %s", name, current.value, status.value)
        return entry

    def list_deployments(
        self,
        user_id: str | None = None,
        status: DeploymentStatus | None = None,
    ) -> list[DeploymentSummary]:
        """List deployments sorted by creation time.

        DELETED deployments are no longer in memory and are read from the
        store.
        """
        if status is DeploymentStatus.DELETED:
            if self._store is None:
                return []
            summaries = [
                DeploymentSummary(
                    name=record.name,
                    deploy_type=record.deploy_type,
                    user_id=record.user_id,
                    status=record.status,
                    created=record.created,
                )
                for record in self._store.load_deployments()
                if record.status is DeploymentStatus.DELETED
            ]
        else:
            with self._lock:
                summaries = [entry.summary() for entry in self._deployments.values()]
            if status is not None:
                summaries = [s for s in summaries if s.status is status]

        if user_id is not None:
            summaries = [s for s in summaries if s.user_id == user_id]
        return sorted(summaries, key=lambda s: s.created)

    # Profiles

    def set_profile(self, profile: AWSProfile) -> None:
        """Insert or replace a user's AWS profile."""
        with self._lock:
            self._profiles[profile.user_id] = profile

    def get_profile(self, user_id: str) -> AWSProfile | None:
        """Return a user's AWS profile, if any."""
        with self._lock:
            return self._profiles.get(user_id)

    def delete_profile(self, user_id: str) -> bool:
        """Remove a user's AWS profile; return False if there was none."""
        with self._lock:
            return self._profiles.pop(user_id, None) is not None

    def list_profiles(self) -> list[AWSProfile]:
        """Return every profile sorted by user id."""
        with self._lock:
            profiles = list(self._profiles.values())
        return sorted(profiles, key=lambda p: p.user_id)
