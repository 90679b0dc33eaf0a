"""JSON file store for deployment records and user profiles."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from clusterdeck.config.defaults import STORE_FILE_NAME
from clusterdeck.lib.errors import DeploymentError
from clusterdeck.models.registry import AWSProfile, DeploymentRecord, StoreState


class FileStore:
    """Deployment and profile persistence backed by one JSON file.

    Every write is a read-modify-write of the whole file under the store's
    own lock, and the file is replaced atomically.
    """

    def __init__(self, files_path: Path) -> None:
        self.path = files_path / STORE_FILE_NAME
        self._lock = threading.Lock()

    def _read(self) -> StoreState:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return StoreState()
        except OSError as exc:
            raise DeploymentError(
                operation="state",
                message=f"Unable to read deployment store {self.path}: {exc}",
            ) from exc
        if not content.strip():
            return StoreState()

        try:
            return StoreState.model_validate_json(content)
        except ValidationError as exc:
            raise DeploymentError(
                operation="state",
                message=f"Deployment store {self.path} is corrupt: {exc}",
            ) from exc

    def _write(self, state: StoreState) -> None:
        payload = json.dumps(state.model_dump(mode="json"), indent=2)
        staging = self.path.with_name(f".{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            staging.write_text(payload, encoding="utf-8")
            staging.replace(self.path)
        except OSError as exc:
            raise DeploymentError(
                operation="state",
                message=f"Unable to write deployment store {self.path}: {exc}",
            ) from exc

    def load_deployments(self) -> list[DeploymentRecord]:
        """Return every persisted deployment record."""
        with self._lock:
            state = self._read()
        return list(state.deployments.values())

    def get_deployment(self, name: str) -> DeploymentRecord | None:
        """Return one deployment record."""
        with self._lock:
            state = self._read()
        return state.deployments.get(name)

    def store_deployment(self, record: DeploymentRecord) -> DeploymentRecord:
        """Insert or replace a deployment record, stamping its update time."""
        with self._lock:
            state = self._read()
            existing = state.deployments.get(record.name)
            created = existing.created if existing else record.created
            updated_record = record.model_copy(
                update={"created": created, "updated": datetime.now(timezone.utc)}
            )
            state.deployments[record.name] = updated_record
            self._write(state)
        return updated_record

    def load_profiles(self) -> list[AWSProfile]:
        """Return every stored AWS profile."""
        with self._lock:
            state = self._read()
        return list(state.profiles.values())

    def store_profile(self, profile: AWSProfile) -> None:
        """Insert or replace a user's AWS profile."""
        with self._lock:
            state = self._read()
            state.profiles[profile.user_id] = profile
            self._write(state)

    def delete_profile(self, user_id: str) -> bool:
        """Delete a user's AWS profile; return False if there was none."""
        with self._lock:
            state = self._read()
            if state.profiles.pop(user_id, None) is None:
                return False
            self._write(state)
        return True
