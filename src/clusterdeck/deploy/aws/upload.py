"""Upload user files to every node over SFTP."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from io import StringIO

import paramiko

from clusterdeck.lib.errors import DeploymentError
from clusterdeck.models.cluster import ClusterState, KeyPairHandle
from clusterdeck.models.descriptor import DeploymentDescriptor

SSH_PORT = 22
CONNECT_TIMEOUT = 30


def uploaded_file_key(user_id: str, file_id: str) -> str:
    """Key of an uploaded file in the uploaded-files mapping."""
    return f"{user_id}_{file_id}"


def resolve_uploads(
    descriptor: DeploymentDescriptor, uploaded_files: Mapping[str, str]
) -> list[tuple[str, str]]:
    """Return ``(local_path, remote_path)`` pairs for every descriptor file.

    Raises:
        DeploymentError: If a file was never uploaded
    """
    transfers = []
    for upload in descriptor.files:
        key = uploaded_file_key(descriptor.user_id, upload.file_id)
        local_path = uploaded_files.get(key)
        if local_path is None:
            raise DeploymentError(
                operation="create",
                message=f"Unable to find uploaded file {upload.file_id}",
            )
        transfers.append((local_path, upload.path))
    return transfers


def _connect(host: str, user: str, key_pair: KeyPairHandle) -> paramiko.SSHClient:
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    client.connect(
        host,
        port=SSH_PORT,
        username=user,
        pkey=paramiko.RSAKey.from_private_key(StringIO(key_pair.key_material)),
        timeout=CONNECT_TIMEOUT,
        allow_agent=False,
        look_for_keys=False,
    )
    return client


def upload_files(
    state: ClusterState,
    descriptor: DeploymentDescriptor,
    uploaded_files: Mapping[str, str],
    ssh_user: str,
    log: logging.Logger,
) -> None:
    """Copy the descriptor's files onto every node."""
    transfers = resolve_uploads(descriptor, uploaded_files)
    if state.key_pair is None:
        raise DeploymentError(
            operation="create", message="Key pair is required to upload files"
        )

    for node_id, node_info in sorted(state.node_infos.items()):
        if not node_info.public_address:
            raise DeploymentError(
                operation="create",
                message=f"Node {node_id} has no public address to upload files to",
            )
        log.info("Uploading %d files to node %d", len(transfers), node_id)
        try:
            client = _connect(node_info.public_address, ssh_user, state.key_pair)
        except (paramiko.SSHException, OSError) as exc:
            raise DeploymentError(
                operation="create",
                message=f"Unable to connect to node {node_id}: {exc}",
            ) from exc

        try:
            sftp = client.open_sftp()
            try:
                for local_path, remote_path in transfers:
                    log.debug("Uploading %s to %s", local_path, remote_path)
                    sftp.put(local_path, remote_path)
            finally:
                sftp.close()
        except (paramiko.SSHException, OSError) as exc:
            raise DeploymentError(
                operation="create",
                message=f"Unable to upload files to node {node_id}: {exc}",
            ) from exc
        finally:
            client.close()
