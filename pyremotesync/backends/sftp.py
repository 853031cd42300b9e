"""SFTP backend built on paramiko."""

import logging
import socket
import stat
from typing import Optional

import paramiko

from ..exceptions import ConnectivityError, RemoteOperationError
from ..sync.scanner import EntryKind
from ..utils import DEFAULT_SSH_PORT
from .base import RemoteEntry, RemoteStoragePort

logger = logging.getLogger(__name__)


def create_ssh_client(
    server: str,
    port: int,
    user: str,
    password: Optional[str] = None,
    key_filename: Optional[str] = None,
    accept_unknown_hosts: bool = False,
    timeout: float = 30.0,
) -> paramiko.SSHClient:
    """Open an authenticated SSH connection.

    The server's host key is checked against the system known-hosts file.
    Unknown hosts are rejected unless ``accept_unknown_hosts`` is set.

    Raises:
        ConnectivityError: If the server is unreachable, unknown or the
            authentication fails
    """
    client = paramiko.SSHClient()
    client.load_system_host_keys()
    if accept_unknown_hosts:
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    else:
        client.set_missing_host_key_policy(paramiko.RejectPolicy())

    try:
        client.connect(
            server,
            port=port,
            username=user,
            password=password or None,
            key_filename=key_filename,
            timeout=timeout,
        )
    except paramiko.AuthenticationException as e:
        client.close()
        raise ConnectivityError(f"SSH authentication failed for {user}@{server}") from e
    except (paramiko.SSHException, socket.error) as e:
        client.close()
        raise ConnectivityError(f"SSH connection to {server}:{port} failed: {e}") from e
    logger.debug(f"SSH connection to {user}@{server}:{port} established")
    return client


class SFTPBackend(RemoteStoragePort):
    """Remote storage reached over SFTP."""

    name = "sftp"

    def __init__(
        self,
        server: str,
        port: Optional[int] = None,
        user: str = "",
        password: Optional[str] = None,
        key_filename: Optional[str] = None,
        accept_unknown_hosts: bool = False,
        timeout: float = 30.0,
        **_: object,
    ):
        self.server = server
        self.port = port or DEFAULT_SSH_PORT
        self.user = user
        self.password = password
        self.key_filename = key_filename
        self.accept_unknown_hosts = accept_unknown_hosts
        self.timeout = timeout
        self._ssh: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None

    @property
    def sftp(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            raise ConnectivityError(f"Not connected to {self.server}")
        return self._sftp

    def connect(self) -> None:
        ssh = create_ssh_client(
            self.server,
            self.port,
            self.user,
            password=self.password,
            key_filename=self.key_filename,
            accept_unknown_hosts=self.accept_unknown_hosts,
            timeout=self.timeout,
        )
        try:
            self._sftp = ssh.open_sftp()
        except (paramiko.SSHException, OSError) as e:
            ssh.close()
            raise ConnectivityError(
                f"Unable to open SFTP session on {self.server}: {e}"
            ) from e
        self._ssh = ssh

    def disconnect(self) -> None:
        if self._sftp is not None:
            self._sftp.close()
            self._sftp = None
        if self._ssh is not None:
            self._ssh.close()
            self._ssh = None

    def exists(self, path: str) -> bool:
        try:
            self.sftp.stat(path)
        except FileNotFoundError:
            return False
        except (OSError, paramiko.SSHException) as e:
            raise RemoteOperationError(f"Cannot stat {path}: {e}", path) from e
        return True

    def make_directory(self, path: str) -> None:
        try:
            self.sftp.mkdir(path)
        except (OSError, paramiko.SSHException) as e:
            raise RemoteOperationError(
                f"Cannot create directory {path}: {e}", path
            ) from e

    def put(self, local_path: str, remote_path: str) -> None:
        try:
            self.sftp.put(local_path, remote_path)
        except (OSError, paramiko.SSHException) as e:
            raise RemoteOperationError(
                f"Cannot upload {local_path} to {remote_path}: {e}", remote_path
            ) from e

    def get(self, remote_path: str, local_path: str) -> None:
        try:
            self.sftp.get(remote_path, local_path)
        except (OSError, paramiko.SSHException) as e:
            raise RemoteOperationError(
                f"Cannot download {remote_path}: {e}", remote_path
            ) from e

    def delete(self, path: str) -> None:
        try:
            self.sftp.remove(path)
        except (OSError, paramiko.SSHException) as e:
            raise RemoteOperationError(f"Cannot delete {path}: {e}", path) from e

    def remove_directory(self, path: str) -> None:
        try:
            self.sftp.rmdir(path)
        except (OSError, paramiko.SSHException) as e:
            raise RemoteOperationError(
                f"Cannot remove directory {path}: {e}", path
            ) from e

    def get_modified_time(self, path: str) -> Optional[float]:
        try:
            attrs = self.sftp.stat(path)
        except (OSError, paramiko.SSHException) as e:
            logger.debug(f"Cannot stat {path}: {e}")
            return None
        if attrs.st_mtime is None:
            return None
        return float(attrs.st_mtime)

    def list_directory(self, path: str) -> list[RemoteEntry]:
        try:
            attrs = self.sftp.listdir_attr(path)
        except (OSError, paramiko.SSHException) as e:
            raise RemoteOperationError(f"Cannot list {path}: {e}", path) from e

        entries = []
        for attr in attrs:
            is_dir = stat.S_ISDIR(attr.st_mode or 0)
            entries.append(
                RemoteEntry(
                    name=attr.filename,
                    kind=EntryKind.DIRECTORY if is_dir else EntryKind.FILE,
                    size=None if is_dir else attr.st_size,
                )
            )
        return entries
