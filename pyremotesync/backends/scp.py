"""SCP backend: paramiko SSH session, scp transfers, shell commands otherwise."""

import logging
from typing import Optional

import paramiko
from scp import SCPClient, SCPException

from ..exceptions import ConnectivityError, RemoteOperationError
from ..sync.scanner import EntryKind
from ..utils import DEFAULT_SSH_PORT, shell_quote
from .base import RemoteEntry, RemoteStoragePort
from .sftp import create_ssh_client

logger = logging.getLogger(__name__)


class SCPBackend(RemoteStoragePort):
    """Remote storage on an SSH server without SFTP support.

    File contents travel over SCP. Everything else runs as a POSIX shell
    command (``test``, ``mkdir``, ``rm``, ``rmdir``, ``stat``, ``find``),
    so the server needs GNU coreutils and findutils.
    """

    name = "scp"

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
        self._scp: Optional[SCPClient] = None

    @property
    def ssh(self) -> paramiko.SSHClient:
        if self._ssh is None:
            raise ConnectivityError(f"Not connected to {self.server}")
        return self._ssh

    @property
    def scp(self) -> SCPClient:
        if self._scp is None:
            raise ConnectivityError(f"Not connected to {self.server}")
        return self._scp

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
        transport = ssh.get_transport()
        if transport is None:
            ssh.close()
            raise ConnectivityError(f"SSH transport to {self.server} is not open")
        self._ssh = ssh
        self._scp = SCPClient(transport)

    def disconnect(self) -> None:
        if self._scp is not None:
            self._scp.close()
            self._scp = None
        if self._ssh is not None:
            self._ssh.close()
            self._ssh = None

    def _run(self, command: str) -> tuple[int, str, str]:
        """Execute a remote command and return (exit_code, stdout, stderr)."""
        logger.debug(f"Running remote command: {command}")
        try:
            _, stdout, stderr = self.ssh.exec_command(command)
            exit_code = stdout.channel.recv_exit_status()
            return (
                exit_code,
                stdout.read().decode("utf-8", errors="replace"),
                stderr.read().decode("utf-8", errors="replace"),
            )
        except paramiko.SSHException as e:
            raise RemoteOperationError(f"Remote command failed: {e}") from e

    def _check(self, command: str, path: str) -> str:
        exit_code, out, err = self._run(command)
        if exit_code != 0:
            raise RemoteOperationError(
                f"'{command}' exited with {exit_code}: {err.strip()}", path
            )
        return out

    def exists(self, path: str) -> bool:
        exit_code, _, _ = self._run(f"test -e {shell_quote(path)}")
        return exit_code == 0

    def make_directory(self, path: str) -> None:
        self._check(f"mkdir {shell_quote(path)}", path)

    def ensure_path(self, path: str) -> None:
        if not path or path == "/":
            return
        self._check(f"mkdir -p {shell_quote(path)}", path)

    def put(self, local_path: str, remote_path: str) -> None:
        try:
            self.scp.put(local_path, remote_path, preserve_times=True)
        except (SCPException, paramiko.SSHException, OSError) as e:
            raise RemoteOperationError(
                f"Cannot upload {local_path} to {remote_path}: {e}", remote_path
            ) from e

    def get(self, remote_path: str, local_path: str) -> None:
        try:
            self.scp.get(remote_path, local_path, preserve_times=True)
        except (SCPException, paramiko.SSHException, OSError) as e:
            raise RemoteOperationError(
                f"Cannot download {remote_path}: {e}", remote_path
            ) from e

    def delete(self, path: str) -> None:
        self._check(f"rm -f {shell_quote(path)}", path)

    def remove_directory(self, path: str) -> None:
        self._check(f"rmdir {shell_quote(path)}", path)

    def get_modified_time(self, path: str) -> Optional[float]:
        exit_code, out, err = self._run(f"stat -c %Y {shell_quote(path)}")
        if exit_code != 0:
            logger.debug(f"stat {path} failed: {err.strip()}")
            return None
        value = out.strip()
        return float(value) if value.isdigit() else None

    def list_directory(self, path: str) -> list[RemoteEntry]:
        out = self._check(
            f"find {shell_quote(path)} -mindepth 1 -maxdepth 1 -printf '%y %s %f\\n'",
            path,
        )
        entries = []
        for line in out.splitlines():
            parts = line.split(" ", 2)
            if len(parts) != 3:
                continue
            entry_type, size, name = parts
            is_dir = entry_type == "d"
            entries.append(
                RemoteEntry(
                    name=name,
                    kind=EntryKind.DIRECTORY if is_dir else EntryKind.FILE,
                    size=None if is_dir or not size.isdigit() else int(size),
                )
            )
        return entries
