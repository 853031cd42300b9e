"""Remote Storage Port: the operations every backend implements."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..exceptions import RemoteOperationError
from ..sync.scanner import EntryKind

logger = logging.getLogger(__name__)


@dataclass
class RemoteEntry:
    """A single entry returned by :meth:`RemoteStoragePort.list_directory`."""

    name: str
    """Entry name (no directory part)"""

    kind: EntryKind
    """File or directory"""

    size: Optional[int] = None
    """File size in bytes if reported by the server"""


class RemoteStoragePort(ABC):
    """Uniform interface over FTP, SFTP, SCP and local-directory backends.

    A port owns one control connection. It is used as a context manager so
    the connection is always released, including on error paths::

        with SFTPBackend(server="example.com", user="me") as port:
            port.put("/home/me/a.txt", "/backup/a.txt")

    Per-item operations raise :class:`RemoteOperationError` on failure;
    :meth:`connect` raises :class:`ConnectivityError`.
    """

    name: str = "remote"

    supports_parallel: bool = False
    """Whether item operations may be issued from several threads at once"""

    timestamp_resolution: float = 1.0
    """Granularity in seconds of stored and reported modification times.

    MDTM, SFTP v3 attributes and scp's preserved times are all whole
    seconds. Zero means timestamps are compared exactly.
    """

    def __enter__(self) -> "RemoteStoragePort":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    @abstractmethod
    def connect(self) -> None:
        """Open and authenticate the connection."""

    @abstractmethod
    def disconnect(self) -> None:
        """Close the connection. Safe to call when not connected."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Return True if a file or directory exists at ``path``."""

    @abstractmethod
    def make_directory(self, path: str) -> None:
        """Create a single directory (its parent must exist)."""

    @abstractmethod
    def put(self, local_path: str, remote_path: str) -> None:
        """Upload a local file, overwriting any existing remote file."""

    @abstractmethod
    def get(self, remote_path: str, local_path: str) -> None:
        """Download a remote file, overwriting any existing local file."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete a remote file."""

    @abstractmethod
    def remove_directory(self, path: str) -> None:
        """Remove an empty remote directory."""

    @abstractmethod
    def get_modified_time(self, path: str) -> Optional[float]:
        """Return the modification time as a Unix timestamp.

        Returns:
            The timestamp, or None when the server cannot report one
        """

    @abstractmethod
    def list_directory(self, path: str) -> list[RemoteEntry]:
        """List the direct children of a remote directory."""

    def ensure_path(self, path: str) -> None:
        """Create ``path`` and any missing intermediate directories.

        Idempotent: existing directories are left alone, and a directory
        created concurrently by another worker is not an error.
        """
        if not path or path == "/" or self.exists(path):
            return

        absolute = path.startswith("/")
        current = ""
        for part in [p for p in path.split("/") if p]:
            current = f"{current}/{part}" if (current or absolute) else part
            if self.exists(current):
                continue
            try:
                logger.debug(f"Creating remote directory {current}")
                self.make_directory(current)
            except RemoteOperationError:
                if not self.exists(current):
                    raise
