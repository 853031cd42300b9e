"""Shared fixtures for pyremotesync tests."""

import os
import tempfile
from pathlib import Path
from typing import Optional

import pytest

from pyremotesync.backends.base import RemoteEntry, RemoteStoragePort
from pyremotesync.exceptions import ConnectivityError, RemoteOperationError
from pyremotesync.output import OutputFormatter
from pyremotesync.sync.scanner import EntryKind
from pyremotesync.utils import remote_parent


class InMemoryPort(RemoteStoragePort):
    """Remote storage port backed by dictionaries.

    ``failures`` maps ``(operation, path)`` to an error message raised when
    that operation is called for that path. Paths in ``misreported`` are
    directories that ``list_directory`` reports as files.
    """

    name = "memory"
    timestamp_resolution = 0.0

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.dirs: set[str] = {"/"}
        self.mtimes: dict[str, float] = {}
        self.failures: dict[tuple[str, str], str] = {}
        self.misreported: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.connected = False
        self.connect_count = 0
        self.refuse_connection = False

    # Seeding helpers

    def add_dir(self, path: str) -> None:
        while path not in self.dirs:
            self.dirs.add(path)
            path = remote_parent(path) or "/"

    def add_file(self, path: str, data: bytes = b"", mtime: Optional[float] = None):
        self.add_dir(remote_parent(path) or "/")
        self.files[path] = data
        if mtime is not None:
            self.mtimes[path] = mtime

    def fail(self, operation: str, path: str, message: str = "boom") -> None:
        self.failures[(operation, path)] = message

    def _record(self, operation: str, path: str) -> None:
        self.calls.append((operation, path))
        if (operation, path) in self.failures:
            raise RemoteOperationError(self.failures[(operation, path)], path)

    def calls_for(self, operation: str) -> list[str]:
        return [path for op, path in self.calls if op == operation]

    # Port implementation

    def connect(self) -> None:
        if self.refuse_connection:
            raise ConnectivityError("Unable to connect to server")
        self.connected = True
        self.connect_count += 1

    def disconnect(self) -> None:
        self.connected = False

    def exists(self, path: str) -> bool:
        return path in self.files or path in self.dirs

    def make_directory(self, path: str) -> None:
        self._record("make_directory", path)
        if (remote_parent(path) or "/") not in self.dirs:
            raise RemoteOperationError(f"Parent of {path} does not exist", path)
        if path in self.dirs:
            raise RemoteOperationError(f"{path} already exists", path)
        self.dirs.add(path)

    def put(self, local_path: str, remote_path: str) -> None:
        self._record("put", remote_path)
        if (remote_parent(remote_path) or "/") not in self.dirs:
            raise RemoteOperationError(f"No directory for {remote_path}", remote_path)
        self.files[remote_path] = Path(local_path).read_bytes()
        self.mtimes[remote_path] = os.stat(local_path).st_mtime

    def get(self, remote_path: str, local_path: str) -> None:
        self._record("get", remote_path)
        if remote_path not in self.files:
            raise RemoteOperationError(f"No such file {remote_path}", remote_path)
        Path(local_path).write_bytes(self.files[remote_path])

    def delete(self, path: str) -> None:
        self._record("delete", path)
        if path not in self.files:
            raise RemoteOperationError(f"Not a file: {path}", path)
        del self.files[path]
        self.mtimes.pop(path, None)

    def remove_directory(self, path: str) -> None:
        self._record("remove_directory", path)
        if path not in self.dirs:
            raise RemoteOperationError(f"Not a directory: {path}", path)
        prefix = path.rstrip("/") + "/"
        if any(p.startswith(prefix) for p in list(self.files) + list(self.dirs)):
            raise RemoteOperationError(f"Directory not empty: {path}", path)
        self.dirs.remove(path)

    def get_modified_time(self, path: str) -> Optional[float]:
        self._record("get_modified_time", path)
        return self.mtimes.get(path)

    def list_directory(self, path: str) -> list[RemoteEntry]:
        self._record("list_directory", path)
        if path not in self.dirs:
            raise RemoteOperationError(f"No such directory {path}", path)
        entries = []
        for candidate in sorted(self.dirs | set(self.files)):
            if candidate == path or (remote_parent(candidate) or "/") != path:
                continue
            name = candidate.rsplit("/", 1)[-1]
            if candidate in self.dirs and candidate not in self.misreported:
                entries.append(RemoteEntry(name, EntryKind.DIRECTORY))
            else:
                size = len(self.files.get(candidate, b""))
                entries.append(RemoteEntry(name, EntryKind.FILE, size))
        return entries


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def memory_port():
    """Provide an empty in-memory remote port."""
    return InMemoryPort()


@pytest.fixture
def quiet_output():
    """Output formatter that prints nothing."""
    return OutputFormatter(quiet=True)
