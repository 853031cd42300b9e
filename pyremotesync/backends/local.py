"""Local-directory backend: a mounted filesystem acting as the remote side."""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from ..exceptions import ConnectivityError, RemoteOperationError
from ..sync.scanner import EntryKind
from .base import RemoteEntry, RemoteStoragePort

logger = logging.getLogger(__name__)


class LocalBackend(RemoteStoragePort):
    """Treats a directory on a mounted filesystem as remote storage.

    Remote paths are absolute POSIX paths resolved below ``base_dir``, so
    ``/backup/a.txt`` maps to ``<base_dir>/backup/a.txt``. Useful for NAS
    mounts and external drives.
    """

    name = "local"
    supports_parallel = True
    timestamp_resolution = 0.0

    def __init__(self, base_dir: str = "/", **_: object):
        self.base_dir = Path(base_dir).expanduser()
        self.connected = False

    def _resolve(self, path: str) -> Path:
        return self.base_dir / path.lstrip("/")

    def connect(self) -> None:
        if not self.base_dir.is_dir():
            raise ConnectivityError(f"Base directory does not exist: {self.base_dir}")
        logger.debug(f"Using local directory {self.base_dir} as remote storage")
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def make_directory(self, path: str) -> None:
        try:
            self._resolve(path).mkdir()
        except FileExistsError:
            if not self._resolve(path).is_dir():
                raise RemoteOperationError(f"Not a directory: {path}", path)
        except OSError as e:
            raise RemoteOperationError(f"Cannot create directory {path}: {e}", path) from e

    def put(self, local_path: str, remote_path: str) -> None:
        try:
            # copy2 preserves the modification time
            shutil.copy2(local_path, self._resolve(remote_path))
        except OSError as e:
            raise RemoteOperationError(
                f"Cannot copy {local_path} to {remote_path}: {e}", remote_path
            ) from e

    def get(self, remote_path: str, local_path: str) -> None:
        try:
            shutil.copy2(self._resolve(remote_path), local_path)
        except OSError as e:
            raise RemoteOperationError(
                f"Cannot copy {remote_path} to {local_path}: {e}", remote_path
            ) from e

    def delete(self, path: str) -> None:
        try:
            self._resolve(path).unlink()
        except OSError as e:
            raise RemoteOperationError(f"Cannot delete {path}: {e}", path) from e

    def remove_directory(self, path: str) -> None:
        try:
            self._resolve(path).rmdir()
        except OSError as e:
            raise RemoteOperationError(
                f"Cannot remove directory {path}: {e}", path
            ) from e

    def get_modified_time(self, path: str) -> Optional[float]:
        try:
            return self._resolve(path).stat().st_mtime
        except OSError as e:
            logger.debug(f"Cannot stat {path}: {e}")
            return None

    def list_directory(self, path: str) -> list[RemoteEntry]:
        try:
            items = list(os.scandir(self._resolve(path)))
        except OSError as e:
            raise RemoteOperationError(f"Cannot list {path}: {e}", path) from e

        entries = []
        for item in items:
            is_dir = item.is_dir(follow_symlinks=False)
            entries.append(
                RemoteEntry(
                    name=item.name,
                    kind=EntryKind.DIRECTORY if is_dir else EntryKind.FILE,
                    size=None if is_dir else item.stat(follow_symlinks=False).st_size,
                )
            )
        return entries
