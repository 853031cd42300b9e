"""Tree listing for sync operations.

A :class:`TreeSnapshot` describes one side of a synchronized tree at a point
in time. Snapshots are produced by a lister: :class:`LocalLister` walks the
local filesystem, :class:`RemoteLister` walks a remote storage port.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatch
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator, Optional, Union

from ..exceptions import ConnectivityError, ListingError, SyncError
from ..utils import join_remote

if TYPE_CHECKING:
    from ..backends.base import RemoteStoragePort

logger = logging.getLogger(__name__)


class EntryKind(str, Enum):
    """Kind of a tree entry, captured at listing time."""

    FILE = "file"
    DIRECTORY = "directory"


@dataclass
class SnapshotEntry:
    """A single entry of a tree snapshot."""

    path: str
    """Full path (forward slashes on all platforms)"""

    kind: EntryKind
    """File or directory"""

    mtime: Optional[float] = None
    """Last modification time (Unix timestamp) if known at listing time"""

    size: Optional[int] = None
    """File size in bytes if known at listing time"""

    @property
    def depth(self) -> int:
        """Number of path components, used to order parents before children."""
        return self.path.rstrip("/").count("/")


class TreeSnapshot:
    """Set of entries describing one side of a tree.

    Entries are keyed by full path, so a path appears at most once. Iteration
    yields entries sorted by path; callers must not rely on any other order.
    """

    def __init__(self, root: str, entries: Optional[Iterable[SnapshotEntry]] = None):
        self.root = root
        self._entries: dict[str, SnapshotEntry] = {}
        for entry in entries or ():
            self.add(entry)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[SnapshotEntry]:
        for path in sorted(self._entries):
            yield self._entries[path]

    def __repr__(self) -> str:
        return f"TreeSnapshot(root={self.root!r}, entries={len(self._entries)})"

    @property
    def paths(self) -> set[str]:
        return set(self._entries)

    def get(self, path: str) -> Optional[SnapshotEntry]:
        return self._entries.get(path)

    def add(self, entry: SnapshotEntry) -> None:
        self._entries[entry.path] = entry

    def discard(self, path: str) -> None:
        self._entries.pop(path, None)

    def union(self, entries: Iterable[SnapshotEntry]) -> None:
        """Add every entry to this snapshot (existing paths are replaced)."""
        for entry in entries:
            self.add(entry)

    def files(self) -> list[SnapshotEntry]:
        return [e for e in self if e.kind == EntryKind.FILE]

    def copy(self) -> "TreeSnapshot":
        return TreeSnapshot(self.root, self._entries.values())


def _is_ignored(
    relative_path: str,
    name: str,
    ignore_patterns: list[str],
    exclude_dot_files: bool,
) -> bool:
    if exclude_dot_files and name.startswith("."):
        return True
    return any(
        fnmatch(relative_path, pattern) or fnmatch(name, pattern)
        for pattern in ignore_patterns
    )


class LocalLister:
    """Recursively lists a local directory into a :class:`TreeSnapshot`.

    Examples:
        >>> lister = LocalLister(ignore_patterns=["*.tmp"])
        >>> snapshot = lister.list("/home/user/documents")
        >>> for entry in snapshot:
        ...     print(entry.path, entry.kind.value)
    """

    def __init__(
        self,
        ignore_patterns: Optional[list[str]] = None,
        exclude_dot_files: bool = False,
    ):
        """Initialize local lister.

        Args:
            ignore_patterns: Glob patterns matched against the relative path
                and the entry name (e.g., ["*.log", "cache/*"])
            exclude_dot_files: Whether to skip files/folders starting with dot
        """
        self.ignore_patterns = ignore_patterns or []
        self.exclude_dot_files = exclude_dot_files

    def list(self, root: Union[str, Path]) -> TreeSnapshot:
        """List every file and directory under ``root``.

        Symlinked directories are skipped, so a listing always terminates.

        Raises:
            ListingError: If ``root`` does not exist or is not a directory
        """
        root_path = Path(root)
        if not root_path.exists():
            raise ListingError(f"Local directory does not exist: {root_path}")
        if not root_path.is_dir():
            raise ListingError(f"Local path is not a directory: {root_path}")

        snapshot = TreeSnapshot(root_path.as_posix())
        self._scan(root_path, root_path, snapshot)
        logger.debug(f"Listed {len(snapshot)} local entries under {root_path}")
        return snapshot

    def _scan(self, directory: Path, base_path: Path, snapshot: TreeSnapshot) -> None:
        try:
            items = list(os.scandir(directory))
        except PermissionError as e:
            # Skip directories we can't read
            logger.warning(f"Permission denied, skipping {directory}: {e}")
            return
        except OSError as e:
            # Removed or replaced while walking
            logger.warning(f"Cannot read {directory}, skipping: {e}")
            return

        for item in items:
            item_path = Path(item.path)
            relative_path = item_path.relative_to(base_path).as_posix()
            if _is_ignored(
                relative_path, item.name, self.ignore_patterns, self.exclude_dot_files
            ):
                logger.debug(f"Ignoring: {relative_path}")
                continue

            try:
                is_dir = item.is_dir(follow_symlinks=False)
                is_file = not is_dir and item.is_file()
                stat = item.stat(follow_symlinks=not is_dir)
            except OSError as e:
                logger.warning(f"Cannot stat {item_path}: {e}")
                continue

            if is_dir:
                snapshot.add(
                    SnapshotEntry(
                        path=item_path.as_posix(),
                        kind=EntryKind.DIRECTORY,
                        mtime=stat.st_mtime,
                    )
                )
                self._scan(item_path, base_path, snapshot)
            elif is_file:
                snapshot.add(
                    SnapshotEntry(
                        path=item_path.as_posix(),
                        kind=EntryKind.FILE,
                        mtime=stat.st_mtime,
                        size=stat.st_size,
                    )
                )


class RemoteLister:
    """Recursively lists a remote directory through a storage port."""

    def __init__(
        self,
        port: "RemoteStoragePort",
        ignore_patterns: Optional[list[str]] = None,
        exclude_dot_files: bool = False,
    ):
        self.port = port
        self.ignore_patterns = ignore_patterns or []
        self.exclude_dot_files = exclude_dot_files

    def list(self, root: str) -> TreeSnapshot:
        """List every file and directory under the remote ``root``.

        Raises:
            ListingError: If any directory under ``root`` cannot be listed
        """
        snapshot = TreeSnapshot(root)
        base = root.rstrip("/") + "/"
        pending = [root]

        while pending:
            directory = pending.pop()
            try:
                entries = self.port.list_directory(directory)
            except (ConnectivityError, ListingError):
                raise
            except SyncError as e:
                raise ListingError(
                    f"Cannot list remote directory {directory}: {e}"
                ) from e

            for entry in entries:
                path = join_remote(directory, entry.name)
                relative_path = path[len(base) :] if path.startswith(base) else path
                if _is_ignored(
                    relative_path,
                    entry.name,
                    self.ignore_patterns,
                    self.exclude_dot_files,
                ):
                    logger.debug(f"Ignoring remote: {relative_path}")
                    continue
                snapshot.add(SnapshotEntry(path=path, kind=entry.kind, size=entry.size))
                if entry.kind == EntryKind.DIRECTORY:
                    pending.append(path)

        logger.debug(f"Listed {len(snapshot)} remote entries under {root}")
        return snapshot
