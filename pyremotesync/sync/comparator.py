"""Reconciliation planning for sync operations.

A sync run is planned in three dependent passes, each a pure function of
its inputs:

1. :func:`plan_additions` - local entries missing on the remote side
2. :func:`plan_deletions` - remote entries with no local counterpart
3. :func:`plan_updates` - local files newer than their remote copy
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Iterator, Optional, Union

from ..exceptions import TransferError
from .mapper import PathMapper
from .scanner import EntryKind, TreeSnapshot

if TYPE_CHECKING:
    from ..backends.base import RemoteStoragePort

logger = logging.getLogger(__name__)


class OperationType(str, Enum):
    """Actions the planner can emit."""

    PUSH = "push"
    """Upload a local entry that is missing remotely"""

    DELETE = "delete"
    """Remove an orphaned remote entry"""

    UPDATE = "update"
    """Overwrite a stale remote file"""

    PULL = "pull"
    """Download a remote entry (restore)"""


@dataclass(frozen=True)
class Push:
    """Upload a local entry (file or directory) that is missing remotely."""

    path: str
    """Local path"""

    kind: EntryKind = EntryKind.FILE

    type = OperationType.PUSH


@dataclass(frozen=True)
class Delete:
    """Remove a remote entry that has no local counterpart."""

    path: str
    """Remote path"""

    kind: EntryKind = EntryKind.FILE

    type = OperationType.DELETE


@dataclass(frozen=True)
class Update:
    """Overwrite a remote file with a newer local version."""

    path: str
    """Local path"""

    kind: EntryKind = EntryKind.FILE

    type = OperationType.UPDATE


@dataclass(frozen=True)
class Pull:
    """Download a remote entry to its local counterpart (restore)."""

    path: str
    """Remote path"""

    kind: EntryKind = EntryKind.FILE

    type = OperationType.PULL


Operation = Union[Push, Delete, Update, Pull]


class UnknownTimestampPolicy(str, Enum):
    """What to do when the remote modification time of a file is unknown."""

    PUSH = "push"
    """Treat the file as never synced and push it"""

    SKIP = "skip"
    """Leave the remote file alone"""


class ModificationTimeOracle:
    """Remote modification times, looked up by remote path.

    Paths for which the backend could not report a timestamp are absent;
    they are never filled in with a default value. ``resolution`` is the
    backend's timestamp granularity in seconds (zero for exact values).
    """

    def __init__(
        self,
        timestamps: Optional[dict[str, float]] = None,
        resolution: float = 0.0,
    ):
        self._timestamps: dict[str, float] = dict(timestamps or {})
        self.resolution = resolution

    def __contains__(self, path: object) -> bool:
        return path in self._timestamps

    def __len__(self) -> int:
        return len(self._timestamps)

    def __iter__(self) -> Iterator[str]:
        return iter(self._timestamps)

    def get(self, path: str) -> Optional[float]:
        return self._timestamps.get(path)

    def is_newer(self, local_mtime: float, remote_mtime: float) -> bool:
        """Compare a local time against a remote one at the oracle's resolution.

        The local time is truncated to the resolution first, so a file
        stored with whole-second precision is not newer than itself.
        """
        if self.resolution > 0:
            local_mtime = math.floor(local_mtime / self.resolution) * self.resolution
        return local_mtime > remote_mtime

    @classmethod
    def build(
        cls,
        port: "RemoteStoragePort",
        snapshot: TreeSnapshot,
        skip: Iterable[str] = (),
    ) -> "ModificationTimeOracle":
        """Query the modification time of every file in ``snapshot``.

        Args:
            port: Remote storage port to query
            snapshot: Remote snapshot (after additions and deletions)
            skip: Remote paths not to query

        Returns:
            Oracle holding every timestamp the backend could report
        """
        skipped = set(skip)
        timestamps: dict[str, float] = {}
        for entry in snapshot.files():
            if entry.path in skipped:
                continue
            try:
                mtime = port.get_modified_time(entry.path)
            except TransferError as e:
                logger.debug(f"No modification time for {entry.path}: {e}")
                continue
            if mtime is not None:
                timestamps[entry.path] = mtime
        logger.debug(
            f"Modification times known for {len(timestamps)} of "
            f"{len(snapshot.files())} remote file(s)"
        )
        return cls(timestamps, resolution=port.timestamp_resolution)


def plan_additions(
    local: TreeSnapshot, remote: TreeSnapshot, mapper: PathMapper
) -> list[Push]:
    """Plan pushes for local entries missing from the remote snapshot.

    Args:
        local: Local snapshot
        remote: Current (working) remote snapshot
        mapper: Path mapper between the two roots

    Returns:
        Push operations, parents before children
    """
    missing = [e for e in local if mapper.to_remote(e.path) not in remote]
    missing.sort(key=lambda e: (e.depth, e.path))
    return [Push(entry.path, entry.kind) for entry in missing]


def plan_deletions(
    local: TreeSnapshot, remote: TreeSnapshot, mapper: PathMapper
) -> list[Delete]:
    """Plan deletions for remote entries with no local counterpart.

    Args:
        local: Local snapshot
        remote: Remote snapshot after additions
        mapper: Path mapper between the two roots

    Returns:
        Delete operations, children before their directories
    """
    orphans = [e for e in remote if mapper.to_local(e.path) not in local]
    orphans.sort(key=lambda e: (-e.depth, e.path))
    return [Delete(entry.path, entry.kind) for entry in orphans]


def plan_updates(
    local: TreeSnapshot,
    oracle: ModificationTimeOracle,
    mapper: PathMapper,
    policy: UnknownTimestampPolicy = UnknownTimestampPolicy.PUSH,
    exclude: Iterable[str] = (),
) -> list[Update]:
    """Plan updates for local files newer than their remote copy.

    A file is updated when its local modification time, truncated to the
    oracle's resolution, is strictly greater than the oracle's value, or
    when the oracle has no value and ``policy`` is
    :attr:`UnknownTimestampPolicy.PUSH`. Directories are never updated.

    Args:
        local: Local snapshot
        oracle: Remote modification times
        mapper: Path mapper between the two roots
        policy: Handling of files without a known remote timestamp
        exclude: Local paths to leave out of the plan

    Returns:
        Update operations sorted by path
    """
    excluded = set(exclude)
    updates: list[Update] = []

    for entry in local.files():
        if entry.path in excluded:
            continue

        remote_mtime = oracle.get(mapper.to_remote(entry.path))
        if remote_mtime is None:
            if policy == UnknownTimestampPolicy.PUSH:
                updates.append(Update(entry.path))
            continue

        if entry.mtime is not None and oracle.is_newer(entry.mtime, remote_mtime):
            updates.append(Update(entry.path))

    return updates


class ReconciliationPlanner:
    """Binds a path mapper and a timestamp policy to the three planning passes."""

    def __init__(
        self,
        mapper: PathMapper,
        policy: UnknownTimestampPolicy = UnknownTimestampPolicy.PUSH,
    ):
        self.mapper = mapper
        self.policy = policy

    def plan_additions(self, local: TreeSnapshot, remote: TreeSnapshot) -> list[Push]:
        return plan_additions(local, remote, self.mapper)

    def plan_deletions(
        self, local: TreeSnapshot, remote: TreeSnapshot
    ) -> list[Delete]:
        return plan_deletions(local, remote, self.mapper)

    def plan_updates(
        self,
        local: TreeSnapshot,
        oracle: ModificationTimeOracle,
        exclude: Iterable[str] = (),
    ) -> list[Update]:
        return plan_updates(local, oracle, self.mapper, self.policy, exclude)
