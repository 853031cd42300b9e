"""Execution of planned operations through a remote storage port."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from ..exceptions import SyncCancelledError, TransferError
from ..utils import remote_parent
from .comparator import Delete, Operation, Pull, Push, Update
from .mapper import PathMapper
from .scanner import EntryKind

if TYPE_CHECKING:
    from ..backends.base import RemoteStoragePort

logger = logging.getLogger(__name__)


@dataclass
class TransferOutcome:
    """Per-phase record of which items succeeded and which failed."""

    succeeded: set[str] = field(default_factory=set)
    """Paths transferred or removed successfully"""

    failed: dict[str, str] = field(default_factory=dict)
    """Path -> error message for items that failed"""

    def record_success(self, path: str) -> None:
        self.succeeded.add(path)
        self.failed.pop(path, None)

    def record_failure(self, path: str, error: Exception) -> None:
        self.failed[path] = str(error)

    def merge(self, other: "TransferOutcome") -> None:
        """Fold another outcome into this one."""
        for path in other.succeeded:
            self.record_success(path)
        self.failed.update(other.failed)

    @property
    def is_empty(self) -> bool:
        return not self.succeeded and not self.failed

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)

    def to_dict(self) -> dict:
        """Convert outcome to dictionary for JSON serialization."""
        return {
            "succeeded": sorted(self.succeeded),
            "failed": dict(sorted(self.failed.items())),
        }


class TransferExecutor:
    """Applies planned operations one item at a time.

    Failures of single items are recorded in the returned
    :class:`TransferOutcome` and never abort the batch. There are no
    automatic retries: re-running the engine is the recovery path.
    """

    def __init__(
        self,
        port: "RemoteStoragePort",
        mapper: PathMapper,
        max_workers: int = 1,
        cancel_event: Optional[threading.Event] = None,
        dry_run: bool = False,
    ):
        """Initialize transfer executor.

        Args:
            port: Remote storage port (connected)
            mapper: Path mapper between the local and remote roots
            max_workers: Number of parallel workers; only used when the
                port supports parallel transfers
            cancel_event: Checked between items; when set, the remaining
                items are skipped and SyncCancelledError is raised
            dry_run: If True, log what would be done without calling the port
        """
        self.port = port
        self.mapper = mapper
        self.max_workers = max_workers
        self.cancel_event = cancel_event
        self.dry_run = dry_run

    # ------------------------------------------------------------------
    # Single items
    # ------------------------------------------------------------------

    def push(self, local_path: str, kind: EntryKind = EntryKind.FILE) -> str:
        """Upload a local entry to its mapped remote path.

        Returns:
            The remote path
        """
        remote_path = self.mapper.to_remote(local_path)
        if kind == EntryKind.DIRECTORY:
            self.port.ensure_path(remote_path)
        else:
            self.port.ensure_path(remote_parent(remote_path))
            self.port.put(local_path, remote_path)
        return remote_path

    def pull(self, remote_path: str, kind: EntryKind = EntryKind.FILE) -> str:
        """Download a remote entry to its mapped local path.

        Returns:
            The local path
        """
        local_path = self.mapper.to_local(remote_path)
        try:
            if kind == EntryKind.DIRECTORY:
                Path(local_path).mkdir(parents=True, exist_ok=True)
            else:
                Path(local_path).parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TransferError(f"Cannot create {local_path}: {e}", local_path) from e
        if kind != EntryKind.DIRECTORY:
            self.port.get(remote_path, local_path)
        return local_path

    def delete(self, remote_path: str, kind: EntryKind = EntryKind.FILE) -> None:
        """Remove a remote entry.

        Directories go straight to ``remove_directory``. A failed file delete
        falls back to ``remove_directory`` for listings that report a
        directory as a file.
        """
        if kind == EntryKind.DIRECTORY:
            self.port.remove_directory(remote_path)
            return
        try:
            self.port.delete(remote_path)
        except TransferError as e:
            logger.debug(f"Delete of {remote_path} failed ({e}), trying as directory")
            self.port.remove_directory(remote_path)

    def apply(self, operation: Operation) -> None:
        """Execute one planned operation."""
        if isinstance(operation, (Push, Update)):
            self.push(operation.path, operation.kind)
        elif isinstance(operation, Pull):
            self.pull(operation.path, operation.kind)
        elif isinstance(operation, Delete):
            self.delete(operation.path, operation.kind)
        else:
            raise TypeError(f"Unknown operation: {operation!r}")

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def execute(
        self,
        operations: Iterable[Operation],
        on_item: Optional[Callable[[Operation, bool], None]] = None,
    ) -> TransferOutcome:
        """Execute planned operations and collect the outcome.

        Args:
            operations: Operations to apply
            on_item: Optional callback(operation, success) after each item

        Returns:
            Outcome keyed by the operation's path
        """
        return self._run_batch(list(operations), on_item)

    def backup(
        self,
        entries: Iterable[tuple[str, EntryKind]],
        on_item: Optional[Callable[[Operation, bool], None]] = None,
    ) -> TransferOutcome:
        """Push every local entry unconditionally."""
        operations: list[Operation] = [Push(path, kind) for path, kind in entries]
        operations.sort(key=lambda op: (op.path.count("/"), op.path))
        return self._run_batch(operations, on_item)

    def restore(
        self,
        entries: Iterable[tuple[str, EntryKind]],
        on_item: Optional[Callable[[Operation, bool], None]] = None,
    ) -> TransferOutcome:
        """Pull every remote entry."""
        operations: list[Operation] = [Pull(path, kind) for path, kind in entries]
        operations.sort(key=lambda op: (op.path.count("/"), op.path))
        return self._run_batch(operations, on_item)

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise SyncCancelledError("Sync cancelled")

    def _run_one(
        self,
        operation: Operation,
        outcome: TransferOutcome,
    ) -> bool:
        if self.dry_run:
            logger.info(f"Would {operation.type.value} {operation.path}")
            outcome.record_success(operation.path)
            return True

        start = time.time()
        try:
            self.apply(operation)
        except TransferError as e:
            logger.debug(f"{operation.type.value} {operation.path} failed: {e}")
            outcome.record_failure(operation.path, e)
            return False
        logger.debug(
            f"{operation.type.value} {operation.path} took {time.time() - start:.2f}s"
        )
        outcome.record_success(operation.path)
        return True

    def _run_batch(
        self,
        operations: list[Operation],
        on_item: Optional[Callable[[Operation, bool], None]],
    ) -> TransferOutcome:
        outcome = TransferOutcome()
        if not operations:
            return outcome

        parallel = (
            self.max_workers > 1
            and len(operations) > 1
            and self.port.supports_parallel
            and not self.dry_run
        )
        if parallel:
            self._run_parallel(operations, outcome, on_item)
        else:
            self._run_sequential(operations, outcome, on_item)
        return outcome

    def _run_sequential(
        self,
        operations: list[Operation],
        outcome: TransferOutcome,
        on_item: Optional[Callable[[Operation, bool], None]],
    ) -> None:
        for operation in operations:
            self._check_cancelled()
            ok = self._run_one(operation, outcome)
            if on_item is not None:
                on_item(operation, ok)

    def _run_parallel(
        self,
        operations: list[Operation],
        outcome: TransferOutcome,
        on_item: Optional[Callable[[Operation, bool], None]],
    ) -> None:
        """Run independent items of one pass on a thread pool.

        Directories always run sequentially in their planned order. They are
        created before the files go to the pool, and removed only after the
        pool has deleted the files inside them.
        """
        directories = [op for op in operations if op.kind == EntryKind.DIRECTORY]
        files = [op for op in operations if op.kind != EntryKind.DIRECTORY]

        if any(isinstance(op, Delete) for op in directories):
            self._run_pool(files, outcome, on_item)
            self._run_sequential(directories, outcome, on_item)
        else:
            self._run_sequential(directories, outcome, on_item)
            self._run_pool(files, outcome, on_item)

    def _run_pool(
        self,
        operations: list[Operation],
        outcome: TransferOutcome,
        on_item: Optional[Callable[[Operation, bool], None]],
    ) -> None:
        if not operations:
            return
        logger.debug(
            f"Executing {len(operations)} item(s) with {self.max_workers} workers"
        )
        lock = threading.Lock()

        def run(operation: Operation) -> tuple[Operation, bool]:
            self._check_cancelled()
            local_outcome = TransferOutcome()
            ok = self._run_one(operation, local_outcome)
            with lock:
                outcome.merge(local_outcome)
            return operation, ok

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(run, op) for op in operations]
            cancelled: Optional[SyncCancelledError] = None
            for future in as_completed(futures):
                try:
                    operation, ok = future.result()
                except SyncCancelledError as e:
                    cancelled = e
                    continue
                if on_item is not None:
                    on_item(operation, ok)
        if cancelled is not None:
            raise cancelled
