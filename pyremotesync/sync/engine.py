"""Core sync engine for executing backup, restore and sync runs."""

import logging
import threading
import time
from typing import TYPE_CHECKING, Callable, Optional

from rich.progress import Progress, SpinnerColumn, TextColumn

from ..exceptions import ConnectivityError, ListingError, TransferError
from ..output import OutputFormatter
from ..utils import format_size, format_timestamp
from .comparator import (
    ModificationTimeOracle,
    Operation,
    OperationType,
    ReconciliationPlanner,
    UnknownTimestampPolicy,
)
from .mapper import PathMapper
from .modes import SyncMode
from .operations import TransferExecutor, TransferOutcome
from .pair import SyncPair
from .scanner import LocalLister, RemoteLister, SnapshotEntry, TreeSnapshot
from .state import StateMachine, SyncPhase, SyncResult, SyncState

if TYPE_CHECKING:
    from ..backends.base import RemoteStoragePort

logger = logging.getLogger(__name__)

# Per-item report lines, keyed by operation type
_SUCCESS_MESSAGES = {
    OperationType.PUSH: "File [{path}] copied to server.",
    OperationType.UPDATE: "File [{path}] copied to server.",
    OperationType.DELETE: "[{path}] removed from server.",
    OperationType.PULL: "Successfully restored [{path}]",
}
_FAILURE_MESSAGES = {
    OperationType.PUSH: "File [{path}] not copied to server: {error}",
    OperationType.UPDATE: "File [{path}] not copied to server: {error}",
    OperationType.DELETE: "[{path}] could not be removed from server: {error}",
    OperationType.PULL: "File [{path}] could not be restored: {error}",
}


class SyncEngine:
    """Orchestrates backup, restore and sync runs over one remote port.

    The engine owns the port for the duration of a run: every workflow
    connects on entry and disconnects on exit, including when a fatal error
    ends the run. A port must not be shared between engines.
    """

    def __init__(
        self,
        port: "RemoteStoragePort",
        output: Optional[OutputFormatter] = None,
        policy: UnknownTimestampPolicy = UnknownTimestampPolicy.PUSH,
        max_workers: int = 1,
        cancel_event: Optional[threading.Event] = None,
    ):
        """Initialize sync engine.

        Args:
            port: Remote storage port (not yet connected)
            output: Output formatter for displaying progress/status
            policy: Handling of files whose remote timestamp is unknown
            max_workers: Number of parallel workers within a pass
            cancel_event: Set from another thread to stop between items
        """
        self.port = port
        self.output = output or OutputFormatter()
        self.policy = policy
        self.max_workers = max_workers
        self.cancel_event = cancel_event
        self.state_machine = StateMachine()
        self.last_result: Optional[SyncResult] = None

    # ------------------------------------------------------------------
    # Public workflows
    # ------------------------------------------------------------------

    def run(self, pair: SyncPair, dry_run: bool = False) -> SyncResult:
        """Run the workflow selected by ``pair.sync_mode``."""
        if pair.sync_mode == SyncMode.BACKUP:
            return self.backup(pair, dry_run=dry_run)
        if pair.sync_mode == SyncMode.RESTORE:
            return self.restore(pair, dry_run=dry_run)
        return self.sync(pair, dry_run=dry_run)

    def backup(self, pair: SyncPair, dry_run: bool = False) -> SyncResult:
        """Push every local entry to the remote side, unconditionally.

        Examples:
            >>> engine = SyncEngine(SFTPBackend(server="example.com", user="me"))
            >>> result = engine.backup(SyncPair(Path("/home/me"), "/backup"))
            >>> result.succeeded
            True
        """
        return self._run_workflow(SyncMode.BACKUP, pair, dry_run, self._backup)

    def restore(self, pair: SyncPair, dry_run: bool = False) -> SyncResult:
        """Pull every remote entry to the local side."""
        return self._run_workflow(SyncMode.RESTORE, pair, dry_run, self._restore)

    def sync(self, pair: SyncPair, dry_run: bool = False) -> SyncResult:
        """Make the remote tree mirror the local tree.

        Runs three dependent passes, each observing the effects of the
        previous one:

        1. push local entries missing remotely
        2. remove remote entries with no local counterpart
        3. push local files newer than their remote copy
        """
        return self._run_workflow(SyncMode.SYNC, pair, dry_run, self._sync)

    # ------------------------------------------------------------------
    # Workflow bodies
    # ------------------------------------------------------------------

    def _run_workflow(
        self,
        mode: SyncMode,
        pair: SyncPair,
        dry_run: bool,
        body: Callable[[SyncPair, bool, StateMachine, SyncResult], None],
    ) -> SyncResult:
        machine = StateMachine()
        self.state_machine = machine
        result = SyncResult(mode=mode, dry_run=dry_run)
        self.last_result = result

        if not self.output.quiet:
            self.output.info(f"{mode.value.capitalize()}: {pair.local} -> {pair.remote}")
            if dry_run:
                self.output.info("Dry run: No changes will be made")
            self.output.print("")

        start_time = time.time()
        try:
            with self.port:
                body(pair, dry_run, machine, result)
        except BaseException as e:
            # KeyboardInterrupt and unexpected errors also end in FAILED
            machine.fail()
            result.state = machine.state
            result.error = str(e) or type(e).__name__
            logger.debug(f"{mode.value} failed in {time.time() - start_time:.2f}s: {e}")
            raise

        result.state = machine.state
        logger.debug(f"{mode.value} finished in {time.time() - start_time:.2f}s")
        if not self.output.quiet:
            self._display_summary(result)
        return result

    def _backup(
        self,
        pair: SyncPair,
        dry_run: bool,
        machine: StateMachine,
        result: SyncResult,
    ) -> None:
        mapper = PathMapper(pair.local_root, pair.remote)
        executor = self._create_executor(mapper, dry_run)

        machine.advance(SyncState.LISTING)
        local = self._list_local(pair)
        if not dry_run:
            self._ensure_remote_root(pair.remote)

        machine.advance(SyncState.EXEC_BACKUP)
        outcome = self._execute(
            "Backing up files...",
            len(local),
            lambda on_item: executor.backup(
                ((e.path, e.kind) for e in local), on_item=on_item
            ),
            report_successes=False,
        )
        result.outcomes[SyncPhase.BACKUP] = outcome
        self._report_phase(outcome, "Successfully backed up [{path}]", "Backup")
        machine.advance(SyncState.DONE)

    def _restore(
        self,
        pair: SyncPair,
        dry_run: bool,
        machine: StateMachine,
        result: SyncResult,
    ) -> None:
        mapper = PathMapper(pair.local_root, pair.remote)
        executor = self._create_executor(mapper, dry_run)

        machine.advance(SyncState.LISTING)
        if not self.port.exists(pair.remote):
            raise ListingError(f"Remote directory does not exist: {pair.remote}")
        remote = self._list_remote(pair)

        machine.advance(SyncState.EXEC_RESTORE)
        outcome = self._execute(
            "Restoring files...",
            len(remote),
            lambda on_item: executor.restore(
                ((e.path, e.kind) for e in remote), on_item=on_item
            ),
            report_successes=False,
        )
        result.outcomes[SyncPhase.RESTORE] = outcome
        self._report_phase(outcome, "Successfully restored [{path}]", "Restore")
        machine.advance(SyncState.DONE)

    def _sync(
        self,
        pair: SyncPair,
        dry_run: bool,
        machine: StateMachine,
        result: SyncResult,
    ) -> None:
        mapper = PathMapper(pair.local_root, pair.remote)
        planner = ReconciliationPlanner(mapper, self.policy)
        executor = self._create_executor(mapper, dry_run)

        machine.advance(SyncState.LISTING)
        remote_exists = self.port.exists(pair.remote)
        if not remote_exists and not dry_run:
            self._ensure_remote_root(pair.remote)
            remote_exists = True
        local = self._list_local(pair)
        remote = self._list_remote(pair) if remote_exists else TreeSnapshot(pair.remote)

        if not self.output.quiet:
            if not remote:
                self.output.info("*** Remote server directory empty ***")
            if not local:
                self.output.info("*** Local directory empty ***")

        # Pass 1: additions
        machine.advance(SyncState.PLAN_ADDITIONS)
        pushes = planner.plan_additions(local, remote)
        logger.debug(f"Planned {len(pushes)} addition(s)")

        machine.advance(SyncState.EXEC_ADDITIONS)
        additions = self._execute(
            "Transferring new files to server...", len(pushes), executor.execute, pushes
        )
        result.outcomes[SyncPhase.ADDITIONS] = additions

        working = remote.copy()
        working.union(
            SnapshotEntry(path=mapper.to_remote(op.path), kind=op.kind)
            for op in pushes
            if op.path in additions.succeeded
        )

        # Pass 2: orphan removal
        machine.advance(SyncState.PLAN_DELETIONS)
        deletions = planner.plan_deletions(local, working)
        logger.debug(f"Planned {len(deletions)} deletion(s)")

        machine.advance(SyncState.EXEC_DELETIONS)
        removed = self._execute(
            "Removing deleted local files from server...",
            len(deletions),
            executor.execute,
            deletions,
        )
        result.outcomes[SyncPhase.DELETIONS] = removed
        for op in deletions:
            if op.path in removed.succeeded:
                working.discard(op.path)

        # Pass 3: staleness updates
        machine.advance(SyncState.PLAN_UPDATES)
        if dry_run:
            # Planned pushes did not really happen; leave them out of pass 3
            pushed_local = [op.path for op in pushes]
            pushed_remote = [mapper.to_remote(p) for p in pushed_local]
        else:
            pushed_local, pushed_remote = [], []
        oracle = ModificationTimeOracle.build(self.port, working, skip=pushed_remote)
        updates = planner.plan_updates(local, oracle, exclude=pushed_local)
        logger.debug(f"Planned {len(updates)} update(s)")
        for op in updates:
            remote_path = mapper.to_remote(op.path)
            entry = local.get(op.path)
            local_mtime = entry.mtime if entry else None
            logger.debug(
                f"{remote_path}: local {format_timestamp(local_mtime)}, "
                f"server {format_timestamp(oracle.get(remote_path))}"
            )
            if not self.output.quiet:
                self.output.info(f"Server file {remote_path} out of date.")

        machine.advance(SyncState.EXEC_UPDATES)
        updated = self._execute(
            "Copying updated local files to server...",
            len(updates),
            executor.execute,
            updates,
        )
        result.outcomes[SyncPhase.UPDATES] = updated
        machine.advance(SyncState.DONE)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _create_executor(self, mapper: PathMapper, dry_run: bool) -> TransferExecutor:
        return TransferExecutor(
            self.port,
            mapper,
            max_workers=self.max_workers,
            cancel_event=self.cancel_event,
            dry_run=dry_run,
        )

    def _ensure_remote_root(self, remote_root: str) -> None:
        """Create the remote root directory if needed.

        Raises:
            ConnectivityError: If the directory cannot be created
        """
        try:
            self.port.ensure_path(remote_root)
        except TransferError as e:
            raise ConnectivityError(
                f"Remote server directory {remote_root} could not be created: {e}"
            ) from e
        if not self.port.exists(remote_root):
            raise ConnectivityError(
                f"Remote server directory {remote_root} could not be created."
            )

    def _list_local(self, pair: SyncPair) -> TreeSnapshot:
        lister = LocalLister(
            ignore_patterns=pair.ignore,
            exclude_dot_files=pair.exclude_dot_files,
        )
        with self._spinner("Scanning local directory...") as update:
            snapshot = lister.list(pair.local_root)
            update(f"Found {len(snapshot)} local entries ({_total_size(snapshot)})")
        return snapshot

    def _list_remote(self, pair: SyncPair) -> TreeSnapshot:
        lister = RemoteLister(
            self.port,
            ignore_patterns=pair.ignore,
            exclude_dot_files=pair.exclude_dot_files,
        )
        with self._spinner("Scanning remote directory...") as update:
            snapshot = lister.list(pair.remote)
            update(f"Found {len(snapshot)} remote entries ({_total_size(snapshot)})")
        return snapshot

    def _spinner(self, description: str) -> "_Spinner":
        return _Spinner(description, enabled=not self.output.quiet)

    def _execute(
        self,
        description: str,
        total: int,
        run: Callable[..., TransferOutcome],
        *args: object,
        report_successes: bool = True,
    ) -> TransferOutcome:
        """Run one pass with a progress bar and report per-item results."""
        if not self.output.quiet:
            self.output.info(f"*** {description.rstrip('.')} ***")

        reported: list[tuple[Operation, bool]] = []

        def on_item(operation: Operation, ok: bool) -> None:
            reported.append((operation, ok))

        if self.output.quiet or total == 0:
            outcome = run(*args, on_item=on_item)
        else:
            with Progress(transient=True) as progress:
                task = progress.add_task(description, total=total)

                def on_item_with_progress(operation: Operation, ok: bool) -> None:
                    on_item(operation, ok)
                    progress.update(task, advance=1)

                outcome = run(*args, on_item=on_item_with_progress)

        for operation, ok in reported:
            self._report_item(operation, ok, outcome, report_successes)
        return outcome

    def _report_item(
        self,
        operation: Operation,
        ok: bool,
        outcome: TransferOutcome,
        report_success: bool = True,
    ) -> None:
        if ok:
            logger.debug(f"{operation.type.value} ok: {operation.path}")
            if report_success and not self.output.quiet:
                self.output.info(
                    _SUCCESS_MESSAGES[operation.type].format(path=operation.path)
                )
        else:
            self.output.error(
                _FAILURE_MESSAGES[operation.type].format(
                    path=operation.path,
                    error=outcome.failed.get(operation.path, "unknown error"),
                )
            )

    def _report_phase(
        self, outcome: TransferOutcome, success_line: str, label: str
    ) -> None:
        """Print the per-file lines of a backup or restore phase."""
        if not self.output.quiet:
            for path in sorted(outcome.succeeded):
                self.output.info(success_line.format(path=path))
        if outcome.is_empty:
            if not self.output.quiet:
                self.output.info(f"{label}: nothing to transfer.")
        elif not outcome.succeeded:
            self.output.error(f"{label} failed.")

    def _display_summary(self, result: SyncResult) -> None:
        """Display a summary of the run."""
        self.output.print("")
        if result.dry_run:
            self.output.success("Dry run complete!")
        elif result.mode == SyncMode.SYNC:
            self.output.success("Files synchronized with server")
        else:
            self.output.success(f"{result.mode.value.capitalize()} complete!")

        total_actions = result.succeeded_count + result.failed_count
        if total_actions == 0:
            self.output.info("No changes needed - everything is in sync!")
            return

        self.output.info(f"Total actions: {total_actions}")
        for phase, outcome in result.outcomes.items():
            if outcome.is_empty:
                continue
            line = f"  {phase.value.capitalize()}: {len(outcome.succeeded)}"
            if outcome.failed:
                line += f" ({len(outcome.failed)} failed)"
            self.output.info(line)
        if result.failed_count:
            self.output.warning(f"{result.failed_count} item(s) failed")


def _total_size(snapshot: TreeSnapshot) -> str:
    return format_size(sum(entry.size or 0 for entry in snapshot.files()))


class _Spinner:
    """Transient Rich spinner shown while a tree is being listed."""

    def __init__(self, description: str, enabled: bool = True):
        self.description = description
        self.enabled = enabled
        self._progress: Optional[Progress] = None
        self._task = None

    def __enter__(self) -> Callable[[str], None]:
        if self.enabled:
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                transient=True,
            )
            self._progress.__enter__()
            self._task = self._progress.add_task(self.description, total=None)
        return self._update

    def _update(self, description: str) -> None:
        logger.debug(description)
        if self._progress is not None and self._task is not None:
            self._progress.update(self._task, description=description)

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._progress is not None:
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
