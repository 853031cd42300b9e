"""Run state tracking for sync workflows.

A run moves through a fixed sequence of states. Only fatal errors
(connectivity, listing, path mapping) leave the sequence, moving the run to
``FAILED``; per-item failures are recorded and the run carries on.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .modes import SyncMode
from .operations import TransferOutcome

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """States of a single run."""

    IDLE = "idle"
    LISTING = "listing"
    PLAN_ADDITIONS = "plan_additions"
    EXEC_ADDITIONS = "exec_additions"
    PLAN_DELETIONS = "plan_deletions"
    EXEC_DELETIONS = "exec_deletions"
    PLAN_UPDATES = "plan_updates"
    EXEC_UPDATES = "exec_updates"
    EXEC_BACKUP = "exec_backup"
    EXEC_RESTORE = "exec_restore"
    DONE = "done"
    FAILED = "failed"


# Allowed transitions; FAILED is reachable from every non-terminal state
_TRANSITIONS: dict[SyncState, tuple[SyncState, ...]] = {
    SyncState.IDLE: (SyncState.LISTING,),
    SyncState.LISTING: (
        SyncState.PLAN_ADDITIONS,
        SyncState.EXEC_BACKUP,
        SyncState.EXEC_RESTORE,
    ),
    SyncState.PLAN_ADDITIONS: (SyncState.EXEC_ADDITIONS,),
    SyncState.EXEC_ADDITIONS: (SyncState.PLAN_DELETIONS,),
    SyncState.PLAN_DELETIONS: (SyncState.EXEC_DELETIONS,),
    SyncState.EXEC_DELETIONS: (SyncState.PLAN_UPDATES,),
    SyncState.PLAN_UPDATES: (SyncState.EXEC_UPDATES,),
    SyncState.EXEC_UPDATES: (SyncState.DONE,),
    SyncState.EXEC_BACKUP: (SyncState.DONE,),
    SyncState.EXEC_RESTORE: (SyncState.DONE,),
    SyncState.DONE: (),
    SyncState.FAILED: (),
}


class SyncPhase(str, Enum):
    """Phases that produce a transfer outcome."""

    ADDITIONS = "additions"
    DELETIONS = "deletions"
    UPDATES = "updates"
    BACKUP = "backup"
    RESTORE = "restore"


class StateMachine:
    """Tracks the state of one run and rejects out-of-order transitions."""

    def __init__(self) -> None:
        self.state = SyncState.IDLE
        self.history: list[SyncState] = [SyncState.IDLE]

    def advance(self, new_state: SyncState) -> None:
        """Move to ``new_state``.

        Raises:
            RuntimeError: If the transition is not allowed
        """
        allowed = _TRANSITIONS[self.state]
        if new_state != SyncState.FAILED and new_state not in allowed:
            raise RuntimeError(
                f"Invalid state transition {self.state.value} -> {new_state.value}"
            )
        if new_state == SyncState.FAILED and self.is_terminal:
            raise RuntimeError(f"Run already finished in state {self.state.value}")
        logger.debug(f"State {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def fail(self) -> None:
        if not self.is_terminal:
            self.advance(SyncState.FAILED)

    @property
    def is_terminal(self) -> bool:
        return self.state in (SyncState.DONE, SyncState.FAILED)


@dataclass
class SyncResult:
    """Result of one run: per-phase outcomes plus overall status."""

    mode: SyncMode
    """Workflow that was run"""

    outcomes: dict[SyncPhase, TransferOutcome] = field(default_factory=dict)
    """Transfer outcome per phase, in execution order"""

    state: SyncState = SyncState.IDLE
    """Final state of the run"""

    dry_run: bool = False
    """Whether nothing was actually transferred"""

    error: Optional[str] = None
    """Message of the fatal error that ended the run, if any"""

    @property
    def succeeded_count(self) -> int:
        return sum(len(o.succeeded) for o in self.outcomes.values())

    @property
    def failed_count(self) -> int:
        return sum(len(o.failed) for o in self.outcomes.values())

    @property
    def succeeded(self) -> bool:
        """Tolerant status: any item transferred, or nothing failed.

        A run where some items failed still counts as successful as long as
        at least one item went through.
        """
        if self.state == SyncState.FAILED:
            return False
        return self.succeeded_count > 0 or self.failed_count == 0

    @property
    def strict_succeeded(self) -> bool:
        """Strict status: the run finished and no item failed."""
        return self.state == SyncState.DONE and self.failed_count == 0

    def exit_code(self, strict: bool = False) -> int:
        """Process exit code for this result (0 on success, 1 otherwise)."""
        ok = self.strict_succeeded if strict else self.succeeded
        return 0 if ok else 1

    def to_dict(self) -> dict:
        """Convert result to dictionary for JSON serialization."""
        return {
            "mode": self.mode.value,
            "state": self.state.value,
            "dry_run": self.dry_run,
            "succeeded": self.succeeded,
            "strict_succeeded": self.strict_succeeded,
            "error": self.error,
            "phases": {
                phase.value: outcome.to_dict()
                for phase, outcome in self.outcomes.items()
            },
        }
