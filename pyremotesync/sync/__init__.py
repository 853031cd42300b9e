"""Sync engine for pyremotesync - backup, restore and one-way mirroring."""

from .comparator import (
    Delete,
    ModificationTimeOracle,
    Operation,
    OperationType,
    Pull,
    Push,
    ReconciliationPlanner,
    UnknownTimestampPolicy,
    Update,
    plan_additions,
    plan_deletions,
    plan_updates,
)
from .engine import SyncEngine
from .mapper import PathMapper
from .modes import SyncMode
from .operations import TransferExecutor, TransferOutcome
from .pair import SyncPair
from .scanner import (
    EntryKind,
    LocalLister,
    RemoteLister,
    SnapshotEntry,
    TreeSnapshot,
)
from .state import StateMachine, SyncPhase, SyncResult, SyncState

__all__ = [
    "SyncEngine",
    "SyncMode",
    "SyncPair",
    "PathMapper",
    "EntryKind",
    "SnapshotEntry",
    "TreeSnapshot",
    "LocalLister",
    "RemoteLister",
    "OperationType",
    "Operation",
    "Push",
    "Delete",
    "Update",
    "Pull",
    "UnknownTimestampPolicy",
    "ModificationTimeOracle",
    "ReconciliationPlanner",
    "plan_additions",
    "plan_deletions",
    "plan_updates",
    "TransferExecutor",
    "TransferOutcome",
    "StateMachine",
    "SyncPhase",
    "SyncResult",
    "SyncState",
]
