"""Sync modes supported by the engine."""

from enum import Enum


class SyncMode(str, Enum):
    """Workflow to run for a sync pair."""

    BACKUP = "backup"
    """Push every local entry to the remote side, never delete"""

    RESTORE = "restore"
    """Pull every remote entry to the local side, never delete"""

    SYNC = "sync"
    """Make the remote tree mirror the local tree (add, delete, update)"""

    @classmethod
    def from_string(cls, value: str) -> "SyncMode":
        """Parse a mode name or its abbreviation.

        Args:
            value: Mode name ("backup", "restore", "sync") or abbreviation
                ("b", "r", "s"), case-insensitive

        Returns:
            Matching SyncMode

        Raises:
            ValueError: If the value is not a known mode
        """
        normalized = value.strip().lower()
        abbreviations = {
            "b": cls.BACKUP,
            "r": cls.RESTORE,
            "s": cls.SYNC,
        }
        if normalized in abbreviations:
            return abbreviations[normalized]
        for mode in cls:
            if mode.value == normalized:
                return mode
        valid = ", ".join(m.value for m in cls)
        raise ValueError(f"Invalid sync mode '{value}'. Valid modes: {valid}")
