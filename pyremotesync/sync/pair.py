"""Sync pair: a local root, a remote root and the workflow between them."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .modes import SyncMode


@dataclass
class SyncPair:
    """A local directory paired with a remote directory.

    Examples:
        >>> pair = SyncPair(Path("/home/user/docs"), "/backup/docs", SyncMode.SYNC)
    """

    local: Path
    """Local root directory"""

    remote: str
    """Remote root directory"""

    sync_mode: SyncMode = SyncMode.SYNC
    """Workflow to run"""

    alias: Optional[str] = None
    """Optional name for display"""

    ignore: list[str] = field(default_factory=list)
    """Glob patterns excluded from both listings"""

    exclude_dot_files: bool = False
    """Whether to skip entries starting with a dot"""

    def __post_init__(self) -> None:
        if isinstance(self.local, str):
            self.local = Path(self.local)
        if isinstance(self.sync_mode, str) and not isinstance(
            self.sync_mode, SyncMode
        ):
            self.sync_mode = SyncMode.from_string(self.sync_mode)
        # Keep "/" as is; strip trailing slashes elsewhere
        if self.remote != "/":
            self.remote = self.remote.rstrip("/")

    @property
    def local_root(self) -> str:
        """Absolute local root as a forward-slash string."""
        return self.local.expanduser().resolve().as_posix()

    def to_dict(self) -> dict[str, Any]:
        """Convert sync pair to a dictionary."""
        result: dict[str, Any] = {
            "local": str(self.local),
            "remote": self.remote,
            "syncMode": self.sync_mode.value,
        }
        if self.alias:
            result["alias"] = self.alias
        if self.ignore:
            result["ignore"] = list(self.ignore)
        if self.exclude_dot_files:
            result["excludeDotFiles"] = True
        return result
