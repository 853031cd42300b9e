"""Exceptions raised by pyremotesync.

Fatal errors (connectivity, listing, path mapping) abort a run. Per-item
transfer errors are recoverable: the engine records them and moves on.
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for all pyremotesync errors."""

    pass


class ConfigError(SyncError):
    """Raised when configuration is missing or invalid."""

    pass


class ConnectivityError(SyncError):
    """Raised when the remote server cannot be reached or authenticated."""

    pass


class ListingError(SyncError):
    """Raised when a tree listing cannot be produced for one side."""

    pass


class PathMappingError(SyncError):
    """Raised when a path does not lie under the expected root."""

    def __init__(self, path: str, root: str):
        self.path = path
        self.root = root
        super().__init__(f"Path '{path}' is not under root '{root}'")


class SyncCancelledError(SyncError):
    """Raised when a run is cancelled between items."""

    pass


class TransferError(SyncError):
    """Recoverable failure of a single item (upload, download or delete)."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class RemoteOperationError(TransferError):
    """Raised by a backend when a remote command fails."""

    pass
