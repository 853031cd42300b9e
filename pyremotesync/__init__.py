"""pyremotesync - Back up, restore and mirror directory trees on remote servers."""

from .exceptions import (
    ConfigError,
    ConnectivityError,
    ListingError,
    PathMappingError,
    RemoteOperationError,
    SyncCancelledError,
    SyncError,
    TransferError,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigError",
    "ConnectivityError",
    "ListingError",
    "PathMappingError",
    "RemoteOperationError",
    "SyncCancelledError",
    "SyncError",
    "TransferError",
]
