"""Utility functions for pyremotesync."""

import shlex
from datetime import datetime, timezone
from typing import Optional

# =============================================================================
# Constants for remote connections
# =============================================================================

# Default control ports per protocol
DEFAULT_FTP_PORT: int = 21
DEFAULT_SSH_PORT: int = 22

# FTP reply code for a successful MDTM query
FTP_FILE_STATUS: str = "213"


# =============================================================================
# Timestamp utilities
# =============================================================================


def parse_mdtm_timestamp(response: Optional[str]) -> Optional[float]:
    """Parse an FTP MDTM reply into a Unix timestamp.

    MDTM timestamps are always UTC (RFC 3659), formatted as
    ``YYYYMMDDHHMMSS`` with optional fractional seconds.

    Args:
        response: Full server reply (e.g., "213 20250115103000") or the bare
            timestamp value

    Returns:
        Unix timestamp or None if the reply cannot be parsed

    Examples:
        >>> parse_mdtm_timestamp("213 19700101000100")
        60.0
        >>> parse_mdtm_timestamp("550 No such file") is None
        True
    """
    if not response:
        return None

    value = response.strip()
    if " " in value:
        code, _, value = value.partition(" ")
        if code != FTP_FILE_STATUS:
            return None
        value = value.strip()

    whole, _, fraction = value.partition(".")
    if len(whole) != 14 or not whole.isdigit():
        return None

    try:
        dt = datetime.strptime(whole, "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
    except ValueError:
        return None

    timestamp = dt.timestamp()
    if fraction.isdigit():
        timestamp += float(f"0.{fraction}")
    return timestamp


def format_timestamp(timestamp: Optional[float]) -> str:
    """Format a Unix timestamp for display in local time.

    Args:
        timestamp: Unix timestamp or None

    Returns:
        Formatted string (e.g., "2025-01-15 10:30:00") or "unknown"
    """
    if timestamp is None:
        return "unknown"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


# =============================================================================
# Remote path utilities
# =============================================================================


def join_remote(directory: str, name: str) -> str:
    """Join a remote directory and an entry name with a single slash.

    Examples:
        >>> join_remote("/backup", "a.txt")
        '/backup/a.txt'
        >>> join_remote("/backup/", "a.txt")
        '/backup/a.txt'
        >>> join_remote("/", "a.txt")
        '/a.txt'
    """
    if not directory:
        return name
    return directory.rstrip("/") + "/" + name


def remote_parent(path: str) -> str:
    """Return the parent directory of a remote path.

    Examples:
        >>> remote_parent("/backup/dir/a.txt")
        '/backup/dir'
        >>> remote_parent("/a.txt")
        '/'
        >>> remote_parent("a.txt")
        ''
    """
    stripped = path.rstrip("/")
    if "/" not in stripped:
        return ""
    parent = stripped.rsplit("/", 1)[0]
    return parent or "/"


def shell_quote(path: str) -> str:
    """Return a POSIX-shell-quoted version of a path for remote commands."""
    return shlex.quote(path)
