"""Remote Storage Port implementations."""

from enum import Enum
from typing import Any, Union

from ..exceptions import ConfigError
from .base import RemoteEntry, RemoteStoragePort
from .ftp import FTPBackend
from .local import LocalBackend
from .scp import SCPBackend
from .sftp import SFTPBackend


class Protocol(str, Enum):
    """Transfer protocols supported by :func:`create_backend`."""

    FTP = "ftp"
    SFTP = "sftp"
    SCP = "scp"
    LOCAL = "local"


_BACKENDS: dict[Protocol, type[RemoteStoragePort]] = {
    Protocol.FTP: FTPBackend,
    Protocol.SFTP: SFTPBackend,
    Protocol.SCP: SCPBackend,
    Protocol.LOCAL: LocalBackend,
}


def create_backend(protocol: Union[Protocol, str], **settings: Any) -> RemoteStoragePort:
    """Create an unconnected backend for ``protocol``.

    Args:
        protocol: Protocol name ("ftp", "sftp", "scp" or "local")
        **settings: Backend keyword arguments (server, port, user, ...);
            settings a backend does not use are ignored

    Raises:
        ConfigError: If the protocol is unknown or a server is missing

    Examples:
        >>> port = create_backend("sftp", server="example.com", user="me")
        >>> port.port
        22
    """
    try:
        if not isinstance(protocol, Protocol):
            protocol = Protocol(protocol.lower())
    except ValueError:
        valid = ", ".join(p.value for p in Protocol)
        raise ConfigError(
            f"Unknown protocol '{protocol}'. Valid protocols: {valid}"
        ) from None

    if protocol != Protocol.LOCAL and not settings.get("server"):
        raise ConfigError("A server is required for protocol " + protocol.value)

    return _BACKENDS[protocol](**settings)


__all__ = [
    "FTPBackend",
    "LocalBackend",
    "Protocol",
    "RemoteEntry",
    "RemoteStoragePort",
    "SCPBackend",
    "SFTPBackend",
    "create_backend",
]
