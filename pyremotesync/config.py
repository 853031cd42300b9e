"""Connection settings and config file loading for pyremotesync.

Config files use ``key=value`` lines with ``#`` comments. Keys outside any
section apply to every command; ``[backup]``, ``[restore]`` and ``[sync]``
sections override them for that command::

    server=ftp.example.com
    user=me
    remote=/backup/docs
    local=/home/me/docs

    [sync]
    unknown-timestamp=skip
"""

import configparser
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from .exceptions import ConfigError
from .utils import DEFAULT_FTP_PORT, DEFAULT_SSH_PORT

logger = logging.getLogger(__name__)

COMMANDS = ("backup", "restore", "sync")

# Keys accepted in config files (after "-" -> "_" normalization)
CONFIG_KEYS = frozenset(
    {
        "protocol",
        "server",
        "port",
        "user",
        "password",
        "remote",
        "local",
        "no_tls",
        "accept_unknown_hosts",
        "key_file",
        "dry_run",
        "workers",
        "ignore",
        "exclude_dot_files",
        "strict",
        "unknown_timestamp",
    }
)

# Section name for keys that appear before any section header
_COMMON_SECTION = "pyremotesync"


@dataclass
class ConnectionSettings:
    """Everything needed to reach one remote directory."""

    protocol: str = "ftp"
    """Transfer protocol: ftp, sftp, scp or local"""

    server: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = None

    remote: Optional[str] = None
    """Remote root directory"""

    local: Optional[str] = None
    """Local root directory"""

    use_tls: bool = True
    """Use explicit TLS for FTP"""

    accept_unknown_hosts: bool = False
    """Accept SSH hosts missing from known_hosts"""

    key_filename: Optional[str] = None
    """Private key file for SSH authentication"""

    @property
    def effective_port(self) -> int:
        if self.port:
            return self.port
        return DEFAULT_FTP_PORT if self.protocol == "ftp" else DEFAULT_SSH_PORT

    def validate(self) -> None:
        """Check that all required settings are present.

        Raises:
            ConfigError: Naming the first missing setting
        """
        required = ["remote", "local"]
        if self.protocol != "local":
            required = ["server", "user"] + required
        for name in required:
            if not getattr(self, name):
                raise ConfigError(
                    f"Missing required option '--{name}' (command line or config file)"
                )

    def backend_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for :func:`pyremotesync.backends.create_backend`."""
        return {
            "server": self.server,
            "port": self.effective_port,
            "user": self.user or "",
            "password": self.password,
            "use_tls": self.use_tls,
            "accept_unknown_hosts": self.accept_unknown_hosts,
            "key_filename": self.key_filename,
        }

    def banner(self) -> list[str]:
        """Lines describing the connection, without the password."""
        lines = [f"PROTOCOL [{self.protocol}]"]
        if self.protocol != "local":
            lines += [
                f"SERVER [{self.server}]",
                f"SERVER PORT [{self.effective_port}]",
                f"USER [{self.user}]",
            ]
        lines += [
            f"REMOTE DIRECTORY [{self.remote}]",
            f"LOCAL DIRECTORY [{self.local}]",
        ]
        return lines


def _normalize_section(
    items: dict[str, str], source: Union[str, Path]
) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for raw_key, value in items.items():
        key = raw_key.strip().lower().replace("-", "_")
        if key not in CONFIG_KEYS:
            raise ConfigError(f"Unknown option '{raw_key}' in config file {source}")
        if key == "ignore":
            values[key] = [p.strip() for p in value.split(",") if p.strip()]
        else:
            values[key] = value.strip()
    return values


def load_config_file(path: Union[str, Path]) -> dict[str, dict[str, Any]]:
    """Load a config file into a click ``default_map``.

    Args:
        path: Config file path

    Returns:
        Mapping command name -> option defaults, with section values layered
        over the common keys

    Raises:
        ConfigError: If the file is missing, malformed or has unknown keys

    Examples:
        >>> defaults = load_config_file("sync.cfg")
        >>> defaults["sync"]["server"]
        'ftp.example.com'
    """
    config_path = Path(path).expanduser()
    if not config_path.is_file():
        raise ConfigError("Specified config file does not exist.")

    parser = configparser.ConfigParser(
        interpolation=None, comment_prefixes=("#", ";"), inline_comment_prefixes=None
    )
    try:
        text = config_path.read_text(encoding="utf-8")
        parser.read_string(f"[{_COMMON_SECTION}]\n{text}", source=str(config_path))
    except (OSError, configparser.Error) as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    common = _normalize_section(dict(parser.items(_COMMON_SECTION)), config_path)
    overrides: dict[str, dict[str, Any]] = {}
    for section in parser.sections():
        if section == _COMMON_SECTION:
            continue
        name = section.strip().lower()
        if name not in COMMANDS:
            raise ConfigError(
                f"Unknown section '[{section}]' in config file {config_path}"
            )
        overrides[name] = _normalize_section(dict(parser.items(section)), config_path)

    logger.debug(f"Loaded config file {config_path}")
    return {command: {**common, **overrides.get(command, {})} for command in COMMANDS}
