"""FTP backend built on :mod:`ftplib`, with explicit TLS by default."""

import ftplib
import logging
from typing import Any, Callable, Optional

from ..exceptions import ConnectivityError, RemoteOperationError
from ..sync.scanner import EntryKind
from ..utils import DEFAULT_FTP_PORT, join_remote, parse_mdtm_timestamp
from .base import RemoteEntry, RemoteStoragePort

logger = logging.getLogger(__name__)

# MLSD "type" facts that describe the listed directory itself or its parent
_SELF_TYPES = ("cdir", "pdir")


class FTPBackend(RemoteStoragePort):
    """Remote storage on an FTP server.

    Uses ``FTP_TLS`` (explicit TLS with a protected data channel) unless
    ``use_tls`` is False. Listings prefer ``MLSD`` and fall back to ``NLST``
    with a ``CWD`` probe per entry on servers without it. Modification times
    come from ``MDTM``.
    """

    name = "ftp"

    def __init__(
        self,
        server: str,
        port: Optional[int] = None,
        user: str = "anonymous",
        password: str = "",
        use_tls: bool = True,
        passive: bool = True,
        timeout: float = 30.0,
        **_: object,
    ):
        self.server = server
        self.port = port or DEFAULT_FTP_PORT
        self.user = user or "anonymous"
        self.password = password or ""
        self.use_tls = use_tls
        self.passive = passive
        self.timeout = timeout
        self._ftp: Optional[ftplib.FTP] = None
        self._home = "/"

    @property
    def ftp(self) -> ftplib.FTP:
        if self._ftp is None:
            raise ConnectivityError(f"Not connected to {self.server}")
        return self._ftp

    def connect(self) -> None:
        ftp_class = ftplib.FTP_TLS if self.use_tls else ftplib.FTP
        ftp = ftp_class(timeout=self.timeout)
        try:
            ftp.connect(self.server, self.port)
            ftp.login(self.user, self.password)
            if self.use_tls:
                ftp.prot_p()
            ftp.set_pasv(self.passive)
            ftp.voidcmd("TYPE I")
            self._home = ftp.pwd() or "/"
        except ftplib.all_errors as e:
            ftp.close()
            raise ConnectivityError(
                f"Unable to connect to server {self.server}:{self.port}: {e}"
            ) from e
        logger.debug(f"Connected to {self.server}:{self.port} (tls={self.use_tls})")
        self._ftp = ftp

    def disconnect(self) -> None:
        if self._ftp is None:
            return
        try:
            self._ftp.quit()
        except ftplib.all_errors as e:
            logger.debug(f"QUIT failed ({e}), closing connection")
            self._ftp.close()
        finally:
            self._ftp = None

    def _call(self, action: str, path: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return func(*args)
        except ftplib.all_errors as e:
            raise RemoteOperationError(f"{action} {path} failed: {e}", path) from e

    def _is_directory(self, path: str) -> bool:
        """Probe with CWD, then return to the login directory."""
        try:
            self.ftp.cwd(path)
        except ftplib.error_perm:
            return False
        finally:
            self._call("CWD", self._home, self.ftp.cwd, self._home)
        return True

    def exists(self, path: str) -> bool:
        if path in ("", "/") or self._call("CWD", path, self._is_directory, path):
            return True
        try:
            self.ftp.size(path)
        except ftplib.error_perm:
            return False
        except ftplib.all_errors as e:
            raise RemoteOperationError(f"SIZE {path} failed: {e}", path) from e
        return True

    def make_directory(self, path: str) -> None:
        self._call("MKD", path, self.ftp.mkd, path)

    def put(self, local_path: str, remote_path: str) -> None:
        def store() -> None:
            with open(local_path, "rb") as f:
                self.ftp.storbinary(f"STOR {remote_path}", f)

        self._call("STOR", remote_path, store)

    def get(self, remote_path: str, local_path: str) -> None:
        def retrieve() -> None:
            with open(local_path, "wb") as f:
                self.ftp.retrbinary(f"RETR {remote_path}", f.write)

        self._call("RETR", remote_path, retrieve)

    def delete(self, path: str) -> None:
        self._call("DELE", path, self.ftp.delete, path)

    def remove_directory(self, path: str) -> None:
        self._call("RMD", path, self.ftp.rmd, path)

    def get_modified_time(self, path: str) -> Optional[float]:
        try:
            response = self.ftp.sendcmd(f"MDTM {path}")
        except (ftplib.error_perm, ftplib.error_reply) as e:
            logger.debug(f"MDTM {path} not available: {e}")
            return None
        except ftplib.all_errors as e:
            raise RemoteOperationError(f"MDTM {path} failed: {e}", path) from e
        return parse_mdtm_timestamp(response)

    def list_directory(self, path: str) -> list[RemoteEntry]:
        try:
            return self._list_mlsd(path)
        except ftplib.error_perm as e:
            logger.debug(f"MLSD {path} refused ({e}), falling back to NLST")
        except ftplib.all_errors as e:
            raise RemoteOperationError(f"MLSD {path} failed: {e}", path) from e
        return self._list_nlst(path)

    def _list_mlsd(self, path: str) -> list[RemoteEntry]:
        entries = []
        for name, facts in self.ftp.mlsd(path, facts=["type", "size"]):
            entry_type = facts.get("type", "").lower()
            if name in (".", "..") or entry_type in _SELF_TYPES:
                continue
            if entry_type == "dir":
                kind = EntryKind.DIRECTORY
            elif entry_type == "file":
                kind = EntryKind.FILE
            elif self._is_directory(join_remote(path, name)):
                kind = EntryKind.DIRECTORY
            else:
                kind = EntryKind.FILE
            size = facts.get("size", "")
            entries.append(
                RemoteEntry(
                    name=name,
                    kind=kind,
                    size=int(size) if size.isdigit() else None,
                )
            )
        return entries

    def _list_nlst(self, path: str) -> list[RemoteEntry]:
        names = self._call("NLST", path, self.ftp.nlst, path)
        entries = []
        for raw in names:
            # Some servers answer with full paths, others with bare names
            name = raw.rstrip("/").rsplit("/", 1)[-1]
            if name in ("", ".", ".."):
                continue
            full_path = join_remote(path, name)
            is_dir = self._call("CWD", full_path, self._is_directory, full_path)
            entries.append(
                RemoteEntry(
                    name=name,
                    kind=EntryKind.DIRECTORY if is_dir else EntryKind.FILE,
                )
            )
        return entries
