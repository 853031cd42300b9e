"""Translation between the local and the remote path namespace."""

from dataclasses import dataclass

from ..exceptions import PathMappingError


def _normalize_root(root: str) -> str:
    """Ensure a root ends with exactly one trailing slash."""
    return root.rstrip("/") + "/"


@dataclass(frozen=True)
class PathMapper:
    """Maps paths under ``local_root`` onto ``remote_root`` and back.

    Both roots end with ``/`` after construction. No other normalization is
    done: case and symlinks are the caller's responsibility.

    Examples:
        >>> mapper = PathMapper("/home/user/docs", "/backup/docs")
        >>> mapper.to_remote("/home/user/docs/a/b.txt")
        '/backup/docs/a/b.txt'
        >>> mapper.to_local("/backup/docs/a/b.txt")
        '/home/user/docs/a/b.txt'
    """

    local_root: str
    remote_root: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "local_root", _normalize_root(self.local_root))
        object.__setattr__(self, "remote_root", _normalize_root(self.remote_root))

    @staticmethod
    def _translate(path: str, source_root: str, target_root: str) -> str:
        # The root itself, written without its trailing slash
        if path == source_root.rstrip("/"):
            return target_root.rstrip("/") or "/"
        if not path.startswith(source_root):
            raise PathMappingError(path, source_root)
        return target_root + path[len(source_root) :]

    def to_remote(self, local_path: str) -> str:
        """Translate a local path into the remote namespace.

        Raises:
            PathMappingError: If ``local_path`` is not under ``local_root``
        """
        return self._translate(local_path, self.local_root, self.remote_root)

    def to_local(self, remote_path: str) -> str:
        """Translate a remote path into the local namespace.

        Raises:
            PathMappingError: If ``remote_path`` is not under ``remote_root``
        """
        return self._translate(remote_path, self.remote_root, self.local_root)

