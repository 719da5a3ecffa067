"""Open file descriptors of a process, from ``/proc/<pid>/fd``."""

from __future__ import annotations

import enum
import os
import stat as stat_mod
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from procscan.common import (
    IncompleteError,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    ProcError,
    parse_int,
)

__all__ = ["FDPermissions", "FDTargetKind", "FDTarget", "FDInfo"]

_U32_LIMIT = 2**32
_U64_LIMIT = 2**64


class FDPermissions(enum.IntFlag):
    """Owner read/write/execute bits of a file descriptor link."""

    READ = stat_mod.S_IRUSR
    WRITE = stat_mod.S_IWUSR
    EXECUTE = stat_mod.S_IXUSR


class FDTargetKind(enum.Enum):
    """What a file descriptor refers to."""

    PATH = "path"
    SOCKET = "socket"
    NET = "net"
    PIPE = "pipe"
    ANON_INODE = "anon_inode"
    OTHER = "other"


_INODE_KINDS = {
    "socket": FDTargetKind.SOCKET,
    "net": FDTargetKind.NET,
    "pipe": FDTargetKind.PIPE,
}


@contextmanager
def _os_errors(path: os.PathLike | str) -> Iterator[None]:
    """Translate OS errors raised inside the block into ProcError subclasses."""
    try:
        yield
    except (FileNotFoundError, ProcessLookupError) as exc:
        raise NotFoundError(f"{path} not found", path) from exc
    except PermissionError as exc:
        raise PermissionDeniedError(f"permission denied accessing {path}", path) from exc
    except OSError as exc:
        raise ProcError(f"error accessing {path}: {exc}", path) from exc


def _strip_first_last(text: str) -> str:
    if len(text.encode("utf-8")) <= 2:
        raise IncompleteError(f"truncated descriptor target {text!r}")
    return text[1:-1]


def _inode(parts: list[str], what: str) -> int:
    if len(parts) < 2:
        raise InternalError(f"{what} inode is missing")
    value = parse_int(_strip_first_last(parts[1]))
    if not 0 <= value < _U64_LIMIT:
        raise InternalError(f"{what} inode {parts[1]!r} is out of range")
    return value


@dataclass(frozen=True)
class FDTarget:
    """The target of a file descriptor link.

    ``value`` holds the path for PATH, the inode for SOCKET, NET, PIPE and
    OTHER, and the name for ANON_INODE; ``label`` is the type name of OTHER.
    """

    kind: FDTargetKind
    value: Path | int | str
    label: str | None = None

    @classmethod
    def parse(cls, text: str) -> FDTarget:
        """Parse the text of a ``/proc/<pid>/fd/<n>`` symlink."""
        if text.startswith("/") or ":" not in text:
            return cls(FDTargetKind.PATH, Path(text))
        parts = text.split(":")
        fd_type = parts[0]
        kind = _INODE_KINDS.get(fd_type)
        if kind is not None:
            return cls(kind, _inode(parts, fd_type))
        if fd_type == "anon_inode":
            return cls(FDTargetKind.ANON_INODE, parts[1])
        if fd_type == "":
            raise IncompleteError(f"descriptor target {text!r} has no type")
        return cls(FDTargetKind.OTHER, _inode(parts, fd_type), fd_type)


def _decode_link(link: str) -> str:
    try:
        link.encode("utf-8")
    except UnicodeEncodeError:
        raise InternalError(f"descriptor target {link!r} is not valid UTF-8") from None
    return link


@dataclass(frozen=True, repr=False)
class FDInfo:
    """A file descriptor opened by a process.

    ``mode`` keeps only the owner read/write/execute bits.
    """

    fd: int
    mode: int
    target: FDTarget

    @classmethod
    def _from_link(cls, fd: int, st_mode: int, link: str) -> FDInfo:
        return cls(fd, st_mode & stat_mod.S_IRWXU, FDTarget.parse(_decode_link(link)))

    @classmethod
    def from_raw_fd(cls, pid: int, raw_fd: int, proc_root: os.PathLike | str = "/proc") -> FDInfo:
        """Look up descriptor ``raw_fd`` of process ``pid``."""
        return cls.from_path(Path(proc_root) / str(pid) / "fd" / str(raw_fd))

    @classmethod
    def from_path(cls, path: os.PathLike | str) -> FDInfo:
        """Read the descriptor link at ``path`` (``.../fd/<n>``)."""
        path = Path(path)
        with _os_errors(path):
            link = os.readlink(path)
            info = os.lstat(path)
        fd = parse_int(path.name)
        if not 0 <= fd < _U32_LIMIT:
            raise InternalError(f"descriptor number {path.name!r} is out of range")
        return cls._from_link(fd, info.st_mode, link)

    def permissions(self) -> FDPermissions:
        """Return the read/write/execute mode as flags."""
        return FDPermissions(self.mode & stat_mod.S_IRWXU)

    def __repr__(self) -> str:
        return f"FDInfo(fd={self.fd!r}, mode=0{self.mode:o}, target={self.target!r})"