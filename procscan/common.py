"""Shared errors, kernel version handling and low-level helpers for reading procfs."""

from __future__ import annotations

import enum
import os
import re
from dataclasses import dataclass
from pathlib import Path

__all__ = [
    "ProcError",
    "NotFoundError",
    "PermissionDeniedError",
    "IncompleteError",
    "InternalError",
    "KernelVersion",
    "ProcState",
    "StatFlags",
    "read_proc_text",
    "read_proc_bytes",
    "parse_int",
    "page_size",
    "ticks_per_second",
]


class ProcError(Exception):
    """Base class for every error raised while reading process information."""

    def __init__(self, message: str = "", path: os.PathLike | str | None = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class NotFoundError(ProcError):
    """The requested file does not exist (often because the process has exited)."""


class PermissionDeniedError(ProcError):
    """The caller lacks permission to read the requested file."""


class IncompleteError(ProcError):
    """The data read was incomplete or truncated."""


class InternalError(ProcError):
    """The data could not be parsed in the expected format."""


_KERNEL_RE = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")


@dataclass(frozen=True, order=True)
class KernelVersion:
    """A kernel version as a comparable (major, minor, patch) triple."""

    major: int
    minor: int
    patch: int = 0

    @classmethod
    def parse(cls, text: str) -> KernelVersion:
        """Parse a release string such as ``5.15.0-91-generic``."""
        match = _KERNEL_RE.match(text.strip())
        if match is None:
            raise InternalError(f"cannot parse kernel version from {text!r}")
        major, minor, patch = match.groups()
        return cls(int(major), int(minor), int(patch) if patch is not None else 0)

    @classmethod
    def current(cls) -> KernelVersion:
        """Return the version of the running kernel."""
        return cls.parse(os.uname().release)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


class ProcState(enum.Enum):
    """The scheduling state of a process."""

    RUNNING = "R"
    SLEEPING = "S"
    WAITING = "D"
    ZOMBIE = "Z"
    STOPPED = "T"
    TRACING = "t"
    DEAD = "X"
    WAKEKILL = "K"
    WAKING = "W"
    PARKED = "P"
    IDLE = "I"

    @classmethod
    def from_char(cls, c: str) -> ProcState | None:
        """Return the state for a single state character, or None if unknown."""
        if c == "x":
            return cls.DEAD
        try:
            return cls(c)
        except ValueError:
            return None

    @classmethod
    def parse(cls, text: str) -> ProcState:
        """Parse the first character of ``text`` as a state, raising on failure."""
        if not text:
            raise InternalError("empty string")
        state = cls.from_char(text[0])
        if state is None:
            raise InternalError(f"failed to convert {text!r} to a process state")
        return state


class StatFlags(enum.IntFlag):
    """Kernel flags word of a process (the PF_* constants)."""

    PF_IDLE = 0x0000_0002
    PF_EXITING = 0x0000_0004
    PF_EXITPIDONE = 0x0000_0008
    PF_VCPU = 0x0000_0010
    PF_WQ_WORKER = 0x0000_0020
    PF_FORKNOEXEC = 0x0000_0040
    PF_MCE_PROCESS = 0x0000_0080
    PF_SUPERPRIV = 0x0000_0100
    PF_DUMPCORE = 0x0000_0200
    PF_SIGNALED = 0x0000_0400
    PF_MEMALLOC = 0x0000_0800
    PF_NPROC_EXCEEDED = 0x0000_1000
    PF_USED_MATH = 0x0000_2000
    PF_USED_ASYNC = 0x0000_4000
    PF_NOFREEZE = 0x0000_8000
    PF_FROZEN = 0x0001_0000
    PF_KSWAPD = 0x0002_0000
    PF_MEMALLOC_NOFS = 0x0004_0000
    PF_MEMALLOC_NOIO = 0x0008_0000
    PF_LESS_THROTTLE = 0x0010_0000
    PF_KTHREAD = 0x0020_0000
    PF_RANDOMIZE = 0x0040_0000
    PF_SWAPWRITE = 0x0080_0000
    PF_MEMSTALL = 0x0100_0000
    PF_UMH = 0x0200_0000
    PF_NO_SETAFFINITY = 0x0400_0000
    PF_MCE_EARLY = 0x0800_0000
    PF_MEMALLOC_NOCMA = 0x1000_0000
    PF_MUTEX_TESTER = 0x2000_0000
    PF_FREEZER_SKIP = 0x4000_0000
    PF_SUSPEND_TASK = 0x8000_0000


def read_proc_bytes(path: os.PathLike | str) -> bytes:
    """Read a whole procfs file as bytes, translating OS errors into ProcError."""
    try:
        return Path(path).read_bytes()
    except (FileNotFoundError, ProcessLookupError) as exc:
        raise NotFoundError(f"{path} not found", path) from exc
    except PermissionError as exc:
        raise PermissionDeniedError(f"permission denied reading {path}", path) from exc
    except OSError as exc:
        raise ProcError(f"error reading {path}: {exc}", path) from exc


def read_proc_text(path: os.PathLike | str) -> str:
    """Read a whole procfs file as text, replacing invalid UTF-8 sequences."""
    return read_proc_bytes(path).decode("utf-8", errors="replace")


def parse_int(text: str, base: int = 10) -> int:
    """Parse an integer strictly, raising InternalError on malformed input."""
    if not text or text != text.strip() or "_" in text:
        raise InternalError(f"failed to parse {text!r} as an integer")
    try:
        return int(text, base)
    except ValueError as exc:
        raise InternalError(f"failed to parse {text!r} as an integer") from exc


def page_size() -> int:
    """Return the system memory page size in bytes."""
    return os.sysconf("SC_PAGE_SIZE")


def ticks_per_second() -> int:
    """Return the number of clock ticks per second."""
    return os.sysconf("SC_CLK_TCK")