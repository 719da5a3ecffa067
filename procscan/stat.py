"""Process status from ``/proc/<pid>/stat``."""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Iterator

from procscan.common import (
    InternalError,
    KernelVersion,
    ProcError,
    ProcState,
    StatFlags,
    page_size,
    parse_int,
)

__all__ = ["Stat"]

# (field name, may be negative)
_REQUIRED: tuple[tuple[str, bool], ...] = (
    ("ppid", True),
    ("pgrp", True),
    ("session", True),
    ("tty_nr", True),
    ("tpgid", True),
    ("flags", False),
    ("minflt", False),
    ("cminflt", False),
    ("majflt", False),
    ("cmajflt", False),
    ("utime", False),
    ("stime", False),
    ("cutime", True),
    ("cstime", True),
    ("priority", True),
    ("nice", True),
    ("num_threads", True),
    ("itrealvalue", True),
    ("starttime", False),
    ("vsize", False),
    ("rss", True),
    ("rsslim", False),
    ("startcode", False),
    ("endcode", False),
    ("startstack", False),
    ("kstkesp", False),
    ("kstkeip", False),
    ("signal", False),
    ("blocked", False),
    ("sigignore", False),
    ("sigcatch", False),
    ("wchan", False),
    ("nswap", False),
    ("cnswap", False),
)

# (field name, may be negative, first kernel version that reports it)
_OPTIONAL: tuple[tuple[str, bool, KernelVersion], ...] = (
    ("exit_signal", True, KernelVersion(2, 1, 22)),
    ("processor", True, KernelVersion(2, 2, 8)),
    ("rt_priority", False, KernelVersion(2, 5, 19)),
    ("policy", False, KernelVersion(2, 5, 19)),
    ("delayacct_blkio_ticks", False, KernelVersion(2, 6, 18)),
    ("guest_time", False, KernelVersion(2, 6, 24)),
    ("cguest_time", True, KernelVersion(2, 6, 24)),
    ("start_data", False, KernelVersion(3, 3, 0)),
    ("end_data", False, KernelVersion(3, 3, 0)),
    ("start_brk", False, KernelVersion(3, 3, 0)),
    ("arg_start", False, KernelVersion(3, 5, 0)),
    ("arg_end", False, KernelVersion(3, 5, 0)),
    ("env_start", False, KernelVersion(3, 5, 0)),
    ("env_end", False, KernelVersion(3, 5, 0)),
    ("exit_code", True, KernelVersion(3, 5, 0)),
)

_KNOWN_FLAG_BITS = functools.reduce(lambda acc, flag: acc | flag.value, StatFlags, 0)


@functools.lru_cache(maxsize=1)
def _running_kernel() -> KernelVersion | None:
    try:
        return KernelVersion.current()
    except (ProcError, OSError):
        return None


def _read_text(reader) -> str:
    data = reader.read()
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def _next_number(tokens: Iterator[str], name: str, signed: bool) -> int:
    token = next(tokens, None)
    if token is None:
        raise InternalError(f"stat field {name} is missing")
    value = parse_int(token)
    if value < 0 and not signed:
        raise InternalError(f"stat field {name} is negative: {token!r}")
    return value


@dataclass(frozen=True)
class Stat:
    """Status information about a process; fields follow proc(5).

    Fields reported only by newer kernels are None when the kernel is older.
    """

    pid: int
    comm: str
    state: str
    ppid: int
    pgrp: int
    session: int
    tty_nr: int
    tpgid: int
    flags: int
    minflt: int
    cminflt: int
    majflt: int
    cmajflt: int
    utime: int
    stime: int
    cutime: int
    cstime: int
    priority: int
    nice: int
    num_threads: int
    itrealvalue: int
    starttime: int
    vsize: int
    rss: int
    rsslim: int
    startcode: int
    endcode: int
    startstack: int
    kstkesp: int
    kstkeip: int
    signal: int
    blocked: int
    sigignore: int
    sigcatch: int
    wchan: int
    nswap: int
    cnswap: int
    exit_signal: int | None = None
    processor: int | None = None
    rt_priority: int | None = None
    policy: int | None = None
    delayacct_blkio_ticks: int | None = None
    guest_time: int | None = None
    cguest_time: int | None = None
    start_data: int | None = None
    end_data: int | None = None
    start_brk: int | None = None
    arg_start: int | None = None
    arg_end: int | None = None
    env_start: int | None = None
    env_end: int | None = None
    exit_code: int | None = None

    @classmethod
    def from_reader(cls, reader, kernel: KernelVersion | None = None) -> Stat:
        """Parse a stat file read from a file-like object.

        ``kernel`` decides which trailing fields are expected; by default the
        running kernel is used, and if it cannot be determined none are read.
        """
        if kernel is None:
            kernel = _running_kernel()
        buf = _read_text(reader).strip()

        start_paren = buf.find("(")
        end_paren = buf.rfind(")")
        if start_paren < 1 or end_paren < start_paren:
            raise InternalError(f"malformed stat line: {buf!r}")
        pid = parse_int(buf[: start_paren - 1])
        comm = buf[start_paren + 1 : end_paren]
        tokens = iter(buf[end_paren + 2 :].split(" "))

        state_token = next(tokens, "")
        if not state_token:
            raise InternalError("stat field state is missing")

        values: dict[str, object] = {"pid": pid, "comm": comm, "state": state_token[0]}
        for name, signed in _REQUIRED:
            values[name] = _next_number(tokens, name, signed)
        for name, signed, since in _OPTIONAL:
            if kernel is not None and kernel >= since:
                values[name] = _next_number(tokens, name, signed)
        return cls(**values)

    def proc_state(self) -> ProcState:
        """Return the process state as an enum member."""
        state = ProcState.from_char(self.state)
        if state is None:
            raise InternalError(f"{self.state!r} is not a recognized process state")
        return state

    def tty_device(self) -> tuple[int, int]:
        """Decode ``tty_nr`` into a (major, minor) device pair."""
        major = (self.tty_nr & 0xFFF00) >> 8
        minor = (self.tty_nr & 0x000FF) | ((self.tty_nr >> 12) & 0xFFF00)
        return major, minor

    def flag_bits(self) -> StatFlags:
        """Return the kernel flags word as a StatFlags value."""
        if self.flags & ~_KNOWN_FLAG_BITS:
            raise InternalError(f"Can't construct flags bitfield from {self.flags!r}")
        return StatFlags(self.flags)

    def rss_bytes(self) -> int:
        """Return the resident set size in bytes."""
        return self.rss * page_size()