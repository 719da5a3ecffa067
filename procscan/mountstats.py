"""NFS and mount statistics from ``/proc/<pid>/mountstats``."""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Iterator

from procscan.common import InternalError, parse_int

__all__ = [
    "NFSServerCaps",
    "NFSEventCounter",
    "NFSByteCounter",
    "NFSOperationStat",
    "MountNFSStatistics",
    "MountStat",
]


class NFSServerCaps(enum.IntFlag):
    """Capabilities of an NFS server."""

    NFS_CAP_READDIRPLUS = 1
    NFS_CAP_HARDLINKS = 1 << 1
    NFS_CAP_SYMLINKS = 1 << 2
    NFS_CAP_ACLS = 1 << 3
    NFS_CAP_ATOMIC_OPEN = 1 << 4
    NFS_CAP_LGOPEN = 1 << 5
    NFS_CAP_FILEID = 1 << 6
    NFS_CAP_MODE = 1 << 7
    NFS_CAP_NLINK = 1 << 8
    NFS_CAP_OWNER = 1 << 9
    NFS_CAP_OWNER_GROUP = 1 << 10
    NFS_CAP_ATIME = 1 << 11
    NFS_CAP_CTIME = 1 << 12
    NFS_CAP_MTIME = 1 << 13
    NFS_CAP_POSIX_LOCK = 1 << 14
    NFS_CAP_UIDGID_NOMAP = 1 << 15
    NFS_CAP_STATEID_NFSV41 = 1 << 16
    NFS_CAP_ATOMIC_OPEN_V1 = 1 << 17
    NFS_CAP_SECURITY_LABEL = 1 << 18
    NFS_CAP_SEEK = 1 << 19
    NFS_CAP_ALLOCATE = 1 << 20
    NFS_CAP_DEALLOCATE = 1 << 21
    NFS_CAP_LAYOUTSTATS = 1 << 22
    NFS_CAP_CLONE = 1 << 23
    NFS_CAP_COPY = 1 << 24
    NFS_CAP_OFFLOAD_CANCEL = 1 << 25


_ALL_CAPS = (1 << 26) - 1


def _unsigned(text: str, base: int = 10, bits: int = 64) -> int:
    value = parse_int(text, base)
    if value < 0 or value >= 2**bits:
        raise InternalError(f"value {text!r} is out of range")
    return value


def _counters(text: str, count: int, what: str) -> list[int]:
    tokens = text.split()
    if len(tokens) < count:
        raise InternalError(f"{what} has {len(tokens)} values, expected {count}")
    return [_unsigned(token) for token in tokens[:count]]


def _lines(reader) -> Iterator[str]:
    if isinstance(reader, (str, bytes)):
        data = reader
    elif hasattr(reader, "read"):
        data = reader.read()
    else:
        for item in reader:
            if isinstance(item, bytes):
                item = item.decode("utf-8", errors="replace")
            yield item.rstrip("\r\n")
        return
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    yield from data.splitlines()


@dataclass(frozen=True)
class NFSEventCounter:
    """The ``events`` counters of an NFS mount."""

    inode_revalidate: int
    deny_try_revalidate: int
    data_invalidate: int
    attr_invalidate: int
    vfs_open: int
    vfs_lookup: int
    vfs_access: int
    vfs_update_page: int
    vfs_read_page: int
    vfs_read_pages: int
    vfs_write_page: int
    vfs_write_pages: int
    vfs_get_dents: int
    vfs_set_attr: int
    vfs_flush: int
    vfs_fs_sync: int
    vfs_lock: int
    vfs_release: int
    congestion_wait: int
    set_attr_trunc: int
    extend_write: int
    silly_rename: int
    short_read: int
    short_write: int
    delay: int
    pnfs_read: int
    pnfs_write: int

    @classmethod
    def parse(cls, text: str) -> NFSEventCounter:
        """Parse the whitespace separated values after ``events:``."""
        return cls(*_counters(text, len(dataclasses.fields(cls)), "events"))


@dataclass(frozen=True)
class NFSByteCounter:
    """The ``bytes`` counters of an NFS mount."""

    normal_read: int
    normal_write: int
    direct_read: int
    direct_write: int
    server_read: int
    server_write: int
    pages_read: int
    pages_write: int

    @classmethod
    def parse(cls, text: str) -> NFSByteCounter:
        """Parse the whitespace separated values after ``bytes:``."""
        return cls(*_counters(text, len(dataclasses.fields(cls)), "bytes"))


@dataclass(frozen=True)
class NFSOperationStat:
    """Per-operation RPC statistics of an NFS mount."""

    operations: int
    transmissions: int
    major_timeouts: int
    bytes_sent: int
    bytes_recv: int
    cum_queue_time: timedelta
    cum_resp_time: timedelta
    cum_total_req_time: timedelta

    @classmethod
    def parse(cls, text: str) -> NFSOperationStat:
        """Parse the eight values following an operation name."""
        ops, trans, timeouts, sent, recv, queue_ms, resp_ms, total_ms = _counters(
            text, 8, "per-op statistics"
        )
        return cls(
            operations=ops,
            transmissions=trans,
            major_timeouts=timeouts,
            bytes_sent=sent,
            bytes_recv=recv,
            cum_queue_time=timedelta(milliseconds=queue_ms),
            cum_resp_time=timedelta(milliseconds=resp_ms),
            cum_total_req_time=timedelta(milliseconds=total_ms),
        )


@dataclass(frozen=True)
class MountNFSStatistics:
    """Statistics that NFS mounts add to their mountstats entry."""

    version: str
    opts: list[str]
    age: timedelta
    caps: list[str]
    sec: list[str]
    events: NFSEventCounter
    bytes: NFSByteCounter
    per_op_stats: dict[str, NFSOperationStat] = field(default_factory=dict)

    @classmethod
    def _from_lines(cls, lines: Iterator[str], version: str) -> MountNFSStatistics:
        parsing_per_op = False
        opts = age = caps = sec = byte_counts = events = None
        per_op: dict[str, NFSOperationStat] = {}

        for raw in lines:
            line = raw.strip()
            if not line:
                break
            if not parsing_per_op:
                if line.startswith("opts:"):
                    opts = line[5:].strip().split(",")
                elif line.startswith("age:"):
                    age = timedelta(seconds=_unsigned(line[4:].strip()))
                elif line.startswith("caps:"):
                    caps = line[5:].strip().split(",")
                elif line.startswith("sec:"):
                    sec = line[4:].strip().split(",")
                elif line.startswith("bytes:"):
                    byte_counts = NFSByteCounter.parse(line[6:].strip())
                elif line.startswith("events:"):
                    events = NFSEventCounter.parse(line[7:].strip())
                if line == "per-op statistics":
                    parsing_per_op = True
            else:
                parts = line.split(":")
                if len(parts) < 2:
                    raise InternalError(f"malformed per-op line: {line!r}")
                per_op[parts[0]] = NFSOperationStat.parse(parts[1])

        for value, what in (
            (opts, "opts field"),
            (age, "age field"),
            (caps, "caps field"),
            (sec, "sec field"),
            (events, "events section"),
            (byte_counts, "bytes section"),
        ):
            if value is None:
                raise InternalError(f"Failed to find {what} in nfs stats")

        return cls(
            version=version,
            opts=opts,
            age=age,
            caps=caps,
            sec=sec,
            events=events,
            bytes=byte_counts,
            per_op_stats=per_op,
        )

    def server_caps(self) -> NFSServerCaps | None:
        """Decode the ``caps=0x...`` entry; None if absent or holding unknown bits."""
        for data in self.caps:
            if data.startswith("caps=0x"):
                value = _unsigned(data[7:], 16, 32)
                if value & ~_ALL_CAPS:
                    return None
                return NFSServerCaps(value)
        return None


@dataclass(frozen=True)
class MountStat:
    """One mount from a mountstats file."""

    device: str | None
    mount_point: Path
    fs: str
    statistics: MountNFSStatistics | None = None

    @classmethod
    def from_reader(cls, reader) -> list[MountStat]:
        """Parse a mountstats file from a file-like object, text, or iterable of lines."""
        mounts = []
        lines = _lines(reader)
        for line in lines:
            if not line.startswith("device "):
                continue
            # device <dev> mounted on <path> with fstype <fs> [statvers=<v>]
            tokens = line.split()
            if len(tokens) < 8:
                raise InternalError(f"malformed mountstats line: {line!r}")
            statistics = None
            if len(tokens) > 8 and tokens[8].startswith("statvers="):
                statistics = MountNFSStatistics._from_lines(lines, tokens[8][9:])
            mounts.append(
                cls(
                    device=tokens[1],
                    mount_point=Path(tokens[4]),
                    fs=tokens[7],
                    statistics=statistics,
                )
            )
        return mounts