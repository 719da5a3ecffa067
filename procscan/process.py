"""Processes under ``/proc/<pid>`` and the data that can be read about them."""

from __future__ import annotations

import enum
import functools
import os
import struct
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Iterator

from procscan.common import (
    IncompleteError,
    InternalError,
    ProcError,
    ProcState,
    parse_int,
    read_proc_bytes,
    read_proc_text,
)
from procscan.fd import FDInfo, _os_errors
from procscan.fields import parse_uid_gid
from procscan.iostat import Io, StatM
from procscan.limit import Limits
from procscan.memory import MemoryMap, MemoryMapData, parse_maps, parse_smaps
from procscan.mountinfo import MountInfo
from procscan.mountstats import MountStat
from procscan.namespaces import Namespace, read_namespaces
from procscan.schedstat import Schedstat
from procscan.stat import Stat
from procscan.status import Status
from procscan.task import Task

__all__ = ["CoredumpFlags", "Process", "all_processes"]

_U32_LIMIT = 2**32
_I32_MIN = -(2**31)
_I32_LIMIT = 2**31


class CoredumpFlags(enum.IntFlag):
    """Memory segments written to a core dump; see core(5)."""

    ANONYMOUS_PRIVATE_MAPPINGS = 0x01
    ANONYMOUS_SHARED_MAPPINGS = 0x02
    FILEBACKED_PRIVATE_MAPPINGS = 0x04
    FILEBACKED_SHARED_MAPPINGS = 0x08
    ELF_HEADERS = 0x10
    PRIVATE_HUGEPAGES = 0x20
    SHARED_HUGEPAGES = 0x40
    PRIVATE_DAX_PAGES = 0x80
    SHARED_DAX_PAGES = 0x100


_ALL_COREDUMP_BITS = functools.reduce(lambda acc, flag: acc | flag.value, CoredumpFlags, 0)

_AUXV_ENTRY = struct.Struct("=II")


def _u32(text: str, base: int = 10) -> int:
    value = parse_int(text, base)
    if not 0 <= value < _U32_LIMIT:
        raise InternalError(f"value {text!r} is out of range")
    return value


def _is_pid_name(name: str) -> bool:
    try:
        value = parse_int(name)
    except InternalError:
        return False
    return _I32_MIN <= value < _I32_LIMIT


@dataclass(frozen=True)
class Process:
    """A process in ``/proc/<pid>``.

    ``stat`` is read when the process is created; everything else is read on
    demand and may fail if the process has gone away.
    """

    pid: int
    stat: Stat
    owner: int
    path: Path

    @classmethod
    def new(cls, pid: int, proc_root: os.PathLike | str = "/proc") -> Process:
        """Return the process with the given PID."""
        return cls.from_root(Path(proc_root) / str(pid))

    @classmethod
    def from_root(cls, root: os.PathLike | str) -> Process:
        """Return the process whose directory is ``root`` (``/proc/<pid>``)."""
        root = Path(root)
        stat = Stat.from_reader(BytesIO(read_proc_bytes(root / "stat")))
        with _os_errors(root):
            info = os.stat(root)
        return cls(pid=stat.pid, stat=stat, owner=info.st_uid, path=root)

    @classmethod
    def myself(cls) -> Process:
        """Return the calling process, through ``/proc/self``."""
        return cls.from_root(Path("/proc/self"))

    @property
    def _proc_root(self) -> Path:
        return self.path.parent

    def cmdline(self) -> list[str]:
        """The command line arguments, empty for zombies and kernel threads."""
        return [arg for arg in read_proc_text(self.path / "cmdline").split("\0") if arg]

    def is_alive(self) -> bool:
        """Whether this process still runs (and its PID was not reused)."""
        try:
            current = Process.new(self.pid, self._proc_root)
        except ProcError:
            return False

        def not_zombie(stat: Stat) -> bool:
            try:
                return stat.proc_state() != ProcState.ZOMBIE
            except ProcError:
                return False

        return (
            current.stat.comm == self.stat.comm
            and current.owner == self.owner
            and current.stat.starttime == self.stat.starttime
            and not_zombie(current.stat)
            and not_zombie(self.stat)
        )

    def _readlink(self, name: str) -> Path:
        path = self.path / name
        with _os_errors(path):
            return Path(os.readlink(path))

    def cwd(self) -> Path:
        """The current working directory."""
        return self._readlink("cwd")

    def root(self) -> Path:
        """The root directory of the process."""
        return self._readlink("root")

    def exe(self) -> Path:
        """The path of the executed command."""
        return self._readlink("exe")

    def environ(self) -> dict[str, str]:
        """The initial environment of the process."""
        env = {}
        for entry in read_proc_bytes(self.path / "environ").split(b"\0"):
            key, sep, value = entry.partition(b"=")
            if sep:
                env[os.fsdecode(key)] = os.fsdecode(value)
        return env

    def io(self) -> Io:
        """I/O counters from the ``io`` file."""
        return Io.from_reader(read_proc_bytes(self.path / "io"))

    def maps(self) -> list[MemoryMap]:
        """Mapped memory regions from the ``maps`` file."""
        return parse_maps(read_proc_bytes(self.path / "maps"))

    def smaps(self) -> list[tuple[MemoryMap, MemoryMapData]]:
        """Mapped memory regions with usage data from the ``smaps`` file."""
        return parse_smaps(read_proc_bytes(self.path / "smaps"))

    def fd_count(self) -> int:
        """The number of open file descriptors."""
        fd_dir = self.path / "fd"
        with _os_errors(fd_dir):
            return len(os.listdir(fd_dir))

    def fd(self) -> list[FDInfo]:
        """The open file descriptors; ones that close while listing are skipped."""
        fd_dir = self.path / "fd"
        with _os_errors(fd_dir):
            entries = list(os.scandir(fd_dir))
        descriptors = []
        for entry in entries:
            fd = _u32(entry.name)
            try:
                link = os.readlink(entry.path)
                info = os.lstat(entry.path)
            except OSError:
                continue
            descriptors.append(FDInfo._from_link(fd, info.st_mode, link))
        return descriptors

    def coredump_filter(self) -> CoredumpFlags | None:
        """Segments written to a core dump; None if the filter is empty."""
        text = read_proc_text(self.path / "coredump_filter").strip()
        if not text:
            return None
        bits = _u32(text, 16)
        if bits & ~_ALL_COREDUMP_BITS:
            raise InternalError(f"unknown coredump filter bits in {text!r}")
        return CoredumpFlags(bits)

    def autogroup(self) -> str:
        """The autogroup membership, as the kernel reports it."""
        return read_proc_text(self.path / "autogroup")

    def auxv(self) -> dict[int, int]:
        """The auxiliary vector, read as pairs of native 32-bit words."""
        data = read_proc_bytes(self.path / "auxv")
        entries: dict[int, int] = {}
        if not data:
            return entries
        usable = len(data) - len(data) % _AUXV_ENTRY.size
        for key, value in _AUXV_ENTRY.iter_unpack(data[:usable]):
            if key == 0 and value == 0:
                return entries
            entries[key] = value
        raise IncompleteError("auxiliary vector ended without a terminator", self.path / "auxv")

    def wchan(self) -> str:
        """The kernel symbol where the process is sleeping."""
        return read_proc_text(self.path / "wchan")

    def status(self) -> Status:
        """Status information from the ``status`` file."""
        return Status.from_reader(read_proc_bytes(self.path / "status"))

    def refresh_stat(self) -> Stat:
        """Read the ``stat`` file again and return the fresh data."""
        return Stat.from_reader(BytesIO(read_proc_bytes(self.path / "stat")))

    def loginuid(self) -> int:
        """The login UID of the process."""
        return parse_uid_gid(read_proc_text(self.path / "loginuid"), 0)

    def oom_score(self) -> int:
        """The current OOM-killer score."""
        return _u32(read_proc_text(self.path / "oom_score").strip())

    def statm(self) -> StatM:
        """Memory usage in pages from the ``statm`` file."""
        return StatM.from_reader(read_proc_bytes(self.path / "statm"))

    def task_main_thread(self) -> Task:
        """The task of the main thread."""
        return Task.new(self.pid, self.pid, self._proc_root)

    def schedstat(self) -> Schedstat:
        """Scheduler statistics from the ``schedstat`` file."""
        return Schedstat.from_reader(BytesIO(read_proc_bytes(self.path / "schedstat")))

    def tasks(self) -> Iterator[Task]:
        """Lazily iterate over the threads of this process."""
        task_dir = self.path / "task"
        with _os_errors(task_dir):
            scanner = os.scandir(task_dir)
        return self._iter_tasks(scanner, task_dir)

    def _iter_tasks(self, scanner, task_dir: Path) -> Iterator[Task]:
        with scanner:
            for entry in scanner:
                tid = parse_int(entry.name)
                yield Task(self.pid, tid, task_dir / entry.name)

    def limits(self) -> Limits:
        """Resource limits from the ``limits`` file."""
        return Limits.from_reader(read_proc_text(self.path / "limits").splitlines())

    def mountstats(self) -> list[MountStat]:
        """Mount statistics of the process's mount namespace."""
        return MountStat.from_reader(read_proc_bytes(self.path / "mountstats"))

    def mountinfo(self) -> list[MountInfo]:
        """Mount points of the process's mount namespace."""
        text = read_proc_text(self.path / "mountinfo")
        return [MountInfo.from_line(line) for line in text.splitlines()]

    def namespaces(self) -> list[Namespace]:
        """The namespaces the process belongs to."""
        return read_namespaces(self.path / "ns")


def all_processes(proc_root: os.PathLike | str = "/proc") -> list[Process]:
    """Return every process that can be read; others are left out.

    Malformed process data raises InternalError instead of being skipped.
    """
    root = Path(proc_root)
    try:
        entries = list(os.scandir(root))
    except OSError as exc:
        raise InternalError(f"No {root} directory", root) from exc
    processes = []
    for entry in entries:
        if not _is_pid_name(entry.name):
            continue
        try:
            processes.append(Process.from_root(entry.path))
        except InternalError:
            raise
        except ProcError:
            continue
    return processes