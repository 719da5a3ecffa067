"""Tasks (threads) of a process, under ``/proc/<pid>/task/<tid>``."""

from __future__ import annotations

import os
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

from procscan.common import NotFoundError, read_proc_bytes
from procscan.iostat import Io
from procscan.schedstat import Schedstat
from procscan.stat import Stat
from procscan.status import Status

__all__ = ["Task"]


@dataclass(frozen=True)
class Task:
    """A thread inside a process."""

    pid: int
    tid: int
    root: Path

    @classmethod
    def new(cls, pid: int, tid: int, proc_root: os.PathLike | str = "/proc") -> Task:
        """Return the task ``tid`` of process ``pid``, raising NotFoundError if absent."""
        root = Path(proc_root) / str(pid) / "task" / str(tid)
        if not root.exists():
            raise NotFoundError(f"{root} not found", root)
        return cls(pid, tid, root)

    def stat(self) -> Stat:
        """Thread info from the task's ``stat`` file."""
        return Stat.from_reader(BytesIO(read_proc_bytes(self.root / "stat")))

    def status(self) -> Status:
        """Thread info from the task's ``status`` file."""
        return Status.from_reader(read_proc_bytes(self.root / "status"))

    def io(self) -> Io:
        """I/O counters of this task alone."""
        return Io.from_reader(read_proc_bytes(self.root / "io"))

    def schedstat(self) -> Schedstat:
        """Scheduler statistics of this task alone."""
        return Schedstat.from_reader(BytesIO(read_proc_bytes(self.root / "schedstat")))