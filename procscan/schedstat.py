"""Scheduler statistics from ``/proc/<pid>/schedstat``."""

from __future__ import annotations

from dataclasses import dataclass

from procscan.common import InternalError, parse_int

__all__ = ["Schedstat"]


@dataclass(frozen=True)
class Schedstat:
    """Scheduler statistics of a process or task."""

    sum_exec_runtime: int
    """Time spent on the CPU, in nanoseconds."""
    run_delay: int
    """Time spent waiting on a runqueue, in nanoseconds."""
    pcount: int
    """Number of timeslices run on this CPU."""

    @classmethod
    def from_reader(cls, reader) -> Schedstat:
        """Parse a schedstat file read from a file-like object."""
        data = reader.read()
        if isinstance(data, bytes):
            data = data.decode("utf-8", errors="replace")
        tokens = data.split()
        if len(tokens) < 3:
            raise InternalError(f"malformed schedstat data: {data!r}")
        values = [parse_int(token) for token in tokens[:3]]
        if any(value < 0 for value in values):
            raise InternalError(f"negative value in schedstat data: {data!r}")
        return cls(*values)