"""Resource limits of a process, as shown in ``/proc/<pid>/limits``."""

from __future__ import annotations

import resource
from dataclasses import dataclass
from typing import Iterable

from procscan.common import InternalError, parse_int

__all__ = ["LimitValue", "Limit", "Limits"]

_UNITLESS = ("Max nice priority", "Max realtime priority")

_FIELDS = {
    "Max cpu time": "max_cpu_time",
    "Max file size": "max_file_size",
    "Max data size": "max_data_size",
    "Max stack size": "max_stack_size",
    "Max core file size": "max_core_file_size",
    "Max resident set": "max_resident_set",
    "Max processes": "max_processes",
    "Max open files": "max_open_files",
    "Max locked memory": "max_locked_memory",
    "Max address space": "max_address_space",
    "Max file locks": "max_file_locks",
    "Max pending signals": "max_pending_signals",
    "Max msgqueue size": "max_msgqueue_size",
    "Max nice priority": "max_nice_priority",
    "Max realtime priority": "max_realtime_priority",
    "Max realtime timeout": "max_realtime_timeout",
}


@dataclass(frozen=True)
class LimitValue:
    """A single limit value; ``value`` is None when the limit is unlimited."""

    value: int | None = None

    @property
    def unlimited(self) -> bool:
        return self.value is None

    @classmethod
    def parse(cls, text: str) -> LimitValue:
        """Parse ``unlimited`` or a non-negative decimal number."""
        if text == "unlimited":
            return cls(None)
        number = parse_int(text)
        if number < 0:
            raise InternalError(f"limit value {text!r} is negative")
        return cls(number)

    def as_rlim(self) -> int:
        """Return the value as getrlimit reports it (RLIM_INFINITY when unlimited)."""
        return resource.RLIM_INFINITY if self.value is None else self.value


@dataclass(frozen=True)
class Limit:
    """A soft/hard pair for one resource."""

    soft_limit: LimitValue
    hard_limit: LimitValue

    @classmethod
    def _from_pair(cls, soft: str, hard: str) -> Limit:
        return cls(LimitValue.parse(soft), LimitValue.parse(hard))


@dataclass(frozen=True)
class Limits:
    """All resource limits of a process; see getrlimit(2) for their meaning."""

    max_cpu_time: Limit
    max_file_size: Limit
    max_data_size: Limit
    max_stack_size: Limit
    max_core_file_size: Limit
    max_resident_set: Limit
    max_processes: Limit
    max_open_files: Limit
    max_locked_memory: Limit
    max_address_space: Limit
    max_file_locks: Limit
    max_pending_signals: Limit
    max_msgqueue_size: Limit
    max_nice_priority: Limit
    max_realtime_priority: Limit
    max_realtime_timeout: Limit

    @classmethod
    def from_reader(cls, reader: Iterable[str]) -> Limits:
        """Parse the text of a limits file, given as an iterable of lines."""
        pairs: dict[str, tuple[str, str]] = {}
        for raw in reader:
            line = raw.strip()
            if not line or line.startswith("Limit"):
                continue
            parts = line.split()
            offset = 2 if line.startswith(_UNITLESS) else 3
            if len(parts) <= offset:
                raise InternalError(f"malformed limits line: {line!r}")
            soft, hard = parts[-offset], parts[-offset + 1]
            name = " ".join(parts[:-offset])
            pairs[name] = (soft, hard)

        values = {}
        for name, field_name in _FIELDS.items():
            try:
                soft, hard = pairs[name]
            except KeyError:
                raise InternalError(f"limit {name!r} is missing") from None
            values[field_name] = Limit._from_pair(soft, hard)
        return cls(**values)