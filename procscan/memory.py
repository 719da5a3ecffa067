"""Memory mappings of a process, from ``/proc/<pid>/maps`` and ``/proc/<pid>/smaps``."""

from __future__ import annotations

import enum
import functools
import operator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from procscan.common import InternalError, ProcError, parse_int

__all__ = [
    "VmFlags",
    "MMapKind",
    "MMapPath",
    "MemoryMap",
    "MemoryMapData",
    "parse_maps",
    "parse_smaps",
]

_U32_LIMIT = 2**32
_U64_LIMIT = 2**64


class VmFlags(enum.IntFlag):
    """Kernel flags of a virtual memory area, named as in proc(5)."""

    INVALID = 0
    RD = 1 << 0
    WR = 1 << 1
    EX = 1 << 2
    SH = 1 << 3
    MR = 1 << 4
    MW = 1 << 5
    ME = 1 << 6
    MS = 1 << 7
    GD = 1 << 8
    PF = 1 << 9
    DW = 1 << 10
    LO = 1 << 11
    IO = 1 << 12
    SR = 1 << 13
    RR = 1 << 14
    DC = 1 << 15
    DE = 1 << 16
    AC = 1 << 17
    NR = 1 << 18
    HT = 1 << 19
    SF = 1 << 20
    NL = 1 << 21
    AR = 1 << 22
    WF = 1 << 23
    DD = 1 << 24
    SD = 1 << 25
    MM = 1 << 26
    HG = 1 << 27
    NH = 1 << 28
    MG = 1 << 29
    UM = 1 << 30
    UW = 1 << 31

    @classmethod
    def from_name(cls, flag: str) -> VmFlags | None:
        """Return the flag for a two-letter lower-case name, or None if unknown."""
        if len(flag) != 2 or flag != flag.lower() or not flag.isalpha():
            return None
        return cls.__members__.get(flag.upper())


class MMapKind(enum.Enum):
    """What backs a memory mapping."""

    PATH = "path"
    HEAP = "heap"
    STACK = "stack"
    TSTACK = "tstack"
    VDSO = "vdso"
    VVAR = "vvar"
    VSYSCALL = "vsyscall"
    ANONYMOUS = "anonymous"
    VSYS = "vsys"
    OTHER = "other"


_SIMPLE_PATHS = {
    "": MMapKind.ANONYMOUS,
    "[heap]": MMapKind.HEAP,
    "[stack]": MMapKind.STACK,
    "[vdso]": MMapKind.VDSO,
    "[vvar]": MMapKind.VVAR,
    "[vsyscall]": MMapKind.VSYSCALL,
}


def _unsigned(text: str, base: int = 10, limit: int = _U64_LIMIT) -> int:
    value = parse_int(text, base)
    if value < 0 or value >= limit:
        raise InternalError(f"value {text!r} is out of range")
    return value


@dataclass(frozen=True)
class MMapPath:
    """The pathname column of a mapping.

    ``value`` holds the file path for PATH, the thread ID for TSTACK, the
    shared memory key for VSYS and the pseudo-path name for OTHER.
    """

    kind: MMapKind
    value: Path | int | str | None = None

    @classmethod
    def parse(cls, path: str) -> MMapPath:
        """Parse the pathname column of a maps line."""
        text = path.strip()
        simple = _SIMPLE_PATHS.get(text)
        if simple is not None:
            return cls(simple)
        if text.startswith("[stack:"):
            parts = text[1:-1].split(":")
            if len(parts) < 2:
                raise InternalError(f"malformed thread stack path: {text!r}")
            return cls(MMapKind.TSTACK, _unsigned(parts[1], limit=_U32_LIMIT))
        if text.startswith("[") and text.endswith("]"):
            return cls(MMapKind.OTHER, text[1:-1])
        if text.startswith("/SYSV"):
            # 32-bit signed hex key: /SYSVaabbccdd (deleted)
            digits = text[5:13]
            if len(digits) != 8:
                raise InternalError(f"malformed SysV shared memory path: {text!r}")
            key = _unsigned(digits, 16, _U32_LIMIT)
            if key >= 2**31:
                key -= _U32_LIMIT
            return cls(MMapKind.VSYS, key)
        return cls(MMapKind.PATH, Path(text))


def _split_pair(text: str, sep: str, base: int, limit: int) -> tuple[int, int]:
    parts = text.split(sep)
    if len(parts) < 2:
        raise InternalError(f"expected two values separated by {sep!r} in {text!r}")
    return _unsigned(parts[0], base, limit), _unsigned(parts[1], base, limit)


@dataclass(frozen=True)
class MemoryMap:
    """One entry of a maps file."""

    address: tuple[int, int]
    perms: str
    offset: int
    dev: tuple[int, int]
    inode: int
    pathname: MMapPath

    @classmethod
    def from_line(cls, line: str) -> MemoryMap:
        """Parse one line of a maps file."""
        parts = line.split(" ", 5)
        if len(parts) < 6:
            raise InternalError(f"malformed maps line: {line!r}")
        address, perms, offset, dev, inode, path = parts
        return cls(
            address=_split_pair(address, "-", 16, _U64_LIMIT),
            perms=perms,
            offset=_unsigned(offset, 16),
            dev=_split_pair(dev, ":", 16, 2**31),
            inode=_unsigned(inode),
            pathname=MMapPath.parse(path),
        )


@dataclass
class MemoryMapData:
    """Extra per-mapping data from smaps; sizes in ``map`` are in bytes."""

    map: dict[str, int] = field(default_factory=dict)
    vm_flags: VmFlags | None = None


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


def parse_maps(reader) -> list[MemoryMap]:
    """Parse a maps file from a file-like object, text, or iterable of lines."""
    return [MemoryMap.from_line(line) for line in _lines(reader)]


def _parse_vm_flags(line: str) -> VmFlags:
    names = line.split()[1:]
    return functools.reduce(
        operator.or_,
        (VmFlags.from_name(name) or VmFlags.INVALID for name in names),
        VmFlags.INVALID,
    )


def parse_smaps(reader) -> list[tuple[MemoryMap, MemoryMapData]]:
    """Parse an smaps file into (mapping, data) pairs in file order."""
    result: list[tuple[MemoryMap, MemoryMapData]] = []
    data: MemoryMapData | None = None
    for line in _lines(reader):
        try:
            mapping = MemoryMap.from_line(line)
        except ProcError:
            mapping = None
        if mapping is not None:
            data = MemoryMapData()
            result.append((mapping, data))
            continue
        if data is None:
            continue
        if line.startswith("VmFlags"):
            data.vm_flags = _parse_vm_flags(line)
            continue
        parts = line.split()
        if len(parts) < 2:
            continue
        key, raw_value = parts[0], parts[1]
        multiplier = 1024 if len(parts) > 2 else 1
        try:
            value = _unsigned(raw_value)
        except InternalError:
            raise ProcError("Value in `Key: Value` pair was not actually a number") from None
        data.map[key.rstrip(":")] = value * multiplier
    return result