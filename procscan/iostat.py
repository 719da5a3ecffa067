"""I/O counters and page-level memory usage of a process."""

from __future__ import annotations

from dataclasses import dataclass

from procscan.common import InternalError, parse_int

__all__ = ["Io", "StatM"]

_IO_FIELDS = (
    "rchar",
    "wchar",
    "syscr",
    "syscw",
    "read_bytes",
    "write_bytes",
    "cancelled_write_bytes",
)


def _text(reader) -> str:
    if isinstance(reader, (str, bytes)):
        data = reader
    elif hasattr(reader, "read"):
        data = reader.read()
    else:
        items = [
            item.decode("utf-8", errors="replace") if isinstance(item, bytes) else item
            for item in reader
        ]
        data = "".join(items)
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    return data


def _unsigned(text: str) -> int:
    value = parse_int(text)
    if value < 0 or value >= 2**64:
        raise InternalError(f"value {text!r} is out of range")
    return value


@dataclass(frozen=True)
class Io:
    """I/O statistics of a process or task, from its ``io`` file."""

    rchar: int
    wchar: int
    syscr: int
    syscw: int
    read_bytes: int
    write_bytes: int
    cancelled_write_bytes: int

    @classmethod
    def from_reader(cls, reader) -> Io:
        """Parse an io file from a file-like object or text."""
        values: dict[str, int] = {}
        for line in _text(reader).splitlines():
            if not line or " " not in line:
                continue
            tokens = line.split()
            if len(tokens) < 2:
                raise InternalError(f"malformed io line: {line!r}")
            name, value = tokens[0], tokens[1]
            values[name[:-1]] = _unsigned(value)
        missing = [name for name in _IO_FIELDS if name not in values]
        if missing:
            raise InternalError(f"io field {missing[0]} is missing")
        return cls(**{name: values[name] for name in _IO_FIELDS})


@dataclass(frozen=True)
class StatM:
    """Memory usage measured in pages, from the ``statm`` file."""

    size: int
    resident: int
    shared: int
    text: int
    lib: int
    data: int
    dt: int

    @classmethod
    def from_reader(cls, reader) -> StatM:
        """Parse a statm file from a file-like object or text."""
        tokens = _text(reader).split()
        if len(tokens) < 7:
            raise InternalError(f"statm has {len(tokens)} values, expected 7")
        return cls(*(_unsigned(token) for token in tokens[:7]))