"""Parsers for the individual values found in ``/proc/<pid>/status``."""

from __future__ import annotations

from procscan.common import InternalError, parse_int

__all__ = [
    "parse_uid_gid",
    "parse_list",
    "parse_sigq",
    "parse_allowed",
    "parse_allowed_list",
    "parse_with_kb",
]

_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1


def _parse_unsigned(text: str, base: int = 10, limit: int = _U64_MAX) -> int:
    value = parse_int(text, base)
    if value < 0 or value > limit:
        raise InternalError(f"value {text!r} is out of range")
    return value


def parse_uid_gid(text: str, index: int) -> int:
    """Return the ``index``-th whitespace separated id of a Uid or Gid line."""
    parts = text.split()
    if index < 0 or index >= len(parts):
        raise InternalError(f"no id at position {index} in {text!r}")
    return _parse_unsigned(parts[index], limit=_U32_MAX)


def parse_list(text: str) -> list[int]:
    """Parse a whitespace separated list of decimal integers."""
    return [parse_int(part) for part in text.split()]


def parse_sigq(text: str) -> tuple[int, int]:
    """Parse a SigQ value of the form ``queued/limit``."""
    parts = text.split("/")
    if len(parts) < 2:
        raise InternalError(f"malformed SigQ value: {text!r}")
    return _parse_unsigned(parts[0]), _parse_unsigned(parts[1])


def parse_allowed(text: str) -> list[int]:
    """Parse a comma separated list of hexadecimal mask words."""
    return [_parse_unsigned(part, 16, _U32_MAX) for part in text.split(",")]


def parse_allowed_list(text: str) -> list[tuple[int, int]]:
    """Parse a cpuset list such as ``0-3,5`` into inclusive ranges."""
    ranges = []
    for item in text.split(","):
        if "-" in item:
            bounds = item.split("-")
            begin = _parse_unsigned(bounds[0], limit=_U32_MAX)
            end = _parse_unsigned(bounds[1], limit=_U32_MAX)
            ranges.append((begin, end))
        else:
            value = _parse_unsigned(item, limit=_U32_MAX)
            ranges.append((value, value))
    return ranges


def parse_with_kb(text: str | None) -> int | None:
    """Parse a size such as ``1234 kB``; None stays None."""
    if text is None:
        return None
    return _parse_unsigned(text.replace(" kB", ""))