"""Mount points of a process's mount namespace, from ``/proc/<pid>/mountinfo``."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from procscan.common import InternalError, parse_int

__all__ = ["MountOptKind", "MountOptField", "MountInfo"]


class MountOptKind(enum.Enum):
    """Kinds of optional propagation fields in a mountinfo line."""

    SHARED = "shared"
    MASTER = "master"
    PROPAGATE_FROM = "propagate_from"
    UNBINDABLE = "unbindable"


@dataclass(frozen=True)
class MountOptField:
    """An optional field; ``value`` is the peer group ID, None for unbindable."""

    kind: MountOptKind
    value: int | None = None


def _next(tokens: Iterator[str], what: str) -> str:
    token = next(tokens, None)
    if token is None:
        raise InternalError(f"mountinfo field {what} is missing")
    return token


def _parse_options(text: str) -> dict[str, str | None]:
    options: dict[str, str | None] = {}
    for opt in text.split(","):
        name, sep, value = opt.partition("=")
        options[name] = value if sep else None
    return options


def _parse_group_id(parts: Iterator[str], what: str) -> int:
    value = parse_int(_next(parts, what))
    if value < 0 or value > 2**32 - 1:
        raise InternalError(f"peer group id for {what} is out of range")
    return value


@dataclass(frozen=True)
class MountInfo:
    """Information about one mount in a process's mount namespace."""

    mnt_id: int
    pid: int
    majmin: str
    root: str
    mount_point: Path
    mount_options: dict[str, str | None] = field(default_factory=dict)
    opt_fields: list[MountOptField] = field(default_factory=list)
    fs_type: str = ""
    mount_source: str | None = None
    super_options: dict[str, str | None] = field(default_factory=dict)

    @classmethod
    def from_line(cls, line: str) -> MountInfo:
        """Parse one line of a mountinfo file."""
        tokens = iter(line.split())
        mnt_id = parse_int(_next(tokens, "mount id"))
        pid = parse_int(_next(tokens, "parent id"))
        majmin = _next(tokens, "major:minor")
        root = _next(tokens, "root")
        mount_point = Path(_next(tokens, "mount point"))
        mount_options = _parse_options(_next(tokens, "mount options"))

        opt_fields: list[MountOptField] = []
        while True:
            token = _next(tokens, "optional fields separator")
            if token == "-":
                break
            parts = iter(token.split(":"))
            tag = next(parts)
            if tag == "unbindable":
                opt_fields.append(MountOptField(MountOptKind.UNBINDABLE))
                continue
            try:
                kind = MountOptKind(tag)
            except ValueError:
                continue
            opt_fields.append(MountOptField(kind, _parse_group_id(parts, tag)))

        fs_type = _next(tokens, "filesystem type")
        source = _next(tokens, "mount source")
        super_options = _parse_options(_next(tokens, "super options"))

        return cls(
            mnt_id=mnt_id,
            pid=pid,
            majmin=majmin,
            root=root,
            mount_point=mount_point,
            mount_options=mount_options,
            opt_fields=opt_fields,
            fs_type=fs_type,
            mount_source=None if source == "none" else source,
            super_options=super_options,
        )