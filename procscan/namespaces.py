"""Namespaces a process belongs to, from ``/proc/<pid>/ns``."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from procscan.common import InternalError, NotFoundError, PermissionDeniedError, ProcError

__all__ = ["Namespace", "read_namespaces"]


@dataclass(frozen=True, eq=False)
class Namespace:
    """A namespace handle; two namespaces are equal when inode and device match."""

    ns_type: str
    path: Path = field(compare=False)
    identifier: int
    device_id: int

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Namespace):
            return NotImplemented
        return self.identifier == other.identifier and self.device_id == other.device_id

    def __hash__(self) -> int:
        return hash((self.identifier, self.device_id))


def read_namespaces(ns_dir: os.PathLike | str) -> list[Namespace]:
    """List the namespaces found in a ``/proc/<pid>/ns`` directory."""
    ns_dir = Path(ns_dir)
    try:
        entries = list(os.scandir(ns_dir))
    except FileNotFoundError as exc:
        raise NotFoundError(f"{ns_dir} not found", ns_dir) from exc
    except PermissionError as exc:
        raise PermissionDeniedError(f"permission denied reading {ns_dir}", ns_dir) from exc
    except OSError as exc:
        raise ProcError(f"error reading {ns_dir}: {exc}", ns_dir) from exc

    namespaces = []
    for entry in entries:
        path = Path(entry.path)
        try:
            info = os.stat(path)
        except OSError as exc:
            raise InternalError(f"Unable to stat {path}", path) from exc
        namespaces.append(
            Namespace(
                ns_type=entry.name,
                path=path,
                identifier=info.st_ino,
                device_id=info.st_dev,
            )
        )
    return namespaces