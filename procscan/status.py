"""Process status from ``/proc/<pid>/status``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, TypeVar

from procscan.common import InternalError, ProcError, parse_int
from procscan.fields import (
    parse_allowed,
    parse_allowed_list,
    parse_list,
    parse_sigq,
    parse_uid_gid,
    parse_with_kb,
)

__all__ = ["Status"]

_T = TypeVar("_T")


def _lines(reader) -> list[str]:
    if isinstance(reader, (str, bytes)):
        data = reader
    elif hasattr(reader, "read"):
        data = reader.read()
    else:
        return [
            (item.decode("utf-8", errors="replace") if isinstance(item, bytes) else item).rstrip("\r\n")
            for item in reader
        ]
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    return data.splitlines()


def _unsigned(text: str, base: int = 10, bits: int = 64) -> int:
    value = parse_int(text, base)
    if value < 0 or value >= 2**bits:
        raise InternalError(f"value {text!r} is out of range")
    return value


def _signed(text: str, bits: int = 32) -> int:
    value = parse_int(text)
    if not -(2 ** (bits - 1)) <= value < 2 ** (bits - 1):
        raise InternalError(f"value {text!r} is out of range")
    return value


@dataclass(frozen=True, kw_only=True)
class Status:
    """Status information about a process; fields follow proc(5).

    Fields that only some kernels report are None when absent.
    """

    name: str
    umask: int | None = None
    state: str
    tgid: int
    ngid: int | None = None
    pid: int
    ppid: int
    tracerpid: int
    ruid: int
    euid: int
    suid: int
    fuid: int
    rgid: int
    egid: int
    sgid: int
    fgid: int
    fdsize: int
    groups: list[int]
    nstgid: list[int] | None = None
    nspid: list[int] | None = None
    nspgid: list[int] | None = None
    nssid: list[int] | None = None
    vmpeak: int | None = None
    vmsize: int | None = None
    vmlck: int | None = None
    vmpin: int | None = None
    vmhwm: int | None = None
    vmrss: int | None = None
    rssanon: int | None = None
    rssfile: int | None = None
    rssshmem: int | None = None
    vmdata: int | None = None
    vmstk: int | None = None
    vmexe: int | None = None
    vmlib: int | None = None
    vmpte: int | None = None
    vmswap: int | None = None
    hugetlbpages: int | None = None
    threads: int
    sigq: tuple[int, int]
    sigpnd: int
    shdpnd: int
    sigblk: int
    sigign: int
    sigcgt: int
    capinh: int
    capprm: int
    capeff: int
    capbnd: int | None = None
    capamb: int | None = None
    nonewprivs: int | None = None
    seccomp: int | None = None
    speculation_store_bypass: str | None = None
    cpus_allowed: list[int] | None = None
    cpus_allowed_list: list[tuple[int, int]] | None = None
    mems_allowed: list[int] | None = None
    mems_allowed_list: list[tuple[int, int]] | None = None
    voluntary_ctxt_switches: int | None = None
    nonvoluntary_ctxt_switches: int | None = None
    core_dumping: bool | None = None
    thp_enabled: bool | None = None

    @classmethod
    def from_reader(cls, reader) -> Status:
        """Parse a status file from a file-like object, text, or iterable of lines."""
        entries: dict[str, str] = {}
        for line in _lines(reader):
            if not line:
                continue
            parts = line.split(":")
            if len(parts) < 2:
                raise InternalError(f"malformed status line: {line!r}")
            entries[parts[0]] = parts[1].strip()

        def required(key: str) -> str:
            try:
                return entries.pop(key)
            except KeyError:
                raise InternalError(f"status field {key} is missing") from None

        def optional(key: str, conv: Callable[[str], _T]) -> _T | None:
            value = entries.pop(key, None)
            return None if value is None else conv(value)

        def lenient(key: str, conv: Callable[[str], _T]) -> _T | None:
            value = entries.pop(key, None)
            if value is None:
                return None
            try:
                return conv(value)
            except ProcError:
                return None

        def hex64(text: str) -> int:
            return _unsigned(text, 16)

        uid = required("Uid")
        gid = required("Gid")

        return cls(
            name=required("Name"),
            umask=optional("Umask", lambda x: _unsigned(x, 8, 32)),
            state=required("State"),
            tgid=_signed(required("Tgid")),
            ngid=optional("Ngid", _signed),
            pid=_signed(required("Pid")),
            ppid=_signed(required("PPid")),
            tracerpid=_signed(required("TracerPid")),
            ruid=parse_uid_gid(uid, 0),
            euid=parse_uid_gid(uid, 1),
            suid=parse_uid_gid(uid, 2),
            fuid=parse_uid_gid(uid, 3),
            rgid=parse_uid_gid(gid, 0),
            egid=parse_uid_gid(gid, 1),
            sgid=parse_uid_gid(gid, 2),
            fgid=parse_uid_gid(gid, 3),
            fdsize=_unsigned(required("FDSize"), bits=32),
            groups=parse_list(required("Groups")),
            nstgid=optional("NStgid", parse_list),
            nspid=optional("NSpid", parse_list),
            nspgid=optional("NSpgid", parse_list),
            nssid=optional("NSsid", parse_list),
            vmpeak=parse_with_kb(entries.pop("VmPeak", None)),
            vmsize=parse_with_kb(entries.pop("VmSize", None)),
            vmlck=parse_with_kb(entries.pop("VmLck", None)),
            vmpin=parse_with_kb(entries.pop("VmPin", None)),
            vmhwm=parse_with_kb(entries.pop("VmHWM", None)),
            vmrss=parse_with_kb(entries.pop("VmRSS", None)),
            rssanon=parse_with_kb(entries.pop("RssAnon", None)),
            rssfile=parse_with_kb(entries.pop("RssFile", None)),
            rssshmem=parse_with_kb(entries.pop("RssShmem", None)),
            vmdata=parse_with_kb(entries.pop("VmData", None)),
            vmstk=parse_with_kb(entries.pop("VmStk", None)),
            vmexe=parse_with_kb(entries.pop("VmExe", None)),
            vmlib=parse_with_kb(entries.pop("VmLib", None)),
            vmpte=parse_with_kb(entries.pop("VmPTE", None)),
            vmswap=parse_with_kb(entries.pop("VmSwap", None)),
            hugetlbpages=parse_with_kb(entries.pop("HugetlbPages", None)),
            threads=_unsigned(required("Threads")),
            sigq=parse_sigq(required("SigQ")),
            sigpnd=hex64(required("SigPnd")),
            shdpnd=hex64(required("ShdPnd")),
            sigblk=hex64(required("SigBlk")),
            sigign=hex64(required("SigIgn")),
            sigcgt=hex64(required("SigCgt")),
            capinh=hex64(required("CapInh")),
            capprm=hex64(required("CapPrm")),
            capeff=hex64(required("CapEff")),
            capbnd=optional("CapBnd", hex64),
            capamb=optional("CapAmb", hex64),
            nonewprivs=optional("NoNewPrivs", _unsigned),
            seccomp=optional("Seccomp", lambda x: _unsigned(x, bits=32)),
            speculation_store_bypass=entries.pop("Speculation_Store_Bypass", None),
            cpus_allowed=optional("Cpus_allowed", parse_allowed),
            cpus_allowed_list=lenient("Cpus_allowed_list", parse_allowed_list),
            mems_allowed=optional("Mems_allowed", parse_allowed),
            mems_allowed_list=lenient("Mems_allowed_list", parse_allowed_list),
            voluntary_ctxt_switches=optional("voluntary_ctxt_switches", _unsigned),
            nonvoluntary_ctxt_switches=optional("nonvoluntary_ctxt_switches", _unsigned),
            core_dumping=optional("CoreDumping", lambda x: x == "1"),
            thp_enabled=optional("THP_enabled", lambda x: x == "1"),
        )