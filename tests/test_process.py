import os
import resource
import struct
import sys
from pathlib import Path

import pytest

from procscan.common import InternalError, IncompleteError, NotFoundError, ProcState
from procscan.fd import FDTarget, FDTargetKind
from procscan.limit import LimitValue
from procscan.memory import MMapKind
from procscan.process import CoredumpFlags, Process, all_processes

PID = 1234


def _stat_line(pid, comm="fake proc", state="S", starttime=4242):
    values = [1, pid, pid, 0, -1, 0x400100] + [0] * 12 + [starttime] + [0] * 30
    return f"{pid} ({comm}) {state} " + " ".join(map(str, values)) + "\n"


LIMITS = """Limit                     Soft Limit           Hard Limit           Units
Max cpu time              unlimited            unlimited            seconds
Max file size             unlimited            unlimited            bytes
Max data size             unlimited            unlimited            bytes
Max stack size            8388608              unlimited            bytes
Max core file size        0                    unlimited            bytes
Max resident set          unlimited            unlimited            bytes
Max processes             63452                63452                processes
Max open files            1024                 4096                 files
Max locked memory         65536                65536                bytes
Max address space         unlimited            unlimited            bytes
Max file locks            unlimited            unlimited            locks
Max pending signals       63452                63452                signals
Max msgqueue size         819200               819200               bytes
Max nice priority         0                    0
Max realtime priority     0                    0
Max realtime timeout      unlimited            unlimited            us
"""

STATUS = "\n".join(
    [
        "Name:\tfake proc",
        "State:\tS (sleeping)",
        "Tgid:\t1234",
        "Pid:\t1234",
        "PPid:\t1",
        "TracerPid:\t0",
        "Uid:\t1000\t1000\t1000\t1000",
        "Gid:\t1000\t1000\t1000\t1000",
        "FDSize:\t64",
        "Groups:\t4 24",
        "VmRSS:\t    4000 kB",
        "Threads:\t1",
        "SigQ:\t0/63452",
        "SigPnd:\t0000000000000000",
        "ShdPnd:\t0000000000000000",
        "SigBlk:\t0000000000000000",
        "SigIgn:\t0000000000001000",
        "SigCgt:\t0000000180000000",
        "CapInh:\t0000000000000000",
        "CapPrm:\t0000000000000000",
        "CapEff:\t0000000000000000",
    ]
) + "\n"

IO = (
    "rchar: 323934931\nwchar: 323929600\nsyscr: 632687\nsyscw: 632675\n"
    "read_bytes: 0\nwrite_bytes: 323932160\ncancelled_write_bytes: 0\n"
)

MAPS = (
    "00400000-00452000 r-xp 00000000 08:02 173521      /usr/bin/dbus-daemon\n"
    "7ffd1000-7ffd2000 rw-p 00000000 00:00 0                          [stack]\n"
)

SMAPS = (
    "00400000-00452000 r-xp 00000000 08:02 173521      /usr/bin/dbus-daemon\n"
    "Size:                  8 kB\n"
    "Rss:                   4 kB\n"
    "VmFlags: rd ex mr mw me\n"
)

MOUNTINFO = "25 0 8:1 / / rw,relatime shared:1 - ext4 /dev/sda1 rw,errors=remount-ro\n"

MOUNTSTATS = (
    "device /dev/md127 mounted on /boot with fstype ext2 \n"
    "device tmpfs mounted on /run/user/0 with fstype tmpfs \n"
)


@pytest.fixture
def proc_root(tmp_path):
    root = tmp_path / "proc"
    pdir = root / str(PID)
    pdir.mkdir(parents=True)
    (pdir / "stat").write_text(_stat_line(PID))
    (pdir / "cmdline").write_bytes(b"python\0-c\0print(1)\0")
    (pdir / "environ").write_bytes(b"HOME=/home/u\0LANG=C\0BAD\0X=a=b\0")
    (pdir / "io").write_text(IO)
    (pdir / "statm").write_text("1000 200 100 50 0 300 0\n")
    (pdir / "schedstat").write_text("123456 7890 12\n")
    (pdir / "coredump_filter").write_text("00000033\n")
    (pdir / "autogroup").write_text("/autogroup-12 nice 0\n")
    (pdir / "loginuid").write_text("1000")
    (pdir / "oom_score").write_text("666\n")
    (pdir / "auxv").write_bytes(struct.pack("=6I", 3, 64, 6, 4096, 0, 0))
    (pdir / "limits").write_text(LIMITS)
    (pdir / "status").write_text(STATUS)
    (pdir / "maps").write_text(MAPS)
    (pdir / "smaps").write_text(SMAPS)
    (pdir / "mountinfo").write_text(MOUNTINFO)
    (pdir / "mountstats").write_text(MOUNTSTATS)
    os.symlink("/srv/work", pdir / "cwd")
    os.symlink("/usr/bin/python3", pdir / "exe")
    os.symlink("/", pdir / "root")
    fd_dir = pdir / "fd"
    fd_dir.mkdir()
    os.symlink("/dev/null", fd_dir / "0")
    os.symlink("socket:[4242]", fd_dir / "3")
    for tid in (PID, PID + 1):
        tdir = pdir / "task" / str(tid)
        tdir.mkdir(parents=True)
        (tdir / "stat").write_text(_stat_line(tid))
    ns_dir = pdir / "ns"
    ns_dir.mkdir()
    (ns_dir / "net").write_text("")
    (ns_dir / "mnt").write_text("")
    return root


@pytest.fixture
def fake(proc_root):
    return Process.new(PID, proc_root)


def test_new_reads_stat_and_owner(fake, proc_root):
    assert fake.pid == PID
    assert fake.stat.comm == "fake proc"
    assert fake.stat.ppid == 1
    assert fake.owner == os.stat(proc_root / str(PID)).st_uid


def test_cmdline(fake):
    assert fake.cmdline() == ["python", "-c", "print(1)"]


def test_environ(fake):
    assert fake.environ() == {"HOME": "/home/u", "LANG": "C", "X": "a=b"}


def test_links(fake):
    assert fake.cwd() == Path("/srv/work")
    assert fake.exe() == Path("/usr/bin/python3")
    assert fake.root() == Path("/")


def test_coredump_filter(fake, proc_root):
    assert fake.coredump_filter() == (
        CoredumpFlags.ANONYMOUS_PRIVATE_MAPPINGS
        | CoredumpFlags.ANONYMOUS_SHARED_MAPPINGS
        | CoredumpFlags.ELF_HEADERS
        | CoredumpFlags.PRIVATE_HUGEPAGES
    )
    (proc_root / str(PID) / "coredump_filter").write_text("\n")
    assert fake.coredump_filter() is None
    (proc_root / str(PID) / "coredump_filter").write_text("ffffffff\n")
    with pytest.raises(InternalError):
        fake.coredump_filter()


def test_auxv(fake, proc_root):
    assert fake.auxv() == {3: 64, 6: 4096}
    (proc_root / str(PID) / "auxv").write_bytes(struct.pack("=3I", 3, 64, 6))
    with pytest.raises(IncompleteError):
        fake.auxv()
    (proc_root / str(PID) / "auxv").write_bytes(b"")
    assert fake.auxv() == {}


def test_simple_text_files(fake):
    assert fake.autogroup() == "/autogroup-12 nice 0\n"
    assert fake.loginuid() == 1000
    assert fake.oom_score() == 666


def test_missing_file_is_not_found(fake):
    with pytest.raises(NotFoundError):
        fake.wchan()


def test_io_statm_schedstat(fake):
    assert fake.io().rchar == 323934931
    assert fake.io().write_bytes == 323932160
    statm = fake.statm()
    assert (statm.size, statm.resident, statm.data) == (1000, 200, 300)
    sched = fake.schedstat()
    assert (sched.sum_exec_runtime, sched.run_delay, sched.pcount) == (123456, 7890, 12)


def test_status(fake):
    status = fake.status()
    assert status.name == fake.stat.comm
    assert status.pid == PID
    assert status.ppid == fake.stat.ppid
    assert status.vmrss == 4000


def test_limits(fake):
    limits = fake.limits()
    assert limits.max_open_files.soft_limit == LimitValue(1024)
    assert limits.max_open_files.hard_limit == LimitValue(4096)
    assert limits.max_cpu_time.soft_limit.unlimited


def test_maps_and_smaps(fake):
    maps = fake.maps()
    assert [m.pathname.kind for m in maps] == [MMapKind.PATH, MMapKind.STACK]
    assert maps[0].address == (0x400000, 0x452000)
    smaps = fake.smaps()
    assert len(smaps) == 1
    assert smaps[0][1].map["Size"] == 8192


def test_mounts(fake):
    info = fake.mountinfo()
    assert len(info) == 1
    assert info[0].fs_type == "ext4"
    stats = fake.mountstats()
    assert [s.fs for s in stats] == ["ext2", "tmpfs"]


def test_fds(fake):
    assert fake.fd_count() == 2
    fds = sorted(fake.fd(), key=lambda info: info.fd)
    assert [info.fd for info in fds] == [0, 3]
    assert fds[0].target == FDTarget(FDTargetKind.PATH, Path("/dev/null"))
    assert fds[1].target == FDTarget(FDTargetKind.SOCKET, 4242)


def test_fd_with_bad_name(fake, proc_root):
    os.symlink("/dev/null", proc_root / str(PID) / "fd" / "x")
    with pytest.raises(InternalError):
        fake.fd()


def test_tasks(fake):
    assert sorted(task.tid for task in fake.tasks()) == [PID, PID + 1]
    assert all(task.pid == PID for task in fake.tasks())


def test_task_main_thread(fake):
    task = fake.task_main_thread()
    assert task.tid == PID
    assert task.stat().pid == PID


def test_tasks_bad_name(fake, proc_root):
    (proc_root / str(PID) / "task" / "abc").mkdir()
    with pytest.raises(InternalError):
        list(fake.tasks())


def test_tasks_missing_dir(proc_root):
    pdir = proc_root / "77"
    pdir.mkdir()
    (pdir / "stat").write_text(_stat_line(77))
    proc = Process.new(77, proc_root)
    with pytest.raises(NotFoundError):
        proc.tasks()


def test_namespaces(fake):
    assert sorted(ns.ns_type for ns in fake.namespaces()) == ["mnt", "net"]


def test_refresh_stat(fake, proc_root):
    (proc_root / str(PID) / "stat").write_text(_stat_line(PID, state="R"))
    assert fake.refresh_stat().proc_state() == ProcState.RUNNING
    assert fake.stat.proc_state() == ProcState.SLEEPING


def test_is_alive(fake, proc_root):
    assert fake.is_alive()
    (proc_root / str(PID) / "stat").write_text(_stat_line(PID, state="Z"))
    assert not fake.is_alive()
    (proc_root / str(PID) / "stat").write_text(_stat_line(PID, starttime=1))
    assert not fake.is_alive()
    (proc_root / str(PID) / "stat").unlink()
    assert not fake.is_alive()


def test_all_processes_skips_unreadable(proc_root):
    (proc_root / "sys").mkdir()
    (proc_root / "999").mkdir()
    assert [p.pid for p in all_processes(proc_root)] == [PID]


def test_all_processes_malformed_stat(proc_root):
    bad = proc_root / "77"
    bad.mkdir()
    (bad / "stat").write_text("garbage")
    with pytest.raises(InternalError):
        all_processes(proc_root)


def test_all_processes_missing_root(tmp_path):
    with pytest.raises(InternalError):
        all_processes(tmp_path / "nowhere")


def test_live_myself():
    me = Process.myself()
    assert me.pid == os.getpid()
    assert me.is_alive()
    assert me.status().pid == os.getpid()
    assert me.status().name == me.stat.comm


def test_live_exe():
    assert Process.myself().exe() == Path(os.path.realpath(sys.executable))


def test_live_main_thread_task():
    me = Process.myself()
    assert me.task_main_thread().stat().pid == os.getpid()
    assert os.getpid() in [task.tid for task in me.tasks()]


@pytest.mark.parametrize(
    "attr, which",
    [
        ("max_cpu_time", resource.RLIMIT_CPU),
        ("max_file_size", resource.RLIMIT_FSIZE),
        ("max_data_size", resource.RLIMIT_DATA),
        ("max_stack_size", resource.RLIMIT_STACK),
        ("max_core_file_size", resource.RLIMIT_CORE),
        ("max_open_files", resource.RLIMIT_NOFILE),
        ("max_address_space", resource.RLIMIT_AS),
    ],
)
def test_live_limits_match_getrlimit(attr, which):
    limit = getattr(Process.myself().limits(), attr)
    soft, hard = resource.getrlimit(which)
    assert limit.soft_limit.as_rlim() == soft
    assert limit.hard_limit.as_rlim() == hard