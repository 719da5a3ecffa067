import io
import os

import pytest

from procscan.common import InternalError, KernelVersion, ProcState, StatFlags
from procscan.stat import Stat

REQUIRED = [
    "1", "1234", "1234", "34816", "1234", "4194304",
    "100", "0", "0", "0",
    "5", "3", "0", "0",
    "20", "0", "1", "0",
    "12345", "10000000", "500", "18446744073709551615",
    "94000000000000", "94000000100000", "140000000000000",
    "0", "0", "0", "0", "0", "0", "0", "0", "0",
]
OPTIONAL = [
    "17", "2", "0", "0", "0", "0", "0",
    "94000000200000", "94000000300000", "94000000400000",
    "140000000001000", "140000000002000", "140000000002000", "140000000003000",
    "0",
]

NEW_KERNEL = KernelVersion(6, 1, 0)


def make_line(comm="my (weird) proc", state="S", fields=None):
    fields = REQUIRED + OPTIONAL if fields is None else fields
    return f"1234 ({comm}) {state} " + " ".join(fields) + "\n"


def parse(line, kernel=NEW_KERNEL):
    return Stat.from_reader(io.BytesIO(line.encode()), kernel)


def test_parses_basic_fields():
    stat = parse(make_line())
    assert stat.pid == 1234
    assert stat.comm == "my (weird) proc"
    assert stat.state == "S"
    assert stat.ppid == 1
    assert stat.tty_nr == 34816
    assert stat.flags == 4194304
    assert stat.minflt == 100
    assert stat.utime == 5
    assert stat.stime == 3
    assert stat.priority == 20
    assert stat.starttime == 12345
    assert stat.vsize == 10000000
    assert stat.rss == 500
    assert stat.rsslim == 18446744073709551615


def test_optional_fields_on_new_kernel():
    stat = parse(make_line())
    assert stat.exit_signal == 17
    assert stat.processor == 2
    assert stat.start_data == 94000000200000
    assert stat.arg_start == 140000000001000
    assert stat.env_end == 140000000003000
    assert stat.exit_code == 0


def test_optional_fields_depend_on_kernel_version():
    stat = parse(make_line(fields=REQUIRED + OPTIONAL[:4]), KernelVersion(2, 6, 0))
    assert stat.exit_signal == 17
    assert stat.processor == 2
    assert stat.rt_priority == 0
    assert stat.policy == 0
    assert stat.delayacct_blkio_ticks is None
    assert stat.guest_time is None
    assert stat.start_data is None
    assert stat.exit_code is None


def test_very_old_kernel_reads_no_optional_fields():
    stat = parse(make_line(fields=REQUIRED), KernelVersion(2, 0, 0))
    assert stat.cnswap == 0
    assert stat.exit_signal is None
    assert stat.processor is None


def test_accepts_text_reader():
    stat = Stat.from_reader(io.StringIO(make_line()), NEW_KERNEL)
    assert stat.pid == 1234


def test_missing_optional_field_raises():
    with pytest.raises(InternalError):
        parse(make_line(fields=REQUIRED), NEW_KERNEL)


def test_missing_required_field_raises():
    with pytest.raises(InternalError):
        parse(make_line(fields=REQUIRED[:10]), KernelVersion(2, 0, 0))


def test_missing_parenthesis_raises():
    with pytest.raises(InternalError):
        parse("1234 comm S 1 2 3\n")


def test_non_numeric_field_raises():
    fields = list(REQUIRED + OPTIONAL)
    fields[0] = "abc"
    with pytest.raises(InternalError):
        parse(make_line(fields=fields))


def test_negative_unsigned_field_raises():
    fields = list(REQUIRED + OPTIONAL)
    fields[5] = "-1"
    with pytest.raises(InternalError):
        parse(make_line(fields=fields))


def test_proc_state():
    assert parse(make_line(state="S")).proc_state() is ProcState.SLEEPING
    assert parse(make_line(state="Z")).proc_state() is ProcState.ZOMBIE


def test_proc_state_unknown_raises():
    with pytest.raises(InternalError):
        parse(make_line(state="Q")).proc_state()


def test_tty_device():
    assert parse(make_line()).tty_device() == (136, 0)


def test_flag_bits():
    assert parse(make_line()).flag_bits() == StatFlags.PF_RANDOMIZE


def test_flag_bits_unknown_bit_raises():
    fields = list(REQUIRED + OPTIONAL)
    fields[5] = "1"
    with pytest.raises(InternalError):
        parse(make_line(fields=fields)).flag_bits()


def test_rss_bytes_is_whole_pages():
    stat = parse(make_line())
    size = os.sysconf("SC_PAGE_SIZE")
    assert stat.rss_bytes() // stat.rss == size
    assert stat.rss_bytes() % size == 0


def test_self_proc():
    kernel = KernelVersion.current()
    with open("/proc/self/stat", "rb") as f:
        stat = Stat.from_reader(f, kernel)
    assert stat.pid == os.getpid()
    assert stat.ppid == os.getppid()
    assert stat.proc_state() in (ProcState.RUNNING, ProcState.SLEEPING)

    checks = [
        (KernelVersion(2, 1, 22), ["exit_signal"]),
        (KernelVersion(2, 2, 8), ["processor"]),
        (KernelVersion(2, 5, 19), ["rt_priority", "policy"]),
        (KernelVersion(2, 6, 18), ["delayacct_blkio_ticks"]),
        (KernelVersion(2, 6, 24), ["guest_time", "cguest_time"]),
        (KernelVersion(3, 3, 0), ["start_data", "end_data", "start_brk"]),
        (KernelVersion(3, 5, 0), ["arg_start", "arg_end", "env_start", "env_end", "exit_code"]),
    ]
    for since, names in checks:
        for name in names:
            present = getattr(stat, name) is not None
            assert present == (kernel >= since), name