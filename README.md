# procscan

`procscan` reads the files under `/proc/<pid>/` on Linux and turns them into
plain Python objects: process status, memory maps, open file descriptors,
resource limits, mount information, namespaces, threads and more.

It uses only the standard library.

## Installation

```
pip install procscan
```

## Quick start

```python
from procscan.process import Process, all_processes

me = Process.myself()
print(me.pid, me.stat.comm, me.stat.proc_state())

print(me.cmdline())
print(me.status().vmrss)        # resident set size in kB, or None
print(me.limits().max_open_files.soft_limit)

for mapping in me.maps():
    print(mapping.address, mapping.perms, mapping.pathname)

for fd in me.fd():
    print(fd.fd, fd.permissions(), fd.target)

for task in me.tasks():
    print(task.tid, task.stat().comm)
```

List every process that can be read (processes that vanish or cannot be
read are left out):

```python
for proc in all_processes():
    print(proc.pid, proc.stat.comm)
```

If procfs is mounted somewhere other than `/proc`, pass its location:

```python
proc = Process.new(1, proc_root="/mnt/proc")
processes = all_processes(proc_root="/mnt/proc")
```

## What a `Process` offers

`Process.stat` is read when the object is made; everything else is read on
demand:

- `cmdline()`, `environ()`, `cwd()`, `root()`, `exe()`
- `status()`, `refresh_stat()`, `statm()`, `io()`, `schedstat()`
- `maps()`, `smaps()`
- `fd()`, `fd_count()`
- `limits()`, `coredump_filter()`, `auxv()`, `autogroup()`, `wchan()`,
  `loginuid()`, `oom_score()`
- `mountinfo()`, `mountstats()`, `namespaces()`
- `tasks()` (a lazy iterator of `Task` objects) and `task_main_thread()`
- `is_alive()`, which also treats a reused PID or a zombie as not alive

A `Task` (from `procscan.task`) offers `stat()`, `status()`, `io()` and
`schedstat()` for one thread.

## Parsing captured files

The parsers also work on saved copies of procfs files:

```python
import io
from procscan.mountinfo import MountInfo
from procscan.mountstats import MountStat
from procscan.stat import Stat
from procscan.common import KernelVersion

info = MountInfo.from_line(
    "25 0 8:1 / / rw,relatime shared:1 - ext4 /dev/sda1 rw,errors=remount-ro"
)
print(info.fs_type, info.mount_source, info.super_options)

stats = MountStat.from_reader(
    io.StringIO("device tmpfs mounted on /run/user/0 with fstype tmpfs\n")
)
print(stats[0].fs)
```

`Stat.from_reader(reader, kernel)` takes a `KernelVersion` that decides which
trailing fields are expected; without one the running kernel is used. Other
parsers include `Status.from_reader`, `Limits.from_reader`, `Io.from_reader`,
`StatM.from_reader`, `Schedstat.from_reader`, `parse_maps` and `parse_smaps`
(in `procscan.memory`), and `FDTarget.parse` (in `procscan.fd`).

## Errors

Failures raise subclasses of `procscan.common.ProcError`:

- `NotFoundError` – the file or process does not exist (often the process has exited);
- `PermissionDeniedError` – the caller may not read the file;
- `IncompleteError` – the data was truncated;
- `InternalError` – the data could not be understood.

## What it does not do

- There is no command-line tool; `procscan` is a library only.
- It reads per-process files only. System-wide files such as
  `/proc/meminfo`, `/proc/cpuinfo` or `/proc/stat` are not parsed.

## Requirements

Linux with a mounted procfs, and Python 3.10 or later.