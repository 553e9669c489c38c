"""Parsers for /proc counter files and /sys hwmon sensors.

Every ``parse_*`` function is pure and takes the file text. Every ``read_*``
function returns ``None`` when its source is missing, unreadable or
malformed; an absent source is a degraded state, never an error.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Callable

from .models import (
    CpuCounters,
    DiskCounters,
    FdUsage,
    HwmonReadings,
    MemInfo,
    NetCounters,
    PsiInfo,
    TemperatureReading,
    VmCounters,
)

CPU_SENSOR_DRIVERS = ("coretemp", "k10temp", "zenpower")
DIMM_SENSOR_DRIVER = "jc42"
NVME_SENSOR_DRIVER = "nvme"

_TEMP_INPUT_RE = re.compile(r"^temp(\d+)_input$")


def _int(token: str) -> int:
    try:
        return int(token)
    except ValueError:
        return 0


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None


# -- key/value files -------------------------------------------------------

_MEMINFO_KEYS = {
    "Buffers:": "buffers",
    "Cached:": "cached",
    "Dirty:": "dirty",
    "Writeback:": "writeback",
    "AnonPages:": "anon_pages",
    "Mapped:": "mapped",
    "Shmem:": "shmem",
    "Slab:": "slab",
    "PageTables:": "page_tables",
}


def parse_meminfo(text: str) -> MemInfo:
    values: dict[str, int] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0] in _MEMINFO_KEYS:
            values[_MEMINFO_KEYS[parts[0]]] = _int(parts[1]) // 1024
    return MemInfo(**values)


_CPU_TIME_FIELDS = ("user", "nice", "system", "idle", "iowait", "irq", "softirq", "steal")
_STAT_KEYS = {
    "ctxt": "context_switches",
    "intr": "interrupts",
    "procs_running": "procs_running",
    "procs_blocked": "procs_blocked",
}


def parse_stat(text: str) -> CpuCounters:
    values: dict[str, int] = {}
    for line in text.splitlines():
        parts = line.split()
        if not parts:
            continue
        key = parts[0]
        if key == "cpu" and len(parts) >= 9:
            for name, token in zip(_CPU_TIME_FIELDS, parts[1:9]):
                values[name] = _int(token)
        elif key in _STAT_KEYS and len(parts) >= 2:
            values[_STAT_KEYS[key]] = _int(parts[1])
    return CpuCounters(**values)


_VMSTAT_KEYS = frozenset(("pgfault", "pgmajfault", "pgpgin", "pgpgout", "pswpin", "pswpout"))


def parse_vmstat(text: str) -> VmCounters:
    values: dict[str, int] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0] in _VMSTAT_KEYS:
            values[parts[0]] = _int(parts[1])
    return VmCounters(**values)


# -- device tables ---------------------------------------------------------

_DISKSTAT_FIELDS = (
    "reads_completed",
    "reads_merged",
    "sectors_read",
    "read_time_ms",
    "writes_completed",
    "writes_merged",
    "sectors_written",
    "write_time_ms",
    "io_in_progress",
    "io_time_ms",
    "weighted_io_time_ms",
)


def is_whole_disk(device: str) -> bool:
    """True for sda, nvme0n1, vda, xvda; False for partitions and virtual devices."""
    return (
        (device.startswith("sd") and len(device) == 3)
        or (device.startswith("nvme") and "n" in device[4:] and "p" not in device)
        or (device.startswith("vd") and len(device) == 3)
        or (device.startswith("xvd") and len(device) == 4)
    )


def parse_diskstats(text: str) -> DiskCounters:
    totals = dict.fromkeys(_DISKSTAT_FIELDS, 0)
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 14 or not is_whole_disk(parts[2]):
            continue
        for name, token in zip(_DISKSTAT_FIELDS, parts[3:14]):
            totals[name] += _int(token)
    return DiskCounters(**totals)


# receive: bytes packets errs ... ; transmit starts at column 9
_NETDEV_COLUMNS = {
    "rx_bytes": 1,
    "rx_packets": 2,
    "rx_errors": 3,
    "tx_bytes": 9,
    "tx_packets": 10,
    "tx_errors": 11,
}


def parse_net_dev(text: str) -> NetCounters:
    totals = dict.fromkeys(_NETDEV_COLUMNS, 0)
    for line in text.splitlines()[2:]:
        # "eth0:123" has no space after the colon on some kernels
        parts = line.replace(":", ": ", 1).split()
        if len(parts) < 12:
            continue
        if parts[0].rstrip(":") == "lo":
            continue
        for name, col in _NETDEV_COLUMNS.items():
            totals[name] += _int(parts[col])
    return NetCounters(**totals)


# -- small single-value files ----------------------------------------------

def parse_uptime(text: str) -> float | None:
    parts = text.split()
    if not parts:
        return None
    try:
        return float(parts[0])
    except ValueError:
        return None


def parse_file_nr(text: str) -> FdUsage | None:
    parts = text.split()
    if len(parts) < 3:
        return None
    return FdUsage(allocated=_int(parts[0]), maximum=_int(parts[2]))


def _psi_value(line: str, key: str) -> float | None:
    prefix = f"{key}="
    for word in line.split():
        if word.startswith(prefix):
            try:
                return float(word[len(prefix):])
            except ValueError:
                return None
    return None


def parse_pressure(text: str) -> dict[str, dict[str, float | None]]:
    """Map "some"/"full" to their avg10/avg60/avg300 values."""
    out: dict[str, dict[str, float | None]] = {}
    for line in text.splitlines():
        parts = line.split()
        if parts and parts[0] in ("some", "full"):
            out[parts[0]] = {key: _psi_value(line, key) for key in ("avg10", "avg60", "avg300")}
    return out


# -- source-level readers --------------------------------------------------

def _read_parsed(path: Path, parser: Callable[[str], object]):
    text = _read_text(path)
    if text is None or not text.strip():
        return None
    return parser(text)


def read_meminfo(proc_root: Path | str = "/proc") -> MemInfo | None:
    return _read_parsed(Path(proc_root) / "meminfo", parse_meminfo)


def read_cpu_counters(proc_root: Path | str = "/proc") -> CpuCounters | None:
    return _read_parsed(Path(proc_root) / "stat", parse_stat)


def read_disk_counters(proc_root: Path | str = "/proc") -> DiskCounters | None:
    return _read_parsed(Path(proc_root) / "diskstats", parse_diskstats)


def read_net_counters(proc_root: Path | str = "/proc") -> NetCounters | None:
    return _read_parsed(Path(proc_root) / "net" / "dev", parse_net_dev)


def read_vm_counters(proc_root: Path | str = "/proc") -> VmCounters | None:
    return _read_parsed(Path(proc_root) / "vmstat", parse_vmstat)


def read_uptime(proc_root: Path | str = "/proc") -> float | None:
    return _read_parsed(Path(proc_root) / "uptime", parse_uptime)


def read_fd_usage(proc_root: Path | str = "/proc") -> FdUsage | None:
    return _read_parsed(Path(proc_root) / "sys" / "fs" / "file-nr", parse_file_nr)


def psi_supported(proc_root: Path | str = "/proc") -> bool:
    return (Path(proc_root) / "pressure" / "cpu").exists()


def read_psi(proc_root: Path | str = "/proc") -> PsiInfo:
    """Pressure stall info; fields stay None on kernels without CONFIG_PSI."""
    base = Path(proc_root) / "pressure"
    cpu = _read_parsed(base / "cpu", parse_pressure) or {}
    mem = _read_parsed(base / "memory", parse_pressure) or {}
    io = _read_parsed(base / "io", parse_pressure) or {}
    cpu_some = cpu.get("some", {})
    mem_some = mem.get("some", {})
    io_some = io.get("some", {})
    return PsiInfo(
        cpu_some_avg10=cpu_some.get("avg10"),
        cpu_some_avg60=cpu_some.get("avg60"),
        cpu_some_avg300=cpu_some.get("avg300"),
        mem_some_avg10=mem_some.get("avg10"),
        mem_some_avg60=mem_some.get("avg60"),
        mem_full_avg10=mem.get("full", {}).get("avg10"),
        io_some_avg10=io_some.get("avg10"),
        io_some_avg60=io_some.get("avg60"),
        io_full_avg10=io.get("full", {}).get("avg10"),
        io_full_avg60=io.get("full", {}).get("avg60"),
    )


# -- hwmon -------------------------------------------------------------------

def _temp_inputs(device_dir: Path) -> list[Path]:
    numbered = []
    try:
        for child in device_dir.iterdir():
            m = _TEMP_INPUT_RE.match(child.name)
            if m:
                numbered.append((int(m.group(1)), child))
    except OSError:
        return []
    return [p for _, p in sorted(numbered)]


def _millidegrees(path: Path) -> float | None:
    """Celsius rounded to one decimal place."""
    text = _read_text(path)
    if text is None:
        return None
    try:
        return round(int(text.strip()) / 1000.0, 1)
    except ValueError:
        return None


def _label(input_path: Path, fallback: str) -> str:
    label_path = input_path.with_name(input_path.name.replace("_input", "_label"))
    text = _read_text(label_path)
    return text.strip() if text and text.strip() else fallback


def hwmon_driver_names(sys_root: Path | str = "/sys") -> list[str]:
    base = Path(sys_root) / "class" / "hwmon"
    try:
        devices = sorted(base.iterdir())
    except OSError:
        return []
    names = []
    for device in devices:
        text = _read_text(device / "name")
        if text is not None:
            names.append(text.strip())
    return names


def read_hwmon(sys_root: Path | str = "/sys") -> HwmonReadings | None:
    """Single pass over hwmon devices: CPU temperature, DIMM and NVMe readings, overall max."""
    base = Path(sys_root) / "class" / "hwmon"
    try:
        devices = sorted(base.iterdir())
    except OSError:
        return None

    cpu: TemperatureReading | None = None
    max_temp: float | None = None
    dimms: list[tuple[str, float]] = []
    nvme: list[tuple[str, float]] = []

    for device in devices:
        name = (_read_text(device / "name") or "").strip()
        is_cpu = name in CPU_SENSOR_DRIVERS
        first_for_device = True
        for input_path in _temp_inputs(device):
            temp = _millidegrees(input_path)
            if temp is None:
                continue
            if is_cpu and cpu is None:
                cpu = TemperatureReading(celsius=temp, source=name)
            if name == DIMM_SENSOR_DRIVER:
                dimms.append((_label(input_path, f"DIMM{len(dimms)}"), temp))
            elif name == NVME_SENSOR_DRIVER and first_for_device:
                nvme.append((f"nvme{len(nvme)}", temp))
            first_for_device = False
            max_temp = temp if max_temp is None else max(max_temp, temp)

    return HwmonReadings(cpu=cpu, max_celsius=max_temp, dimms=tuple(dimms), nvme=tuple(nvme))


_SOURCES: dict[str, Callable[..., object]] = {
    "cpu": read_cpu_counters,
    "disk": read_disk_counters,
    "net": read_net_counters,
    "vm": read_vm_counters,
    "meminfo": read_meminfo,
    "uptime": read_uptime,
    "file-nr": read_fd_usage,
    "pressure": read_psi,
}


def read_source(source_id: str, proc_root: Path | str = "/proc", sys_root: Path | str = "/sys"):
    """Read one named source, or None if it is unavailable."""
    if source_id == "hwmon":
        return read_hwmon(sys_root)
    try:
        reader = _SOURCES[source_id]
    except KeyError:
        raise ValueError(f"unknown source: {source_id}") from None
    return reader(proc_root)
