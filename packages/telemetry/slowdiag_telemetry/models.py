"""Typed telemetry models."""

from __future__ import annotations

import enum
from dataclasses import dataclass, fields
from typing import Any, ClassVar


@dataclass(frozen=True)
class CpuCounters:
    """Aggregate `cpu` line plus scheduler counters from /proc/stat."""

    GAUGES: ClassVar[frozenset[str]] = frozenset({"procs_running", "procs_blocked"})

    user: int = 0
    nice: int = 0
    system: int = 0
    idle: int = 0
    iowait: int = 0
    irq: int = 0
    softirq: int = 0
    steal: int = 0
    context_switches: int = 0
    interrupts: int = 0
    procs_running: int = 0
    procs_blocked: int = 0


@dataclass(frozen=True)
class DiskCounters:
    """Whole-disk totals from /proc/diskstats."""

    GAUGES: ClassVar[frozenset[str]] = frozenset({"io_in_progress"})

    reads_completed: int = 0
    reads_merged: int = 0
    sectors_read: int = 0
    read_time_ms: int = 0
    writes_completed: int = 0
    writes_merged: int = 0
    sectors_written: int = 0
    write_time_ms: int = 0
    io_in_progress: int = 0
    io_time_ms: int = 0
    weighted_io_time_ms: int = 0


@dataclass(frozen=True)
class NetCounters:
    """Non-loopback interface totals from /proc/net/dev."""

    GAUGES: ClassVar[frozenset[str]] = frozenset()

    rx_bytes: int = 0
    tx_bytes: int = 0
    rx_packets: int = 0
    tx_packets: int = 0
    rx_errors: int = 0
    tx_errors: int = 0


@dataclass(frozen=True)
class VmCounters:
    GAUGES: ClassVar[frozenset[str]] = frozenset()

    pgfault: int = 0
    pgmajfault: int = 0
    pgpgin: int = 0
    pgpgout: int = 0
    pswpin: int = 0
    pswpout: int = 0


@dataclass(frozen=True)
class MemInfo:
    """Detail lines from /proc/meminfo, in whole MB."""

    buffers: int = 0
    cached: int = 0
    dirty: int = 0
    writeback: int = 0
    anon_pages: int = 0
    mapped: int = 0
    shmem: int = 0
    slab: int = 0
    page_tables: int = 0


@dataclass(frozen=True)
class PsiInfo:
    cpu_some_avg10: float | None = None
    cpu_some_avg60: float | None = None
    cpu_some_avg300: float | None = None
    mem_some_avg10: float | None = None
    mem_some_avg60: float | None = None
    mem_full_avg10: float | None = None
    io_some_avg10: float | None = None
    io_some_avg60: float | None = None
    io_full_avg10: float | None = None
    io_full_avg60: float | None = None


@dataclass(frozen=True)
class FdUsage:
    allocated: int
    maximum: int


@dataclass(frozen=True)
class TemperatureReading:
    """A temperature in Celsius together with the sensor path that produced it."""

    celsius: float
    source: str


@dataclass(frozen=True)
class HwmonReadings:
    cpu: TemperatureReading | None = None
    max_celsius: float | None = None
    dimms: tuple[tuple[str, float], ...] = ()
    nvme: tuple[tuple[str, float], ...] = ()


@dataclass(frozen=True)
class SmartDevice:
    device: str
    health_passed: bool | None
    temperature: float | None
    reallocated_sectors: int | None
    pending_sectors: int | None


@dataclass(frozen=True)
class SmartHealth:
    available: bool
    devices: tuple[SmartDevice, ...] = ()

    def max_temperature(self) -> float | None:
        temps = [d.temperature for d in self.devices if d.temperature is not None]
        return max(temps) if temps else None

    def all_healthy(self) -> bool:
        return all(d.health_passed is not False for d in self.devices)

    def total_reallocated_sectors(self) -> int:
        return sum(d.reallocated_sectors for d in self.devices if d.reallocated_sectors is not None)

    def total_pending_sectors(self) -> int:
        return sum(d.pending_sectors for d in self.devices if d.pending_sectors is not None)


class SensorStatus(str, enum.Enum):
    OK = "ok"
    NON_CRITICAL = "nc"
    CRITICAL = "cr"
    NON_RECOVERABLE = "nr"
    NOT_AVAILABLE = "na"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    SensorStatus.NOT_AVAILABLE: 0,
    SensorStatus.OK: 1,
    SensorStatus.NON_CRITICAL: 2,
    SensorStatus.CRITICAL: 3,
    SensorStatus.NON_RECOVERABLE: 4,
}


@dataclass(frozen=True)
class IpmiSensor:
    name: str
    value: float
    unit: str
    status: SensorStatus


@dataclass(frozen=True)
class IpmiSensors:
    available: bool
    sensors: tuple[IpmiSensor, ...] = ()

    def dimm_sensors(self) -> list[IpmiSensor]:
        """Memory temperature sensors across vendor naming schemes (DIMMA1, MEM Temp, DRAM Temp)."""
        out = []
        for s in self.sensors:
            name = s.name.lower()
            is_memory = "dimm" in name or "mem" in name or "dram" in name
            is_temperature = "degrees" in s.unit.lower()
            if is_memory and is_temperature:
                out.append(s)
        return out

    def worst_dimm_status(self) -> SensorStatus:
        dimms = self.dimm_sensors()
        if not dimms:
            return SensorStatus.NOT_AVAILABLE
        return max((s.status for s in dimms), key=lambda st: st.rank)

    def max_dimm_temp(self) -> float | None:
        temps = [s.value for s in self.dimm_sensors() if s.status is not SensorStatus.NOT_AVAILABLE]
        return max(temps) if temps else None

    def format_dimms(self) -> str | None:
        parts = [
            f"{s.name}:{s.value:.0f}C[{s.status.value}]"
            for s in self.dimm_sensors()
            if s.status is not SensorStatus.NOT_AVAILABLE
        ]
        return ", ".join(parts) if parts else None


@dataclass(frozen=True)
class MemoryMetrics:
    total_mb: int | None
    used_mb: int | None
    free_mb: int | None
    available_mb: int | None
    swap_total_mb: int | None
    swap_used_mb: int | None
    info: MemInfo | None


@dataclass(frozen=True)
class CpuMetrics:
    usage_percent: float | None
    count: int | None
    load_avg_1: float | None
    load_avg_5: float | None
    load_avg_15: float | None
    process_count: int | None


@dataclass(frozen=True)
class TemperatureMetrics:
    cpu: TemperatureReading | None
    max_celsius: float | None
    dimm: TemperatureReading | None
    dimm_avg_celsius: float | None
    dimm_details: str | None
    disk: TemperatureReading | None
    disk_details: str | None


@dataclass(frozen=True)
class SystemMetrics:
    uptime_secs: float | None
    fds: FdUsage | None


@dataclass(frozen=True)
class SmartSummary:
    available: bool | None
    all_passed: bool | None = None
    reallocated_sectors: int | None = None
    pending_sectors: int | None = None


@dataclass(frozen=True)
class IpmiSummary:
    available: bool | None
    dimm_temp_max: float | None = None
    dimm_status: SensorStatus | None = None
    dimm_details: str | None = None


@dataclass(frozen=True)
class MetricsSnapshot:
    """One tick of host telemetry; the unit of record, log and display."""

    timestamp: float
    datetime: str
    memory: MemoryMetrics
    cpu: CpuMetrics
    cpu_times: CpuCounters | None
    disk_io: DiskCounters | None
    network: NetCounters | None
    vm: VmCounters | None
    pressure: PsiInfo
    temperatures: TemperatureMetrics
    system: SystemMetrics
    smart: SmartSummary
    ipmi: IpmiSummary


@dataclass(frozen=True)
class EngineState:
    """Raw counters carried from one tick to the next."""

    cpu: CpuCounters | None = None
    disk: DiskCounters | None = None
    net: NetCounters | None = None
    vm: VmCounters | None = None
    ticks: int = 0


def _reading_columns(prefix: str, reading: TemperatureReading | None) -> list[tuple[str, Any]]:
    return [
        (f"{prefix}_celsius", reading.celsius if reading else None),
        (f"{prefix}_source", reading.source if reading else None),
    ]


def _group_columns(prefix: str, cls: type, value: Any) -> list[tuple[str, Any]]:
    return [(f"{prefix}_{f.name}", getattr(value, f.name) if value is not None else None) for f in fields(cls)]


# (snapshot attribute, column prefix, dataclass) for nested groups flattened as-is
_GROUPS = (
    ("cpu_times", "cpu", CpuCounters),
    ("disk_io", "disk", DiskCounters),
    ("network", "net", NetCounters),
    ("vm", "vm", VmCounters),
    ("pressure", "psi", PsiInfo),
)


def snapshot_row(snap: MetricsSnapshot) -> list[tuple[str, Any]]:
    """Flatten a snapshot into an ordered list of (column, value); None means no data."""
    mem = snap.memory
    row: list[tuple[str, Any]] = [
        ("timestamp", snap.timestamp),
        ("datetime", snap.datetime),
        ("mem_total_mb", mem.total_mb),
        ("mem_used_mb", mem.used_mb),
        ("mem_free_mb", mem.free_mb),
        ("mem_available_mb", mem.available_mb),
        ("swap_total_mb", mem.swap_total_mb),
        ("swap_used_mb", mem.swap_used_mb),
    ]
    row += _group_columns("mem", MemInfo, mem.info)
    row += _group_columns("cpu", CpuMetrics, snap.cpu)
    for attr, prefix, cls in _GROUPS:
        row += _group_columns(prefix, cls, getattr(snap, attr))

    temps = snap.temperatures
    row += _reading_columns("cpu_temp", temps.cpu)
    row.append(("max_temp_celsius", temps.max_celsius))
    row += _reading_columns("dimm_temp", temps.dimm)
    row += [("dimm_temp_avg", temps.dimm_avg_celsius), ("dimm_temps", temps.dimm_details)]
    row += _reading_columns("disk_temp", temps.disk)
    row.append(("disk_temps", temps.disk_details))

    fds = snap.system.fds
    row += [
        ("uptime_secs", snap.system.uptime_secs),
        ("fd_allocated", fds.allocated if fds else None),
        ("fd_max", fds.maximum if fds else None),
    ]
    row += _group_columns("smart", SmartSummary, snap.smart)
    ipmi = snap.ipmi
    row += [
        ("ipmi_available", ipmi.available),
        ("ipmi_dimm_temp_max", ipmi.dimm_temp_max),
        ("ipmi_dimm_status", ipmi.dimm_status.value if ipmi.dimm_status else None),
        ("ipmi_dimm_details", ipmi.dimm_details),
    ]
    return row


def snapshot_columns() -> list[str]:
    """Column names of `snapshot_row`, independent of any particular snapshot."""
    return [name for name, _ in snapshot_row(_EMPTY_SNAPSHOT)]


_EMPTY_SNAPSHOT = MetricsSnapshot(
    timestamp=0.0,
    datetime="",
    memory=MemoryMetrics(None, None, None, None, None, None, None),
    cpu=CpuMetrics(None, None, None, None, None, None),
    cpu_times=None,
    disk_io=None,
    network=None,
    vm=None,
    pressure=PsiInfo(),
    temperatures=TemperatureMetrics(None, None, None, None, None, None, None),
    system=SystemMetrics(None, None),
    smart=SmartSummary(available=None),
    ipmi=IpmiSummary(available=None),
)
