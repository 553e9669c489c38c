"""Builds one immutable MetricsSnapshot per tick from every source."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, TypeVar

import psutil

from .cache import DEFAULT_CADENCE, CadenceCache
from .delta import delta
from .models import (
    CpuMetrics,
    EngineState,
    HwmonReadings,
    IpmiSensors,
    IpmiSummary,
    MemoryMetrics,
    MetricsSnapshot,
    SmartHealth,
    SmartSummary,
    SystemMetrics,
    TemperatureMetrics,
)
from .probes import IpmitoolProbe, SmartctlProbe
from .readers import (
    read_cpu_counters,
    read_disk_counters,
    read_fd_usage,
    read_hwmon,
    read_meminfo,
    read_net_counters,
    read_psi,
    read_uptime,
    read_vm_counters,
)
from .reconcile import dimm_temperature, disk_temperature, format_readings

T = TypeVar("T")

_MB = 1024 * 1024


@dataclass(frozen=True)
class HostMemory:
    total: int
    used: int
    free: int
    available: int
    swap_total: int
    swap_used: int


class PsutilHost:
    """Whole-host gauges that psutil already normalizes across kernels."""

    def __init__(self) -> None:
        # Prime non-blocking per-core CPU measurement.
        try:
            psutil.cpu_percent(interval=None, percpu=True)
        except Exception:
            pass

    def memory(self) -> HostMemory | None:
        try:
            vm = psutil.virtual_memory()
            swap = psutil.swap_memory()
        except Exception:
            return None
        return HostMemory(
            total=vm.total,
            used=vm.used,
            free=vm.free,
            available=vm.available,
            swap_total=swap.total,
            swap_used=swap.used,
        )

    def cpu_percent_per_core(self) -> list[float] | None:
        try:
            return [float(p) for p in psutil.cpu_percent(interval=None, percpu=True)]
        except Exception:
            return None

    def load_average(self) -> tuple[float, float, float] | None:
        try:
            one, five, fifteen = psutil.getloadavg()
        except Exception:
            return None
        return float(one), float(five), float(fifteen)

    def process_count(self) -> int | None:
        try:
            return len(psutil.pids())
        except Exception:
            return None


def _tick_delta(previous: T | None, current: T | None) -> T | None:
    if current is None:
        return None
    # No baseline yet: diffing against itself zeroes counters and keeps gauges.
    return delta(previous if previous is not None else current, current)


def _mb(value: int | None) -> int | None:
    return None if value is None else value // _MB


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotAssembler:
    """Single entry point the scheduler calls once per interval."""

    def __init__(
        self,
        proc_root: Path | str = "/proc",
        sys_root: Path | str = "/sys",
        host: PsutilHost | None = None,
        smart_cache: CadenceCache[SmartHealth] | None = None,
        ipmi_cache: CadenceCache[IpmiSensors] | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self.proc_root = Path(proc_root)
        self.sys_root = Path(sys_root)
        self.host = host or PsutilHost()
        self.smart_cache = smart_cache
        self.ipmi_cache = ipmi_cache
        self._clock = clock

    @classmethod
    def with_probes(
        cls,
        smart_cadence: int = DEFAULT_CADENCE,
        ipmi_cadence: int = DEFAULT_CADENCE,
        smart_enabled: bool = True,
        ipmi_enabled: bool = True,
        **kwargs,
    ) -> "SnapshotAssembler":
        smart = (
            CadenceCache(SmartctlProbe(), SmartHealth(available=False), cadence=smart_cadence, name="smartctl")
            if smart_enabled
            else None
        )
        ipmi = (
            CadenceCache(IpmitoolProbe(), IpmiSensors(available=False), cadence=ipmi_cadence, name="ipmitool")
            if ipmi_enabled
            else None
        )
        return cls(smart_cache=smart, ipmi_cache=ipmi, **kwargs)

    def tick(self, previous: EngineState | None = None) -> tuple[MetricsSnapshot, EngineState]:
        previous = previous or EngineState()
        now = self._clock()

        # Raw counters, each source independent of the others.
        cpu_raw = read_cpu_counters(self.proc_root)
        disk_raw = read_disk_counters(self.proc_root)
        net_raw = read_net_counters(self.proc_root)
        vm_raw = read_vm_counters(self.proc_root)

        cpu_times = _tick_delta(previous.cpu, cpu_raw)
        disk_io = _tick_delta(previous.disk, disk_raw)
        network = _tick_delta(previous.net, net_raw)
        vm = _tick_delta(previous.vm, vm_raw)

        smart = self.smart_cache.tick() if self.smart_cache else None
        ipmi = self.ipmi_cache.tick() if self.ipmi_cache else None

        hwmon = read_hwmon(self.sys_root)
        snapshot = MetricsSnapshot(
            timestamp=now.timestamp(),
            datetime=now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z",
            memory=self._memory(),
            cpu=self._cpu(),
            cpu_times=cpu_times,
            disk_io=disk_io,
            network=network,
            vm=vm,
            pressure=read_psi(self.proc_root),
            temperatures=_temperatures(hwmon, smart, ipmi),
            system=SystemMetrics(uptime_secs=read_uptime(self.proc_root), fds=read_fd_usage(self.proc_root)),
            smart=_smart_summary(smart),
            ipmi=_ipmi_summary(ipmi),
        )
        next_state = EngineState(cpu=cpu_raw, disk=disk_raw, net=net_raw, vm=vm_raw, ticks=previous.ticks + 1)
        return snapshot, next_state

    def _memory(self) -> MemoryMetrics:
        mem = self.host.memory()
        return MemoryMetrics(
            total_mb=_mb(mem.total) if mem else None,
            used_mb=_mb(mem.used) if mem else None,
            free_mb=_mb(mem.free) if mem else None,
            available_mb=_mb(mem.available) if mem else None,
            swap_total_mb=_mb(mem.swap_total) if mem else None,
            swap_used_mb=_mb(mem.swap_used) if mem else None,
            info=read_meminfo(self.proc_root),
        )

    def _cpu(self) -> CpuMetrics:
        per_core = self.host.cpu_percent_per_core()
        load = self.host.load_average()
        return CpuMetrics(
            usage_percent=(sum(per_core) / len(per_core)) if per_core else None,
            count=len(per_core) if per_core else None,
            load_avg_1=load[0] if load else None,
            load_avg_5=load[1] if load else None,
            load_avg_15=load[2] if load else None,
            process_count=self.host.process_count(),
        )


def _temperatures(hwmon: HwmonReadings | None, smart: SmartHealth | None, ipmi: IpmiSensors | None) -> TemperatureMetrics:
    dimms = hwmon.dimms if hwmon else ()
    return TemperatureMetrics(
        cpu=hwmon.cpu if hwmon else None,
        max_celsius=hwmon.max_celsius if hwmon else None,
        dimm=dimm_temperature(hwmon, ipmi),
        dimm_avg_celsius=(sum(t for _, t in dimms) / len(dimms)) if dimms else None,
        dimm_details=format_readings(dimms),
        disk=disk_temperature(hwmon, smart),
        disk_details=format_readings(hwmon.nvme) if hwmon else None,
    )


def _smart_summary(smart: SmartHealth | None) -> SmartSummary:
    if smart is None:
        return SmartSummary(available=None)
    if not smart.available:
        return SmartSummary(available=False)
    return SmartSummary(
        available=True,
        all_passed=smart.all_healthy(),
        reallocated_sectors=smart.total_reallocated_sectors(),
        pending_sectors=smart.total_pending_sectors(),
    )


def _ipmi_summary(ipmi: IpmiSensors | None) -> IpmiSummary:
    if ipmi is None:
        return IpmiSummary(available=None)
    if not ipmi.available:
        return IpmiSummary(available=False)
    return IpmiSummary(
        available=True,
        dimm_temp_max=ipmi.max_dimm_temp(),
        dimm_status=ipmi.worst_dimm_status(),
        dimm_details=ipmi.format_dimms(),
    )
