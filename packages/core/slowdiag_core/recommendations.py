"""Turn a metrics snapshot into severity-ranked, actionable findings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from slowdiag_telemetry.models import MetricsSnapshot, SensorStatus

from .thresholds import Severity, Thresholds


@dataclass(frozen=True)
class Recommendation:
    severity: Severity
    title: str
    advice: str


Check = Callable[[MetricsSnapshot, Thresholds], "Recommendation | None"]


def _tiered(
    severity: Severity,
    critical: tuple[str, str],
    warning: tuple[str, str] | None,
) -> Recommendation | None:
    if severity is Severity.CRITICAL:
        return Recommendation(severity, *critical)
    if severity is Severity.WARNING and warning is not None:
        return Recommendation(severity, *warning)
    return None


def check_io_pressure(snap: MetricsSnapshot, th: Thresholds) -> Recommendation | None:
    value = snap.pressure.io_some_avg10
    if value is None:
        return None
    return _tiered(
        th.io_pressure.severity(value),
        ("High I/O Pressure", "Check: iotop, iostat -x 1, dmesg for disk errors"),
        ("Elevated I/O Pressure", "Monitor: iotop -o to identify I/O-heavy processes"),
    )


def check_memory_pressure(snap: MetricsSnapshot, th: Thresholds) -> Recommendation | None:
    value = snap.pressure.mem_some_avg10
    if value is None:
        return None
    return _tiered(
        th.mem_pressure.severity(value),
        ("High Memory Pressure", "Check: ps aux --sort=-%mem | head, consider adding RAM"),
        ("Memory Pressure Detected", "Monitor: free -h, check for memory-hungry processes"),
    )


def check_swap_activity(snap: MetricsSnapshot, th: Thresholds) -> Recommendation | None:
    vm = snap.vm
    if vm is None or (vm.pswpin == 0 and vm.pswpout == 0):
        return None
    return Recommendation(
        Severity.WARNING,
        "Swap Activity",
        f"Swapping in:{vm.pswpin} out:{vm.pswpout}. Check: ps aux --sort=-%mem",
    )


def check_available_memory(snap: MetricsSnapshot, th: Thresholds) -> Recommendation | None:
    available = snap.memory.available_mb
    if available is None:
        return None
    return _tiered(
        th.memory_available_mb.severity(available),
        ("Critically Low Memory", f"Only {available} MB available. Kill processes or add RAM immediately"),
        ("Low Available Memory", f"{available} MB available. Monitor memory usage closely"),
    )


def check_cpu_temperature(snap: MetricsSnapshot, th: Thresholds) -> Recommendation | None:
    reading = snap.temperatures.cpu
    if reading is None:
        return None
    temp = reading.celsius
    return _tiered(
        th.cpu_temp.severity(temp),
        ("CPU Overheating", f"CPU at {temp:.0f}C. Check cooling, clean dust, verify thermal paste"),
        ("CPU Running Hot", f"CPU at {temp:.0f}C. Consider improving cooling"),
    )


def check_dimm_temperature(snap: MetricsSnapshot, th: Thresholds) -> Recommendation | None:
    reading = snap.temperatures.dimm
    if reading is None:
        return None
    temp = reading.celsius
    return _tiered(
        th.dimm_temp.severity(temp),
        ("RAM Overheating", f"DIMM at {temp:.0f}C ({reading.source}). Check case airflow, consider RAM cooling"),
        ("RAM Running Warm", f"DIMM at {temp:.0f}C ({reading.source}). Ensure adequate airflow"),
    )


def check_disk_temperature(snap: MetricsSnapshot, th: Thresholds) -> Recommendation | None:
    reading = snap.temperatures.disk
    if reading is None:
        return None
    temp = reading.celsius
    return _tiered(
        th.disk_temp.severity(temp),
        ("Disk Overheating", f"Disk at {temp:.0f}C ({reading.source}). Check cooling, may cause data loss"),
        ("Disk Running Hot", f"Disk at {temp:.0f}C ({reading.source}). Consider better cooling"),
    )


def iowait_percent(snap: MetricsSnapshot) -> float | None:
    """Share of the tick's CPU time spent in iowait, over user+system+idle+iowait."""
    t = snap.cpu_times
    if t is None:
        return None
    total = t.user + t.system + t.idle + t.iowait
    if total == 0:
        return None
    return t.iowait / total * 100.0


def check_iowait(snap: MetricsSnapshot, th: Thresholds) -> Recommendation | None:
    pct = iowait_percent(snap)
    if pct is None:
        return None
    return _tiered(
        th.iowait_percent.severity(pct),
        ("Severe I/O Wait", f"{pct:.0f}% CPU waiting for I/O. Disk is severe bottleneck"),
        ("High I/O Wait", f"{pct:.0f}% CPU waiting for I/O. Disk may be bottleneck"),
    )


def check_cpu_saturation(snap: MetricsSnapshot, th: Thresholds) -> Recommendation | None:
    usage = snap.cpu.usage_percent
    if usage is None:
        return None
    return _tiered(
        th.cpu_usage.severity(usage),
        ("CPU Saturated", f"CPU at {usage:.0f}%. Check: top, htop for CPU-intensive processes"),
        ("High CPU Usage", f"CPU at {usage:.0f}%. Watch for sustained load"),
    )


def check_major_faults(snap: MetricsSnapshot, th: Thresholds) -> Recommendation | None:
    if snap.vm is None:
        return None
    faults = snap.vm.pgmajfault
    return _tiered(
        th.major_faults.severity(faults),
        ("Severe Major Faults", f"{faults} major faults. System is thrashing. Add RAM or reduce load"),
        ("High Major Faults", f"{faults} major faults. System may be thrashing. Add RAM or reduce load"),
    )


def check_dirty_pages(snap: MetricsSnapshot, th: Thresholds) -> Recommendation | None:
    info = snap.memory.info
    if info is None:
        return None
    return _tiered(
        th.dirty_mb.severity(info.dirty),
        ("Dirty Page Backlog", f"{info.dirty} MB waiting to be written. Writeback is stalled"),
        ("High Dirty Pages", f"{info.dirty} MB waiting to be written. I/O may be backed up"),
    )


def check_ipmi_dimm_status(snap: MetricsSnapshot, th: Thresholds) -> Recommendation | None:
    status = snap.ipmi.dimm_status
    if status is None:
        return None
    details = snap.ipmi.dimm_details or "Check: sudo ipmitool sensor list | grep -i dimm"
    if status is SensorStatus.NON_RECOVERABLE:
        return Recommendation(Severity.CRITICAL, "DIMM NON-RECOVERABLE", f"{details}. Check BMC logs: sudo ipmitool sel list")
    if status is SensorStatus.CRITICAL:
        return Recommendation(Severity.CRITICAL, "DIMM CRITICAL", f"{details}. Check cooling immediately")
    if status is SensorStatus.NON_CRITICAL:
        return Recommendation(Severity.WARNING, "DIMM Warning", f"{details}. Monitor closely")
    return None


def check_smart_health(snap: MetricsSnapshot, th: Thresholds) -> Recommendation | None:
    smart = snap.smart
    if not smart.available:
        return None
    if smart.all_passed is False:
        return Recommendation(
            Severity.CRITICAL,
            "Disk Health Check Failed",
            "SMART overall-health test failed. Back up data and replace the disk",
        )
    bad = (smart.reallocated_sectors or 0) + (smart.pending_sectors or 0)
    if bad > 0:
        return Recommendation(
            Severity.WARNING,
            "Disk Sectors Degrading",
            f"{smart.reallocated_sectors or 0} reallocated, {smart.pending_sectors or 0} pending sectors. "
            "Check: sudo smartctl -a",
        )
    return None


def check_network_errors(snap: MetricsSnapshot, th: Thresholds) -> Recommendation | None:
    net = snap.network
    if net is None or (net.rx_errors == 0 and net.tx_errors == 0):
        return None
    return Recommendation(
        Severity.INFO,
        "Network Errors",
        f"rx errors:{net.rx_errors} tx errors:{net.tx_errors}. Check: ip -s link, cabling, driver logs",
    )


CHECKS: tuple[Check, ...] = (
    check_io_pressure,
    check_memory_pressure,
    check_swap_activity,
    check_available_memory,
    check_cpu_temperature,
    check_dimm_temperature,
    check_disk_temperature,
    check_iowait,
    check_cpu_saturation,
    check_major_faults,
    check_dirty_pages,
    check_ipmi_dimm_status,
    check_smart_health,
    check_network_errors,
)


def evaluate(snapshot: MetricsSnapshot, thresholds: Thresholds | None = None) -> list[Recommendation]:
    """Run every check; findings come back critical first, check order kept within a tier."""
    thresholds = thresholds or Thresholds()
    found = []
    for check in CHECKS:
        rec = check(snapshot, thresholds)
        if rec is not None:
            found.append(rec)
    return sorted(found, key=lambda r: r.severity)
