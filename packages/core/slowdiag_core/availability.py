"""Which metric sources this host can provide, reported once at startup."""

from __future__ import annotations

import platform
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from slowdiag_telemetry.probes import find_tool, has_elevated_privileges, has_sudo_access
from slowdiag_telemetry.readers import (
    CPU_SENSOR_DRIVERS,
    DIMM_SENSOR_DRIVER,
    NVME_SENSOR_DRIVER,
    hwmon_driver_names,
    psi_supported,
)

from .config import AppConfig


@dataclass(frozen=True)
class MetricAvailability:
    proc_pressure: bool
    hwmon_cpu: bool
    hwmon_dimm: bool
    hwmon_nvme: bool
    perf_events: bool
    smartctl: bool
    ipmitool: bool
    elevated: bool

    @classmethod
    def probe(cls, proc_root: Path | str = "/proc", sys_root: Path | str = "/sys") -> "MetricAvailability":
        drivers = set(hwmon_driver_names(sys_root))
        return cls(
            proc_pressure=psi_supported(proc_root),
            hwmon_cpu=bool(drivers.intersection(CPU_SENSOR_DRIVERS)),
            hwmon_dimm=DIMM_SENSOR_DRIVER in drivers,
            hwmon_nvme=NVME_SENSOR_DRIVER in drivers,
            perf_events=_perf_events_allowed(Path(proc_root)),
            smartctl=find_tool("smartctl") is not None,
            ipmitool=find_tool("ipmitool") is not None,
            elevated=has_elevated_privileges(),
        )

    def warnings(self) -> list[str]:
        out = []
        if not self.proc_pressure:
            out.append("PSI unavailable (requires Linux 4.20+ with CONFIG_PSI)")
        if not self.hwmon_cpu:
            out.append("CPU temp sensors not found (no coretemp/k10temp/zenpower hwmon devices)")
        if not self.hwmon_dimm:
            out.append("RAM temp sensors not found (no jc42 hwmon devices)")
        if not self.hwmon_nvme:
            out.append("NVMe temp sensors not found")
        if not self.perf_events and not self.elevated:
            out.append("Perf events restricted (run with sudo for full metrics)")
        if not self.smartctl:
            out.append("smartctl not found (install smartmontools for disk health)")
        if not self.ipmitool and self.elevated:
            out.append("ipmitool not found (install for BMC/IPMI sensors)")
        return out


def _perf_events_allowed(proc_root: Path) -> bool:
    try:
        level = int((proc_root / "sys" / "kernel" / "perf_event_paranoid").read_text().strip())
    except (OSError, ValueError):
        return False
    return level <= 1


def build_doctor_payload(cfg: AppConfig) -> dict[str, Any]:
    avail = MetricAvailability.probe(cfg.sources.proc_root, cfg.sources.sys_root)
    return {
        "ts_utc": datetime.now(timezone.utc).isoformat(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "availability": asdict(avail),
        "sudo": avail.elevated or has_sudo_access(),
        "warnings": avail.warnings(),
    }
