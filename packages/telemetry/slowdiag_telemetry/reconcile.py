"""Pick one reading among sources that measure the same quantity."""

from __future__ import annotations

from typing import Iterable

from .models import HwmonReadings, IpmiSensors, SmartHealth, TemperatureReading

NVME_HWMON = "nvme hwmon"
SMARTCTL = "smartctl"
JC42_HWMON = "jc42 hwmon"
IPMI = "ipmi"


def reconcile(candidates: Iterable[tuple[float | None, str]]) -> TemperatureReading | None:
    """First candidate, in priority order, whose value is present."""
    for value, source in candidates:
        if value is not None:
            return TemperatureReading(celsius=value, source=source)
    return None


def _max(readings: tuple[tuple[str, float], ...]) -> float | None:
    return max((t for _, t in readings), default=None)


def disk_temperature(hwmon: HwmonReadings | None, smart: SmartHealth | None) -> TemperatureReading | None:
    """NVMe hwmon sensors outrank the temperature smartctl reports."""
    return reconcile(
        [
            (_max(hwmon.nvme) if hwmon else None, NVME_HWMON),
            (smart.max_temperature() if smart and smart.available else None, SMARTCTL),
        ]
    )


def dimm_temperature(hwmon: HwmonReadings | None, ipmi: IpmiSensors | None) -> TemperatureReading | None:
    """jc42 hwmon sensors outrank BMC DIMM sensors."""
    return reconcile(
        [
            (_max(hwmon.dimms) if hwmon else None, JC42_HWMON),
            (ipmi.max_dimm_temp() if ipmi and ipmi.available else None, IPMI),
        ]
    )


def format_readings(readings: tuple[tuple[str, float], ...]) -> str | None:
    if not readings:
        return None
    return ",".join(f"{label}:{temp:.1f}" for label, temp in readings)
