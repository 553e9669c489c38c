"""External tool probes: smartctl for disk health, ipmitool for BMC sensors.

Both tools usually need root. A probe first answers ``can_attempt()``
(effective UID 0, or passwordless sudo) so no process is spawned when the
answer is known to be no.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from typing import Any, Callable, Sequence

from .cache import ProbeError
from .models import IpmiSensor, IpmiSensors, SensorStatus, SmartDevice, SmartHealth

_LOGGER = logging.getLogger("slowdiag.telemetry")

Runner = Callable[[Sequence[str]], "subprocess.CompletedProcess[str]"]

# smartctl exit status bits 0 and 1: bad command line, device open failed
_SMARTCTL_FATAL_BITS = 0b11

# admin tools live here and are often missing from an unprivileged PATH
SBIN_DIRS = ("/usr/local/sbin", "/usr/sbin", "/sbin")


def find_tool(name: str) -> str | None:
    return shutil.which(name) or shutil.which(name, path=os.pathsep.join(SBIN_DIRS))


def has_elevated_privileges() -> bool:
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


def has_sudo_access(runner: Runner | None = None) -> bool:
    if shutil.which("sudo") is None:
        return False
    try:
        result = (runner or run_tool)(["sudo", "-n", "true"])
    except (OSError, subprocess.SubprocessError):
        return False
    return result.returncode == 0


def run_tool(args: Sequence[str]) -> "subprocess.CompletedProcess[str]":
    """Run a helper and wait for it; no timeout, the scheduler owns pacing.

    Output bytes that are not valid UTF-8 are replaced rather than raised.
    """
    return subprocess.run(
        list(args), capture_output=True, text=True, encoding="utf-8", errors="replace", check=False
    )


class _PrivilegedProbe:
    tool = ""

    def __init__(self, runner: Runner | None = None, elevated: bool | None = None) -> None:
        self._runner = runner or run_tool
        self._elevated = elevated

    def _is_elevated(self) -> bool:
        return has_elevated_privileges() if self._elevated is None else self._elevated

    def can_attempt(self) -> bool:
        if find_tool(self.tool) is None:
            return False
        return self._is_elevated() or has_sudo_access(self._runner)

    def _command(self, *args: str) -> list[str]:
        cmd = [find_tool(self.tool) or self.tool, *args]
        return cmd if self._is_elevated() else ["sudo", "-n", *cmd]


# -- smartctl ---------------------------------------------------------------

def parse_lsblk_disks(text: str) -> list[str]:
    """Device paths of whole disks from ``lsblk -d -n -o NAME,TYPE``."""
    out = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[1] == "disk":
            out.append(f"/dev/{parts[0]}")
    return out


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _attribute_raw(table: Any, *names: str) -> int | None:
    if not isinstance(table, list):
        return None
    for wanted in names:
        for attr in table:
            if not isinstance(attr, dict) or attr.get("name") != wanted:
                continue
            raw = attr.get("raw")
            value = raw.get("value") if isinstance(raw, dict) else None
            if isinstance(value, int) and not isinstance(value, bool):
                return value
    return None


def parse_smartctl_json(text: str, device: str) -> SmartDevice | None:
    """Parse ``smartctl -a -j`` output; fields whose schema does not match are left as None."""
    try:
        doc = json.loads(text)
    except ValueError:
        return None
    if not isinstance(doc, dict):
        return None

    status = doc.get("smart_status")
    passed = status.get("passed") if isinstance(status, dict) else None
    temperature = doc.get("temperature")
    table = doc.get("ata_smart_attributes", {})
    table = table.get("table") if isinstance(table, dict) else None

    return SmartDevice(
        device=device,
        health_passed=passed if isinstance(passed, bool) else None,
        temperature=_number(temperature.get("current")) if isinstance(temperature, dict) else None,
        reallocated_sectors=_attribute_raw(table, "Reallocated_Sector_Ct", "Reallocated_Event_Count"),
        pending_sectors=_attribute_raw(table, "Current_Pending_Sector"),
    )


class SmartctlProbe(_PrivilegedProbe):
    tool = "smartctl"

    def __call__(self) -> SmartHealth:
        if not self.can_attempt():
            return SmartHealth(available=False)

        listing = self._runner(["lsblk", "-d", "-n", "-o", "NAME,TYPE"])
        if listing.returncode != 0:
            raise ProbeError(f"lsblk exited {listing.returncode}")

        devices = []
        for path in parse_lsblk_disks(listing.stdout):
            result = self._runner(self._command("-a", "-j", path))
            if result.returncode & _SMARTCTL_FATAL_BITS:
                _LOGGER.debug(f"smartctl skipped {path} (exit {result.returncode})")
                continue
            parsed = parse_smartctl_json(result.stdout, path)
            if parsed is not None:
                devices.append(parsed)
        return SmartHealth(available=True, devices=tuple(devices))


# -- ipmitool ---------------------------------------------------------------

def parse_sensor_status(text: str) -> SensorStatus:
    try:
        return SensorStatus(text.strip().lower())
    except ValueError:
        return SensorStatus.NOT_AVAILABLE


def parse_sensor_list(text: str) -> list[IpmiSensor]:
    """Parse ``ipmitool sensor list`` rows: ``name | value | unit | status | thresholds...``."""
    sensors = []
    for line in text.splitlines():
        parts = [p.strip() for p in line.split("|")]
        if len(parts) < 4:
            continue
        try:
            value = float(parts[1])
        except ValueError:
            continue
        sensors.append(IpmiSensor(name=parts[0], value=value, unit=parts[2], status=parse_sensor_status(parts[3])))
    return sensors


class IpmitoolProbe(_PrivilegedProbe):
    tool = "ipmitool"

    def __call__(self) -> IpmiSensors:
        if not self.can_attempt():
            return IpmiSensors(available=False)

        result = self._runner(self._command("sensor", "list"))
        if result.returncode != 0:
            raise ProbeError(f"ipmitool exited {result.returncode}: {result.stderr.strip()}")
        return IpmiSensors(available=True, sensors=tuple(parse_sensor_list(result.stdout)))
