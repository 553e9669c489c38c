"""Warning/critical cutoffs for every monitored quantity."""

from __future__ import annotations

import enum
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping


class Severity(enum.IntEnum):
    """Ordered so that sorting ascending puts the most urgent first."""

    CRITICAL = 0
    WARNING = 1
    INFO = 2
    NORMAL = 3


@dataclass(frozen=True)
class Band:
    warning: float
    critical: float | None = None
    low_is_bad: bool = False
    # strict bands fire only above the cutoff, not at it
    strict: bool = False

    def severity(self, value: float) -> Severity:
        if self.low_is_bad:
            if self.critical is not None and value <= self.critical:
                return Severity.CRITICAL
            if value <= self.warning:
                return Severity.WARNING
            return Severity.NORMAL
        if self.critical is not None and self._exceeds(value, self.critical):
            return Severity.CRITICAL
        if self._exceeds(value, self.warning):
            return Severity.WARNING
        return Severity.NORMAL

    def _exceeds(self, value: float, cutoff: float) -> bool:
        return value > cutoff if self.strict else value >= cutoff


@dataclass(frozen=True)
class Thresholds:
    io_pressure: Band = Band(10.0, 25.0)
    mem_pressure: Band = Band(10.0, 25.0)
    cpu_usage: Band = Band(80.0, 95.0)
    memory_available_mb: Band = Band(1024, 256, low_is_bad=True)
    cpu_temp: Band = Band(75.0, 85.0)
    dimm_temp: Band = Band(70.0, 80.0)
    disk_temp: Band = Band(50.0, 60.0)
    iowait_percent: Band = Band(20.0, 40.0)
    major_faults: Band = Band(100, strict=True)
    dirty_mb: Band = Band(1024, strict=True)

    def with_overrides(self, overrides: Mapping[str, Mapping[str, Any]]) -> "Thresholds":
        """Copy with ``{"name": {"warning": x, "critical": y}}`` applied; unknown names are ignored."""
        known = {f.name for f in fields(self)}
        changes = {}
        for name, values in overrides.items():
            if name not in known or not isinstance(values, Mapping):
                continue
            band = getattr(self, name)
            kwargs = {k: values[k] for k in ("warning", "critical") if k in values}
            changes[name] = replace(band, **kwargs)
        return replace(self, **changes)
