"""Host telemetry engine: counter readers, deltas, cached probes and snapshot assembly."""

from .assembler import PsutilHost, SnapshotAssembler
from .cache import CadenceCache, ProbeError
from .delta import delta
from .models import (
    CpuCounters,
    DiskCounters,
    EngineState,
    IpmiSensors,
    MetricsSnapshot,
    NetCounters,
    SensorStatus,
    SmartHealth,
    TemperatureReading,
    VmCounters,
    snapshot_columns,
    snapshot_row,
)
from .reconcile import reconcile

__all__ = [
    "CadenceCache",
    "CpuCounters",
    "DiskCounters",
    "EngineState",
    "IpmiSensors",
    "MetricsSnapshot",
    "NetCounters",
    "ProbeError",
    "PsutilHost",
    "SensorStatus",
    "SmartHealth",
    "SnapshotAssembler",
    "TemperatureReading",
    "VmCounters",
    "delta",
    "reconcile",
    "snapshot_columns",
    "snapshot_row",
]
