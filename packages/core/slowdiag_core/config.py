"""Persistent monitor settings schema and load/save helpers."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .thresholds import Thresholds


CONFIG_VERSION = 2


@dataclass
class MonitorConfig:
    interval_s: int = 5
    csv_file: str = "metrics.csv"


@dataclass
class SourcesConfig:
    proc_root: str = "/proc"
    sys_root: str = "/sys"


@dataclass
class ProbesConfig:
    smart_enabled: bool = True
    smart_cadence: int = 12
    ipmi_enabled: bool = True
    ipmi_cadence: int = 12


@dataclass
class LoggingConfig:
    keep_log_files: int = 7
    console: bool = False
    level: str = "INFO"


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    sources: SourcesConfig = field(default_factory=SourcesConfig)
    probes: ProbesConfig = field(default_factory=ProbesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    # name -> {"warning": x, "critical": y}; see Thresholds for names
    thresholds: dict[str, dict[str, float]] = field(default_factory=dict)

    def build_thresholds(self) -> Thresholds:
        return Thresholds().with_overrides(self.thresholds)


def config_root() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME")
    return (Path(base) if base else Path.home() / ".config") / "slowdiag"


def config_path() -> Path:
    return config_root() / "config.json"


def _merge(dataclass_type, raw: Any):
    defaults = dataclass_type()  # type: ignore[misc]
    if not isinstance(raw, dict):
        return defaults
    for k, v in raw.items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _normalize_monitor(cfg: AppConfig) -> None:
    cfg.monitor.interval_s = max(1, min(3600, int(cfg.monitor.interval_s)))


def _normalize_probes(cfg: AppConfig) -> None:
    cfg.probes.smart_cadence = max(1, int(cfg.probes.smart_cadence))
    cfg.probes.ipmi_cadence = max(1, int(cfg.probes.ipmi_cadence))


def _normalize_logging(cfg: AppConfig) -> None:
    cfg.logging.keep_log_files = max(2, int(cfg.logging.keep_log_files))
    if str(cfg.logging.level).upper() not in ("DEBUG", "INFO", "WARNING", "ERROR"):
        cfg.logging.level = "INFO"
    cfg.logging.level = str(cfg.logging.level).upper()


def _normalize_thresholds(cfg: AppConfig) -> None:
    clean: dict[str, dict[str, float]] = {}
    for name, band in (cfg.thresholds or {}).items():
        if not isinstance(band, dict):
            continue
        values = {k: float(v) for k, v in band.items() if k in ("warning", "critical") and isinstance(v, (int, float))}
        if values:
            clean[str(name)] = values
    cfg.thresholds = clean


def _migrate(raw: dict[str, Any]) -> dict[str, Any]:
    version = int(raw.get("config_version", 1))
    data = dict(raw)

    if version < 2:
        # v1 kept interval and csv path at the top level and had no probe section.
        monitor = dict(data.get("monitor", {}) or {})
        if "interval" in data:
            monitor.setdefault("interval_s", data.pop("interval"))
        if "csv_file" in data:
            monitor.setdefault("csv_file", data.pop("csv_file"))
        data["monitor"] = monitor
        data.setdefault("probes", {})
        data["config_version"] = 2

    return data


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    if not path.exists():
        return AppConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return AppConfig()
    if not isinstance(raw, dict):
        return AppConfig()

    data = _migrate(raw)
    thresholds = data.get("thresholds", {})
    cfg = AppConfig(
        config_version=int(data.get("config_version", CONFIG_VERSION)),
        monitor=_merge(MonitorConfig, data.get("monitor", {})),
        sources=_merge(SourcesConfig, data.get("sources", {})),
        probes=_merge(ProbesConfig, data.get("probes", {})),
        logging=_merge(LoggingConfig, data.get("logging", {})),
        thresholds=thresholds if isinstance(thresholds, dict) else {},
    )

    _normalize_monitor(cfg)
    _normalize_probes(cfg)
    _normalize_logging(cfg)
    _normalize_thresholds(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path
