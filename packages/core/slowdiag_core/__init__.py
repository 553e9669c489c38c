"""Core services: settings, thresholds, recommendations, capability probe, metrics log and monitor loop."""

from .availability import MetricAvailability, build_doctor_payload
from .config import AppConfig, config_path, load_config, save_config
from .metrics_log import MetricsLog
from .monitor import Monitor, TickResult
from .recommendations import Recommendation, evaluate
from .thresholds import Band, Severity, Thresholds

__all__ = [
    "AppConfig",
    "Band",
    "MetricAvailability",
    "MetricsLog",
    "Monitor",
    "Recommendation",
    "Severity",
    "Thresholds",
    "TickResult",
    "build_doctor_payload",
    "config_path",
    "evaluate",
    "load_config",
    "save_config",
]
