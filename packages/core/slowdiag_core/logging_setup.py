"""JSON-lines operational log for the monitor, plus crash reporting."""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import config_root

ROOT_LOGGER = "slowdiag"
LOG_FILE_NAME = "slowdiag.log"

# Attributes passed through ``extra=`` that end up as top-level JSON keys.
STRUCTURED_FIELDS = ("event", "probe", "crash_id")


def log_dir() -> Path:
    path = config_root() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts_utc": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update({key: getattr(record, key) for key in STRUCTURED_FIELDS if hasattr(record, key)})
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=True, default=str)


def _file_handler(directory: Path, keep_files: int) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(directory / LOG_FILE_NAME),
        when="midnight",
        backupCount=max(2, keep_files),
        encoding="utf-8",
    )
    handler.setFormatter(JsonFormatter())
    return handler


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    return handler


def configure_logging(
    keep_files: int = 7,
    console: bool = True,
    level: str = "INFO",
    directory: Path | None = None,
) -> logging.Logger:
    """Attach handlers to the ``slowdiag`` logger once; later calls return it unchanged."""
    logger = logging.getLogger(ROOT_LOGGER)
    if logger.handlers:
        return logger

    level_no = logging.getLevelName(level.upper())
    logger.setLevel(level_no if isinstance(level_no, int) else logging.INFO)
    logger.addHandler(_file_handler(directory or log_dir(), keep_files))
    if console:
        logger.addHandler(_console_handler())

    logger.info("logging configured", extra={"event": "logging_configured"})
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


def _report_crash(kind: str, exc_info: tuple) -> None:
    crash_id = uuid.uuid4().hex
    get_logger().critical(
        f"{kind.replace('_', ' ')} crash_id={crash_id}",
        exc_info=exc_info,
        extra={"event": kind, "crash_id": crash_id},
    )


def install_crash_hooks() -> None:
    """Route uncaught exceptions from the main thread and worker threads into the log."""
    sys.excepthook = lambda exc_type, exc, tb: _report_crash("uncaught_exception", (exc_type, exc, tb))
    threading.excepthook = lambda args: _report_crash(
        "thread_exception", (args.exc_type, args.exc_value, args.exc_traceback)
    )
