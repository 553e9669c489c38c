"""Append-only CSV log of metrics snapshots."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import IO, Any

from slowdiag_telemetry.models import MetricsSnapshot, snapshot_columns, snapshot_row


def _cell(value: Any) -> Any:
    # Absent data is an empty cell so it never reads as zero.
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


class MetricsLog:
    """One row per tick; the header is written only when the file is new or empty."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._fh: IO[str] | None = None
        self._writer = None

    def open(self) -> "MetricsLog":
        is_new = not self.path.exists() or self.path.stat().st_size == 0
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self.path.open("a", encoding="utf-8", newline="")
        self._writer = csv.writer(self._fh)
        if is_new:
            self._writer.writerow(snapshot_columns())
            self._fh.flush()
        return self

    def write(self, snapshot: MetricsSnapshot) -> None:
        if self._writer is None or self._fh is None:
            raise RuntimeError("metrics log is not open")
        self._writer.writerow([_cell(v) for _, v in snapshot_row(snapshot)])
        self._fh.flush()

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
        self._fh = None
        self._writer = None

    def __enter__(self) -> "MetricsLog":
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()
