"""Headless polling loop: one snapshot, one log row and one evaluation per interval."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from slowdiag_telemetry import EngineState, MetricsSnapshot, SnapshotAssembler

from .logging_setup import get_logger
from .metrics_log import MetricsLog
from .recommendations import Recommendation, evaluate
from .thresholds import Severity, Thresholds


@dataclass(frozen=True)
class TickResult:
    snapshot: MetricsSnapshot
    findings: list[Recommendation]


class Monitor:
    """Owns pacing and the engine state threaded between ticks.

    Cancellation is cooperative: ``run`` checks the stop event between
    ticks and never interrupts a tick in progress.
    """

    def __init__(
        self,
        assembler: SnapshotAssembler,
        thresholds: Thresholds | None = None,
        metrics_log: MetricsLog | None = None,
        interval_s: float = 5.0,
    ) -> None:
        self.assembler = assembler
        self.thresholds = thresholds or Thresholds()
        self.metrics_log = metrics_log
        self.interval_s = interval_s
        self._state = EngineState()
        self._log = get_logger("monitor")

    @property
    def state(self) -> EngineState:
        return self._state

    def step(self) -> TickResult:
        snapshot, self._state = self.assembler.tick(self._state)
        if self.metrics_log is not None:
            self.metrics_log.write(snapshot)

        findings = evaluate(snapshot, self.thresholds)
        for rec in findings:
            level = logging.WARNING if rec.severity <= Severity.WARNING else logging.INFO
            self._log.log(
                level,
                f"{rec.severity.name.lower()}: {rec.title}: {rec.advice}",
                extra={"event": "finding"},
            )
        return TickResult(snapshot=snapshot, findings=findings)

    def run(
        self,
        stop: threading.Event,
        max_ticks: int | None = None,
        on_tick: Callable[[TickResult], None] | None = None,
    ) -> int:
        ticks = 0
        self._log.info(f"monitor started interval={self.interval_s}s", extra={"event": "monitor_started"})
        while not stop.is_set():
            started = time.monotonic()
            result = self.step()
            ticks += 1
            if on_tick is not None:
                on_tick(result)
            if max_ticks is not None and ticks >= max_ticks:
                break
            elapsed = time.monotonic() - started
            stop.wait(max(0.0, self.interval_s - elapsed))
        self._log.info(f"monitor stopped after {ticks} ticks", extra={"event": "monitor_stopped"})
        return ticks
