"""Tick-counted cache for slow external probes."""

from __future__ import annotations

import logging
import subprocess
from typing import Callable, Generic, TypeVar

T = TypeVar("T")

DEFAULT_CADENCE = 12  # about once a minute at a 5 s interval

_LOGGER = logging.getLogger("slowdiag.telemetry")
_EMPTY = object()


class ProbeError(RuntimeError):
    """An external probe could not produce a value."""


class CadenceCache(Generic[T]):
    """Re-run ``probe`` every ``cadence`` ticks and serve the cached value in between.

    The first tick always probes. A probe that raises (tool failure,
    undecodable output) stores ``unavailable`` until the next cadence
    boundary; failures are never retried early.
    """

    def __init__(self, probe: Callable[[], T], unavailable: T, cadence: int = DEFAULT_CADENCE, name: str = "") -> None:
        if cadence < 1:
            raise ValueError("cadence must be >= 1")
        self.probe = probe
        self.unavailable = unavailable
        self.cadence = cadence
        self.name = name or getattr(probe, "__name__", type(probe).__name__)
        self.probe_count = 0
        self._value: object = _EMPTY
        # one short of the boundary so the first tick lands on it
        self._age = cadence - 1

    @property
    def age(self) -> int:
        return self._age

    @property
    def value(self) -> T | None:
        return None if self._value is _EMPTY else self._value  # type: ignore[return-value]

    def tick(self, force_if_empty: bool = True) -> T:
        self._age += 1
        if self._age >= self.cadence or (force_if_empty and self._value is _EMPTY):
            self._value = self._refresh()
            self._age = 0
        return self._value  # type: ignore[return-value]

    def _refresh(self) -> T:
        self.probe_count += 1
        try:
            value = self.probe()
        except (ProbeError, OSError, UnicodeError, subprocess.SubprocessError) as exc:
            _LOGGER.warning(
                f"probe {self.name} unavailable: {exc}",
                extra={"event": "probe_unavailable", "probe": self.name},
            )
            return self.unavailable
        _LOGGER.debug(f"probe {self.name} refreshed", extra={"event": "probe_refreshed", "probe": self.name})
        return value
