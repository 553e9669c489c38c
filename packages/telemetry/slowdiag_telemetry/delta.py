"""Per-tick deltas between two raw counter snapshots."""

from __future__ import annotations

from dataclasses import fields
from typing import TypeVar

T = TypeVar("T")


def delta(previous: T, current: T) -> T:
    """Return ``current - previous`` field by field, clamped at zero.

    Fields listed in the snapshot class's ``GAUGES`` are point-in-time
    values and are passed through from ``current`` unchanged.

    Saturating subtraction absorbs counter resets (device re-enumeration,
    hot-swap) by reporting 0 for the tick after the reset. That tick is
    under-reported; the kernel offers no fixed-width wraparound contract
    that would allow recovering the true amount.
    """
    cls = type(current)
    if type(previous) is not cls:
        raise TypeError(f"cannot diff {type(previous).__name__} against {cls.__name__}")

    gauges = getattr(cls, "GAUGES", frozenset())
    values = {}
    for f in fields(cls):
        cur = getattr(current, f.name)
        if f.name in gauges:
            values[f.name] = cur
        else:
            values[f.name] = max(0, cur - getattr(previous, f.name))
    return cls(**values)
