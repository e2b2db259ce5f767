"""Timestamped samples that carry either a float or a native histogram."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Value:
    """A sample value: a float ``f`` or, when ``h`` is set, a native histogram.

    Histogram objects are opaque here. The functions that look at them
    compare them with ``==`` and ask ``h.detect_reset(previous)`` whether a
    counter reset happened between two of them.
    """

    f: float = 0.0
    h: Any = None


@dataclass
class Sample:
    """A value observed at timestamp ``t`` in milliseconds."""

    t: int
    v: Value = field(default_factory=Value)