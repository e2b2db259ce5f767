"""Time bounds and batching settings of a query evaluation."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class QueryOptions:
    """Evaluation window and settings, all times in milliseconds.

    A ``step`` of zero denotes an instant query, evaluated as a range query
    with a single step.
    """

    start: int
    end: int
    step: int = 0
    lookback_delta: int = 5 * 60 * 1000
    ext_lookback_delta: int = 60 * 60 * 1000
    steps_batch: int = 10

    def num_steps(self) -> int:
        """Number of steps evaluated together in one batch."""
        if self.step == 0:
            return 1
        total = (self.end - self.start) // self.step + 1
        return min(total, self.steps_batch)