"""A sliding window of samples fed to a range-vector function."""

from __future__ import annotations

from collections.abc import Callable

from .annotations import Annotations
from .range_functions import FunctionArgs, FunctionCall
from .samples import Sample, Value

MIN_TIMESTAMP = -(2**63)
MAX_TIMESTAMP = 2**63 - 1


def _copy_value(value: Value) -> Value:
    return Value(f=value.f, h=None if value.h is None else value.h.copy())


class RingBuffer:
    """Samples of one series within the current range, oldest first."""

    def __init__(
        self,
        select_range: int,
        offset: int,
        call: FunctionCall,
        ext_lookback: int = 0,
    ) -> None:
        self._items: list[Sample] = []
        self._select_range = select_range
        self._offset = offset
        self._ext_lookback = ext_lookback
        self._call = call
        self._current_step = 0

    def __len__(self) -> int:
        return len(self._items)

    def max_t(self) -> int:
        """Timestamp of the newest sample, or MIN_TIMESTAMP when empty."""
        if not self._items:
            return MIN_TIMESTAMP
        return self._items[-1].t

    def read_into_last(self, update: Callable[[Sample], None]) -> None:
        """Let ``update`` overwrite the newest sample in place."""
        update(self._items[-1])

    def push(self, t: int, value: Value) -> None:
        """Append a sample; a histogram value is copied."""
        self._items.append(Sample(t=t, v=_copy_value(value)))

    def reset(self, mint: int, evalt: int) -> None:
        """Move to evaluation time ``evalt``, dropping samples at or before ``mint``.

        With an extended lookback, the newest dropped sample is kept when it
        lies within the lookback of ``mint``.
        """
        self._current_step = evalt
        if not self._items or self._items[-1].t < mint:
            self._items.clear()
            return
        drop = next(
            (i for i, s in enumerate(self._items) if s.t > mint), len(self._items)
        )
        if (
            self._ext_lookback > 0
            and drop > 0
            and self._items[drop - 1].t >= mint - self._ext_lookback
        ):
            drop -= 1
        del self._items[:drop]

    def eval(
        self,
        scalar_arg: float = 0.0,
        scalar_arg2: float = 0.0,
        metric_appeared_ts: int | None = None,
        annotations: Annotations | None = None,
    ) -> Value | None:
        """Apply the function to the buffered samples; None when it yields nothing."""
        return self._call(
            FunctionArgs(
                samples=list(self._items),
                step_time=self._current_step,
                select_range=self._select_range,
                offset=self._offset,
                metric_appeared_ts=metric_appeared_ts,
                scalar_point=scalar_arg,
                scalar_point2=scalar_arg2,
                annotations=annotations,
            )
        )