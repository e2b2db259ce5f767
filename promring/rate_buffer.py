"""Streaming computation of rate, increase and delta across steps."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from .annotations import Annotations
from .options import QueryOptions
from .range_functions import extrapolated_rate
from .ring_buffer import MAX_TIMESTAMP, MIN_TIMESTAMP
from .samples import Sample, Value


def _copy_value(value: Value) -> Value:
    return Value(f=value.f, h=None if value.h is None else value.h.copy())


def _trunc_div(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


def query_steps(options: QueryOptions) -> int:
    """Total number of steps in the query; an instant query has one."""
    if options.step == 0:
        return 1
    return _trunc_div(options.end - options.start, options.step) + 1


@dataclass
class _StepRange:
    mint: int
    maxt: int
    num_samples: int = 0


class RateBuffer:
    """Keeps only the first sample, counter resets and last sample of each step.

    The value for a step is computed from those few samples, which gives the
    same result as evaluating the rate over every sample in the range.
    """

    def __init__(
        self,
        options: QueryOptions,
        is_counter: bool,
        is_rate: bool,
        select_range: int,
        offset: int,
    ) -> None:
        step = max(1, options.step)
        num_steps = min(_trunc_div(select_range - 1, step) + 1, query_steps(options))

        self._step_ranges: list[_StepRange] = []
        self._first_samples: list[Sample] = []
        current = options.start
        for _ in range(num_steps):
            maxt = current - offset
            self._step_ranges.append(_StepRange(mint=maxt - select_range, maxt=maxt))
            self._first_samples.append(Sample(t=MAX_TIMESTAMP))
            current += step

        self._resets: list[Sample] = []
        self._last = Sample(t=MIN_TIMESTAMP)
        self._current_mint = MAX_TIMESTAMP
        self._select_range = select_range
        self._step = step
        self._offset = offset
        self._is_counter = is_counter
        self._is_rate = is_rate
        self._eval_ts = 0

    def __len__(self) -> int:
        return self._step_ranges[0].num_samples

    def max_t(self) -> int:
        """Timestamp of the newest pushed sample, or MIN_TIMESTAMP."""
        return self._last.t

    def push(self, t: int, value: Value) -> None:
        """Record a sample, noting counter resets and first samples per step."""
        last = self._last
        if last.t >= self._current_mint and value.h is not None and last.v.h is not None:
            if value.h.detect_reset(last.v.h):
                self._resets.append(Sample(t=last.t, v=Value(h=last.v.h.copy())))
                self._resets.append(Sample(t=t, v=Value(h=value.h.copy())))
        elif last.t >= self._current_mint and last.v.f > value.f:
            self._resets.append(Sample(t=last.t, v=Value(f=last.v.f)))
            self._resets.append(Sample(t=t, v=Value(f=value.f)))

        self._last = Sample(t=t, v=_copy_value(value))

        for i, step_range in enumerate(self._step_ranges):
            if not step_range.mint < t <= step_range.maxt:
                break
            step_range.num_samples += 1
            if t < self._first_samples[i].t:
                self._first_samples[i] = Sample(t=t, v=_copy_value(value))

    def reset(self, mint: int, evalt: int) -> None:
        """Advance to the step evaluated at ``evalt`` whose range starts after ``mint``."""
        self._current_mint, self._eval_ts = mint, evalt
        if self._step_ranges[0].mint == mint:
            return
        keep_from = next(
            (i for i, s in enumerate(self._resets) if s.t > mint), len(self._resets)
        )
        del self._resets[:keep_from]

        newest = self._step_ranges[-1]
        self._step_ranges.pop(0)
        self._step_ranges.append(
            _StepRange(mint=newest.mint + self._step, maxt=newest.maxt + self._step)
        )
        self._first_samples.pop(0)
        self._first_samples.append(Sample(t=MAX_TIMESTAMP))

    def eval(
        self,
        scalar_arg: float = 0.0,
        scalar_arg2: float = 0.0,
        metric_appeared_ts: int | None = None,
        annotations: Annotations | None = None,
    ) -> Value | None:
        """The rate for the current step, or None with fewer than two samples."""
        first = self._first_samples[0]
        if first.t == MAX_TIMESTAMP or first.t == self._last.t:
            return None

        samples: list[Sample] = []
        for sample in [first, *self._resets, self._last]:
            if samples and samples[-1].t == sample.t:
                continue
            samples.append(sample)
        return extrapolated_rate(
            samples,
            self._step_ranges[0].num_samples,
            self._is_counter,
            self._is_rate,
            self._eval_ts,
            self._select_range,
            self._offset,
            annotations,
        )

    def read_into_last(self, update: Callable[[Sample], None]) -> None:
        """Does nothing: the rate buffer never rewrites its last sample."""