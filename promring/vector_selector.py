"""An operator that picks, for every step, the latest sample of each series."""

from __future__ import annotations

import math
import struct
from collections.abc import Iterable, Sequence
from typing import Protocol

from .labels import METRIC_NAME, Matcher
from .model import StepVector
from .options import QueryOptions
from .ring_buffer import MIN_TIMESTAMP
from .samples import Sample
from .selectors import SignedSeries

_STALE_NAN_BITS = 0x7FF0000000000002
STALE_NAN: float = struct.unpack("<d", struct.pack("<Q", _STALE_NAN_BITS))[0]


def is_stale_nan(value: float) -> bool:
    """Whether ``value`` is the marker NaN that ends a series."""
    if not math.isnan(value):
        return False
    return struct.unpack("<Q", struct.pack("<d", value))[0] == _STALE_NAN_BITS


def is_stale_sample(sample: Sample) -> bool:
    """Whether ``sample`` holds a staleness marker, as float or histogram sum."""
    if sample.v.h is not None:
        return is_stale_nan(getattr(sample.v.h, "sum", 0.0))
    return is_stale_nan(sample.v.f)


class Selector(Protocol):
    """Anything that hands out shards of selected series."""

    @property
    def matchers(self) -> list[Matcher]: ...

    def get_series(self, shard: int, num_shards: int) -> list[SignedSeries]: ...


class MemoizedIterator:
    """Iterates samples forward by seeking, remembering the sample before the current one.

    The remembered sample is forgotten when a seek jumps further ahead than
    ``lookback_delta``.
    """

    def __init__(self, samples: Iterable[Sample], lookback_delta: int) -> None:
        self._samples: list[Sample] = list(samples)
        self._delta = lookback_delta
        self._pos = 0
        self._last_time = MIN_TIMESTAMP
        self._prev: Sample | None = None

    def _exhausted(self) -> bool:
        return self._pos >= len(self._samples)

    def seek(self, t: int) -> Sample | None:
        """Advance to the first sample at or after ``t``; None when there is none."""
        t0 = t - self._delta
        if not self._exhausted() and t0 > self._last_time:
            self._prev = None
            while not self._exhausted() and self._samples[self._pos].t < t0:
                self._pos += 1
            if self._exhausted():
                return None
            self._last_time = self._samples[self._pos].t
        if not self._exhausted() and self._last_time >= t:
            return self._samples[self._pos]
        while not self._exhausted():
            self._prev = self._samples[self._pos]
            self._pos += 1
            if self._exhausted():
                break
            self._last_time = self._samples[self._pos].t
            if self._last_time >= t:
                return self._samples[self._pos]
        return None

    def peek_prev(self) -> Sample | None:
        """The sample before the current position, if it is remembered."""
        return self._prev


def select_point(
    iterator: MemoizedIterator, ts: int, lookback_delta: int, offset: int
) -> Sample | None:
    """The newest sample at or before ``ts - offset`` within the lookback window.

    Returns None when there is no such sample or when it is a staleness marker.
    """
    ref_time = ts - offset
    sample = iterator.seek(ref_time)
    if sample is None or sample.t > ref_time:
        sample = iterator.peek_prev()
        if sample is None or sample.t <= ref_time - lookback_delta:
            return None
    if is_stale_sample(sample):
        return None
    return sample


class _VectorScanner:
    __slots__ = ("labels", "signature", "samples")

    def __init__(self, labels: dict[str, str], signature: int, samples: MemoizedIterator):
        self.labels = labels
        self.signature = signature
        self.samples = samples


class VectorSelector:
    """Produces step vectors holding the instant value of each selected series."""

    def __init__(
        self,
        selector: Selector,
        options: QueryOptions,
        offset: int = 0,
        batch_size: int = 0,
        select_timestamp: bool = False,
        shard: int = 0,
        num_shards: int = 1,
    ) -> None:
        self._selector = selector
        self._mint = options.start
        self._maxt = options.end
        # An instant query still has to advance past its single step.
        self._step = options.step or 1
        self._current_step = options.start
        self._lookback_delta = options.lookback_delta
        self._offset = offset
        self._num_steps = options.num_steps()
        self._batch_size = batch_size
        self._shard = shard
        self._num_shards = num_shards
        self._select_timestamp = select_timestamp

        self._loaded = False
        self._scanners: list[_VectorScanner] = []
        self._series: list[dict[str, str]] = []
        self._current_series = 0

    def __str__(self) -> str:
        matchers = " ".join(str(m) for m in self._selector.matchers)
        return f"[vectorSelector] {{[{matchers}]}} {self._shard} mod {self._num_shards}"

    def series(self) -> list[dict[str, str]]:
        """Labels of the series this operator returns, indexed by series id."""
        self._load()
        return [dict(labels) for labels in self._series]

    def next(self) -> list[StepVector] | None:
        """The next batch of step vectors, or None once every step is done."""
        if self._current_step > self._maxt:
            return None
        self._load()

        vectors: list[StepVector] = []
        ts = self._current_step
        for _ in range(self._num_steps):
            if ts > self._maxt:
                break
            vectors.append(StepVector(t=ts))
            ts += self._step

        first = self._current_series
        end = min(first + self._batch_size, len(self._scanners))
        for scanner in self._scanners[first:end]:
            series_ts = self._current_step
            for vector in vectors:
                sample = select_point(
                    scanner.samples, series_ts, self._lookback_delta, self._offset
                )
                if sample is not None:
                    if self._select_timestamp:
                        vector.append_sample(scanner.signature, sample.t / 1000)
                    elif sample.v.h is not None:
                        vector.append_histogram(scanner.signature, sample.v.h)
                    else:
                        vector.append_sample(scanner.signature, sample.v.f)
                series_ts += self._step
        self._current_series = end

        if self._current_series == len(self._scanners):
            self._current_step += self._step * self._num_steps
            self._current_series = 0
        return vectors

    def _load(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        selected = self._selector.get_series(self._shard, self._num_shards)
        for signed in selected:
            self._scanners.append(
                _VectorScanner(
                    signed.labels,
                    signed.signature,
                    MemoizedIterator(signed.samples, self._lookback_delta),
                )
            )
            labels = dict(signed.labels)
            if self._select_timestamp:
                labels.pop(METRIC_NAME, None)
            self._series.append(labels)

        if self._batch_size == 0 or len(self._series) < self._batch_size:
            self._batch_size = len(self._series)


def _selected_labels(series: Sequence[SignedSeries]) -> list[dict[str, str]]:
    return [dict(s.labels) for s in series]