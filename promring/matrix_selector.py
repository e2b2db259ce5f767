"""An operator that applies a range-vector function to each selected series."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Union

from .annotations import Annotation, Annotations
from .labels import METRIC_NAME, drop_metric_name
from .model import StepVector
from .options import QueryOptions
from .range_functions import new_range_vector_func
from .rate_buffer import RateBuffer
from .ring_buffer import MIN_TIMESTAMP, RingBuffer
from .samples import Sample, Value
from .vector_selector import Selector, is_stale_nan, is_stale_sample

EXT_FUNCTIONS = frozenset({"xrate", "xincrease", "xdelta"})
_COUNTER_SUFFIXES = ("_total", "_sum", "_count", "_bucket")

Buffer = Union[RingBuffer, RateBuffer]


class NativeHistogramsNotSupportedError(ValueError):
    """Raised when an extended range function meets a native histogram."""

    def __init__(self) -> None:
        super().__init__("native histograms are not supported in extended range functions")


def possible_non_counter_info(metric_name: str) -> Annotation:
    """The info raised when rate or increase is applied to a non-counter name."""
    return Annotation(
        "PromQL info: metric might not be a counter, name does not end in "
        f'_total/_sum/_count/_bucket: "{metric_name}"',
        info=True,
    )


def _format_duration(ms: int) -> str:
    if ms == 0:
        return "0s"
    sign = "-" if ms < 0 else ""
    ms = abs(ms)
    if ms < 1000:
        return f"{sign}{ms}ms"
    hours, rest = divmod(ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    seconds, millis = divmod(rest, 1000)
    text = f"{hours}h" if hours else ""
    if hours or minutes:
        text += f"{minutes}m"
    fraction = f".{millis:03d}".rstrip("0") if millis else ""
    return f"{sign}{text}{seconds}{fraction}s"


@dataclass
class _MatrixScanner:
    labels: dict[str, str]
    signature: int
    buffer: Buffer
    samples: Iterator[Sample]
    last_sample: Sample = field(default_factory=lambda: Sample(t=MIN_TIMESTAMP))
    metric_appeared_ts: int | None = None

    def select_points(self, mint: int, maxt: int, evalt: int, is_ext_function: bool) -> None:
        """Bring the buffer to the range ``(mint, maxt]`` evaluated at ``evalt``."""
        self.buffer.reset(mint, evalt)
        if self.last_sample.t > maxt:
            return

        mint = max(mint, self.buffer.max_t() + 1)
        if self.last_sample.t > mint:
            self.buffer.push(self.last_sample.t, self.last_sample.v)
            self.last_sample = Sample(t=MIN_TIMESTAMP)
            mint = max(mint, self.buffer.max_t() + 1)

        appended_before_mint = len(self.buffer) > 0
        for sample in self.samples:
            t = sample.t
            if sample.v.h is not None:
                if is_ext_function:
                    raise NativeHistogramsNotSupportedError()
                if is_stale_sample(sample) or t < mint:
                    continue
                if t > maxt:
                    self.last_sample = Sample(t=t, v=Value(h=sample.v.h.copy()))
                    return
                if t > mint:
                    self.buffer.push(t, Value(h=sample.v.h))
                continue

            f = sample.v.f
            if is_stale_nan(f):
                continue
            if self.metric_appeared_ts is None:
                self.metric_appeared_ts = t
            if t > maxt:
                self.last_sample = Sample(t=t, v=Value(f=f))
                return
            if is_ext_function:
                if t > mint or not appended_before_mint:
                    self.buffer.push(t, Value(f=f))
                    appended_before_mint = True
                else:
                    self.buffer.read_into_last(_overwriter(t, f))
            elif t > mint:
                self.buffer.push(t, Value(f=f))


def _overwriter(t: int, f: float):
    def overwrite(sample: Sample) -> None:
        sample.t = t
        sample.v = Value(f=f)

    return overwrite


class MatrixSelector:
    """Evaluates a range-vector function over each series at every step.

    Warnings and infos raised while evaluating are collected in ``annotations``.
    """

    def __init__(
        self,
        selector: Selector,
        function_name: str,
        arg: float,
        arg2: float,
        options: QueryOptions,
        select_range: int,
        offset: int = 0,
        batch_size: int = 0,
        shard: int = 0,
        num_shards: int = 1,
    ) -> None:
        self._call = new_range_vector_func(function_name)
        self._selector = selector
        self._function_name = function_name
        self._arg = arg
        self._arg2 = arg2
        self._options = options

        self._num_steps = options.num_steps()
        self._mint = options.start
        self._maxt = options.end
        # An instant query still has to advance past its single step.
        self._step = options.step or 1
        self._is_ext_function = function_name in EXT_FUNCTIONS
        self._select_range = select_range
        self._offset = offset
        self._current_step = options.start
        self._current_series = 0
        self._batch_size = batch_size
        self._shard = shard
        self._num_shards = num_shards

        self._loaded = False
        self._scanners: list[_MatrixScanner] = []
        self._series: list[dict[str, str]] = []
        self._non_counter_metric = ""
        self._has_floats = False
        self.annotations = Annotations()

    def __str__(self) -> str:
        matchers = " ".join(str(m) for m in self._selector.matchers)
        duration = _format_duration(self._select_range)
        return (
            f"[matrixSelector] {self._function_name}({{[{matchers}]}}[{duration}] "
            f"{self._shard} mod {self._num_shards})"
        )

    def series(self) -> list[dict[str, str]]:
        """Labels of the series this operator returns, indexed by series id."""
        self._load()
        return [dict(labels) for labels in self._series]

    def next(self) -> list[StepVector] | None:
        """The next batch of step vectors, or None once every step is done."""
        if self._current_step > self._maxt:
            if self._non_counter_metric and self._has_floats:
                self.annotations.add(possible_non_counter_info(self._non_counter_metric))
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
                maxt = series_ts - self._offset
                mint = maxt - self._select_range
                scanner.select_points(mint, maxt, series_ts, self._is_ext_function)
                value = scanner.buffer.eval(
                    self._arg, self._arg2, scanner.metric_appeared_ts, self.annotations
                )
                if value is not None:
                    vector.t = series_ts
                    if value.h is not None:
                        vector.append_histogram(scanner.signature, value.h)
                    else:
                        vector.append_sample(scanner.signature, value.f)
                        self._has_floats = True
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
        for warning in getattr(self._selector, "warnings", ()):
            self.annotations.add(warning)

        for signed in selected:
            labels = dict(signed.labels)
            if self._function_name != "last_over_time":
                labels = drop_metric_name(labels)
            self._scanners.append(
                _MatrixScanner(
                    labels=labels,
                    signature=signed.signature,
                    buffer=self._new_buffer(),
                    samples=iter(signed.samples),
                )
            )
            self._series.append(labels)

        if self._batch_size == 0 or len(self._series) < self._batch_size:
            self._batch_size = len(self._series)

        if self._function_name in ("rate", "increase") and selected:
            name = selected[0].labels.get(METRIC_NAME, "")
            if name and not name.endswith(_COUNTER_SUFFIXES):
                self._non_counter_metric = name

    def _new_buffer(self) -> Buffer:
        rate_kinds = {"rate": (True, True), "increase": (True, False), "delta": (False, False)}
        if self._function_name in rate_kinds:
            is_counter, is_rate = rate_kinds[self._function_name]
            return RateBuffer(
                self._options, is_counter, is_rate, self._select_range, self._offset
            )
        if self._is_ext_function:
            return RingBuffer(
                self._select_range,
                self._offset,
                self._call,
                ext_lookback=self._options.ext_lookback_delta - 1,
            )
        return RingBuffer(self._select_range, self._offset, self._call)