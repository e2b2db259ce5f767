"""Range-vector functions such as rate, increase and the *_over_time family."""

from __future__ import annotations

import enum
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Optional, Protocol

from . import annotations as notes
from . import over_time
from .annotations import Annotation, Annotations
from .samples import Sample, Value


class CounterResetHint(enum.Enum):
    """How a native histogram relates to the one before it."""

    UNKNOWN = 0
    COUNTER_RESET = 1
    NOT_COUNTER_RESET = 2
    GAUGE = 3


class HistogramIncompatibleSchemaError(ValueError):
    """Raised by histograms combined across exponential and custom schemas."""


class HistogramIncompatibleBoundsError(ValueError):
    """Raised by custom-bucket histograms whose bounds do not line up."""


class Histogram(Protocol):
    """What the rate functions need from a native float histogram.

    ``add``, ``sub``, ``mul`` and ``div`` change the histogram in place and
    return it; ``add`` and ``sub`` may raise the incompatibility errors above.
    """

    schema: int
    counter_reset_hint: CounterResetHint

    def copy(self) -> Histogram: ...

    def copy_to_schema(self, schema: int) -> Histogram: ...

    def uses_custom_buckets(self) -> bool: ...

    def add(self, other: Histogram) -> Histogram: ...

    def sub(self, other: Histogram) -> Histogram: ...

    def mul(self, factor: float) -> Histogram: ...

    def div(self, factor: float) -> Histogram: ...

    def detect_reset(self, previous: Histogram) -> bool: ...

    def compact(self, max_empty_buckets: int) -> Histogram: ...


class UnknownFunctionError(ValueError):
    """Raised when a range-vector function name is not known."""

    def __init__(self, name: str) -> None:
        super().__init__(f"unknown function: {name}")
        self.name = name


@dataclass
class FunctionArgs:
    """Everything a range-vector function sees for one evaluation step."""

    samples: Sequence[Sample]
    step_time: int = 0
    select_range: int = 0
    offset: int = 0
    metric_appeared_ts: Optional[int] = None
    scalar_point: float = 0.0
    scalar_point2: float = 0.0
    annotations: Optional[Annotations] = None


FunctionCall = Callable[[FunctionArgs], Optional[Value]]


def _warn(annotations: Annotations | None, annotation: Annotation) -> None:
    if annotations is not None:
        annotations.add(annotation)


def _fdiv(a: float, b: float) -> float:
    """IEEE-754 division: division by zero yields an infinity or NaN."""
    try:
        return a / b
    except ZeroDivisionError:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)


def _trunc_div(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


def _quantile(q: float, values: list[float]) -> float:
    if not values or math.isnan(q):
        return math.nan
    if q < 0:
        return -math.inf
    if q > 1:
        return math.inf
    ordered = sorted(values)
    n = len(ordered)
    rank = q * (n - 1)
    lower = max(0, math.floor(rank))
    upper = min(n - 1, lower + 1)
    weight = rank - math.floor(rank)
    return ordered[lower] * (1 - weight) + ordered[upper] * weight


def instant_value(samples: Sequence[Sample], is_rate: bool) -> float | None:
    """Difference (or per-second rate) between the last two samples.

    Returns None when both samples share a timestamp.
    """
    last, previous = samples[-1], samples[-2]
    if is_rate and last.v.f < previous.v.f:
        result = last.v.f
    else:
        result = last.v.f - previous.v.f

    interval = last.t - previous.t
    if interval == 0:
        return None
    if is_rate:
        result /= interval / 1000
    return result


def histogram_rate(
    points: Sequence[Sample], is_counter: bool, annotations: Annotations | None
) -> Histogram | None:
    """Increase between the first and last histogram, adjusted for resets.

    Returns None, with an annotation, when the range mixes floats and
    histograms or exponential and custom bucket schemas.
    """
    if len(points) < 2:
        return None

    prev = points[0].v.h
    custom = prev.uses_custom_buckets()
    last = points[-1].v.h
    if last is None:
        _warn(annotations, notes.MIXED_FLOATS_HISTOGRAMS)
        return None
    min_schema = min(prev.schema, last.schema)

    if last.uses_custom_buckets() != custom:
        _warn(annotations, notes.MIXED_EXPONENTIAL_CUSTOM_HISTOGRAMS)
        return None

    gauge = CounterResetHint.GAUGE
    if is_counter and (prev.counter_reset_hint == gauge or last.counter_reset_hint == gauge):
        _warn(annotations, notes.NATIVE_HISTOGRAM_NOT_COUNTER)

    for point in points[1:-1]:
        curr = point.v.h
        if curr is None:
            _warn(annotations, notes.MIXED_FLOATS_HISTOGRAMS)
            return None
        if not is_counter:
            continue
        if curr.counter_reset_hint == gauge:
            _warn(annotations, notes.NATIVE_HISTOGRAM_NOT_COUNTER)
        min_schema = min(min_schema, curr.schema)
        if curr.uses_custom_buckets() != custom:
            _warn(annotations, notes.MIXED_EXPONENTIAL_CUSTOM_HISTOGRAMS)
            return None

    result = last.copy_to_schema(min_schema)
    try:
        result.sub(prev)
        if is_counter:
            for point in points[1:]:
                curr = point.v.h
                if curr.detect_reset(prev):
                    result.add(prev)
                prev = curr
    except HistogramIncompatibleSchemaError:
        _warn(annotations, notes.MIXED_EXPONENTIAL_CUSTOM_HISTOGRAMS)
        raise
    except HistogramIncompatibleBoundsError:
        _warn(annotations, notes.INCOMPATIBLE_CUSTOM_BUCKETS_HISTOGRAMS)
        raise

    if not is_counter and (
        points[0].v.h.counter_reset_hint != gauge
        or points[-1].v.h.counter_reset_hint != gauge
    ):
        _warn(annotations, notes.NATIVE_HISTOGRAM_NOT_GAUGE)

    result.counter_reset_hint = gauge
    return result.compact(0)


def extrapolated_rate(
    samples: Sequence[Sample],
    num_samples: int,
    is_counter: bool,
    is_rate: bool,
    step_time: int,
    select_range: int,
    offset: int,
    annotations: Annotations | None,
) -> Value | None:
    """Rate, increase or delta over the range, extrapolated to its boundaries.

    Counter resets are accounted for when ``is_counter`` is true; the result
    is per second when ``is_rate`` is true.
    """
    range_start = step_time - (select_range + offset)
    range_end = step_time - offset
    first, last = samples[0], samples[-1]
    result_value = 0.0
    result_histogram = None

    if first.v.h is not None:
        result_histogram = histogram_rate(samples, is_counter, annotations)
    else:
        result_value = last.v.f - first.v.f
        if is_counter:
            last_value = 0.0
            for sample in samples:
                if sample.v.f < last_value:
                    result_value += last_value
                last_value = sample.v.f

    duration_to_start = (first.t - range_start) / 1000
    duration_to_end = (range_end - last.t) / 1000
    sampled_interval = (last.t - first.t) / 1000
    average_between = _fdiv(sampled_interval, float(num_samples - 1))

    threshold = average_between * 1.1
    extrapolate_to = sampled_interval

    if duration_to_start >= threshold:
        duration_to_start = average_between / 2
    if is_counter and result_value > 0 and first.v.f >= 0:
        duration_to_zero = sampled_interval * (first.v.f / result_value)
        if duration_to_zero < duration_to_start:
            duration_to_start = duration_to_zero
    extrapolate_to += duration_to_start

    if duration_to_end >= threshold:
        duration_to_end = average_between / 2
    extrapolate_to += duration_to_end

    factor = _fdiv(extrapolate_to, sampled_interval)
    if is_rate:
        factor = _fdiv(factor, select_range / 1000)

    if result_histogram is None:
        if first.v.h is not None:
            return None
        return Value(f=result_value * factor)
    result_histogram.mul(factor)
    return Value(f=result_value, h=result_histogram)


def extended_rate(
    samples: Sequence[Sample],
    is_counter: bool,
    is_rate: bool,
    step_time: int,
    select_range: int,
    offset: int,
    metric_appeared_ts: int,
    annotations: Annotations | None,
) -> Value:
    """Rate, increase or delta for the x-functions, using the sample before the range."""
    range_start = step_time - (select_range + offset)
    range_end = step_time - offset

    if samples[0].v.h is not None:
        return Value(h=histogram_rate(samples, is_counter, annotations))

    same_values = all(a.v.f == b.v.f for a, b in zip(samples, samples[1:]))
    is_increase = is_counter and not is_rate

    until = select_range + metric_appeared_ts
    if is_increase and same_values and step_time - offset <= until:
        return Value(f=samples[0].v.f)

    sampled_interval = float(samples[-1].t - samples[0].t)
    average_between = _fdiv(sampled_interval, float(len(samples) - 1))

    first_point = 0
    if not is_increase and float(range_start - samples[0].t) > average_between:
        if len(samples) < 3:
            return Value(f=0.0)
        first_point = 1
        sampled_interval = float(samples[-1].t - samples[1].t)
        average_between = _fdiv(sampled_interval, float(len(samples) - 2))

    correction = 0.0
    if is_counter:
        last_value = 0.0
        for sample in samples[first_point:]:
            if sample.v.f < last_value:
                correction += last_value
            last_value = sample.v.f
    result = samples[-1].v.f - samples[first_point].v.f + correction

    duration_to_end = float(range_end - samples[-1].t)
    if (
        not is_increase
        and samples[first_point].t <= range_start
        and duration_to_end < average_between
    ):
        adjust_to_range = float(_trunc_div(select_range, 1000))
        result *= _fdiv(adjust_to_range, sampled_interval / 1000)

    if is_rate:
        result = _fdiv(result, float(_trunc_div(select_range, 1000)))
    return Value(f=result)


def _sum_over_time(args: FunctionArgs) -> Value | None:
    samples = args.samples
    if not samples:
        return None
    if samples[0].v.h is not None:
        total = samples[0].v.h.copy()
        for sample in samples[1:]:
            total.add(sample.v.h)
        return Value(h=total)
    return Value(f=over_time.sum_over_time(samples))


def _avg_over_time(args: FunctionArgs) -> Value | None:
    samples = args.samples
    if not samples:
        return None
    if samples[0].v.h is not None:
        mean = samples[0].v.h.copy()
        for count, sample in enumerate(samples[1:], start=2):
            left = sample.v.h.copy().div(float(count))
            right = mean.copy().div(float(count))
            mean.add(left.sub(right))
        return Value(h=mean)
    return Value(f=over_time.avg_over_time(samples))


def _float_aggregate(func: Callable[[Sequence[Sample]], float]) -> FunctionCall:
    def call(args: FunctionArgs) -> Value | None:
        if not args.samples:
            return None
        return Value(f=func(args.samples))

    return call


def _last_over_time(args: FunctionArgs) -> Value | None:
    samples = args.samples
    if not samples:
        return None
    last = samples[-1].v
    if samples[0].v.h is not None and last.h is not None:
        return Value(h=last.h.copy())
    return Value(f=last.f)


def _present_over_time(args: FunctionArgs) -> Value | None:
    return Value(f=1.0) if args.samples else None


def _quantile_over_time(args: FunctionArgs) -> Value | None:
    if not args.samples:
        return None
    return Value(f=_quantile(args.scalar_point, [s.v.f for s in args.samples]))


def _deriv(args: FunctionArgs) -> Value | None:
    samples = args.samples
    if len(samples) < 2 or samples[0].v.h is not None:
        return None
    return Value(f=over_time.deriv(samples))


def _instant(is_rate: bool) -> FunctionCall:
    def call(args: FunctionArgs) -> Value | None:
        samples = over_time.filter_float_only_samples(args.samples)
        if len(samples) < 2:
            return None
        result = instant_value(samples, is_rate)
        return None if result is None else Value(f=result)

    return call


def _extrapolated(is_counter: bool, is_rate: bool) -> FunctionCall:
    def call(args: FunctionArgs) -> Value | None:
        if len(args.samples) < 2:
            return None
        return extrapolated_rate(
            args.samples,
            len(args.samples),
            is_counter,
            is_rate,
            args.step_time,
            args.select_range,
            args.offset,
            args.annotations,
        )

    return call


def _extended(is_counter: bool, is_rate: bool) -> FunctionCall:
    def call(args: FunctionArgs) -> Value | None:
        if not args.samples:
            return None
        if args.metric_appeared_ts is None:
            raise ValueError("samples present but the metric has not appeared yet")
        return extended_rate(
            args.samples,
            is_counter,
            is_rate,
            args.step_time,
            args.select_range,
            args.offset,
            args.metric_appeared_ts,
            args.annotations,
        )

    return call


def _predict_linear(args: FunctionArgs) -> Value | None:
    if len(args.samples) < 2:
        return None
    return Value(
        f=over_time.predict_linear(args.samples, args.scalar_point, args.step_time)
    )


def _double_exponential_smoothing(args: FunctionArgs) -> Value | None:
    samples = args.samples
    if any(s.v.h is not None for s in samples):
        _warn(args.annotations, notes.MIXED_FLOATS_HISTOGRAMS)
        return None
    if len(samples) < 2:
        return None
    result = over_time.double_exponential_smoothing(
        samples, args.scalar_point, args.scalar_point2
    )
    return None if result is None else Value(f=result)


_FUNCTIONS: dict[str, FunctionCall] = {
    "sum_over_time": _sum_over_time,
    "max_over_time": _float_aggregate(over_time.max_over_time),
    "min_over_time": _float_aggregate(over_time.min_over_time),
    "avg_over_time": _avg_over_time,
    "stddev_over_time": _float_aggregate(over_time.stddev_over_time),
    "stdvar_over_time": _float_aggregate(over_time.stdvar_over_time),
    "count_over_time": _float_aggregate(over_time.count_over_time),
    "last_over_time": _last_over_time,
    "present_over_time": _present_over_time,
    "quantile_over_time": _quantile_over_time,
    "changes": _float_aggregate(over_time.changes),
    "resets": _float_aggregate(over_time.resets),
    "deriv": _deriv,
    "irate": _instant(True),
    "idelta": _instant(False),
    "rate": _extrapolated(True, True),
    "delta": _extrapolated(False, False),
    "increase": _extrapolated(True, False),
    "xrate": _extended(True, True),
    "xdelta": _extended(False, False),
    "xincrease": _extended(True, False),
    "predict_linear": _predict_linear,
    "double_exponential_smoothing": _double_exponential_smoothing,
}


def new_range_vector_func(name: str) -> FunctionCall:
    """The range-vector function called ``name``."""
    try:
        return _FUNCTIONS[name]
    except KeyError:
        raise UnknownFunctionError(name) from None


def function_names() -> list[str]:
    """Names of all known range-vector functions, sorted."""
    return sorted(_FUNCTIONS)