"""Aggregations of a range of samples over time."""

from __future__ import annotations

import heapq
import math
from collections.abc import Sequence

from .samples import Sample


def kahan_sum_inc(inc: float, total: float, c: float) -> tuple[float, float]:
    """Add ``inc`` to ``total`` with Kahan-Neumaier compensation ``c``.

    Returns the new sum and the new compensation term.
    """
    t = total + inc
    if math.isinf(t):
        c = 0.0
    elif abs(total) >= abs(inc):
        c += (total - t) + inc
    else:
        c += (inc - t) + total
    return t, c


def sum_over_time(samples: Sequence[Sample]) -> float:
    """Compensated sum of the float values."""
    total = c = 0.0
    for sample in samples:
        total, c = kahan_sum_inc(sample.v.f, total, c)
    if math.isinf(total):
        return total
    return total + c


def max_over_time(samples: Sequence[Sample]) -> float:
    """Largest float value; a leading NaN is replaced by any later value."""
    result = samples[0].v.f
    for sample in samples:
        if sample.v.f > result or math.isnan(result):
            result = sample.v.f
    return result


def min_over_time(samples: Sequence[Sample]) -> float:
    """Smallest float value; a leading NaN is replaced by any later value."""
    result = samples[0].v.f
    for sample in samples:
        if sample.v.f < result or math.isnan(result):
            result = sample.v.f
    return result


def count_over_time(samples: Sequence[Sample]) -> float:
    """Number of samples, as a float."""
    return float(len(samples))


def avg_over_time(samples: Sequence[Sample]) -> float:
    """Mean of the float values, switching to an incremental mean on overflow."""
    total = mean = count = c = 0.0
    incremental = False
    for sample in samples:
        x = sample.v.f
        count += 1
        if not incremental:
            new_total, new_c = kahan_sum_inc(x, total, c)
            if count == 1 or not math.isinf(new_total):
                total, c = new_total, new_c
                continue
            incremental = True
            mean = total / (count - 1)
            c /= count - 1
        if math.isinf(mean):
            if math.isinf(x) and (mean > 0) == (x > 0):
                continue
            if not math.isinf(x) and not math.isnan(x):
                continue
        corrected = mean + c
        mean, c = kahan_sum_inc(x / count - corrected / count, mean, c)

    if incremental:
        return mean + c
    if count == 0:
        return math.nan
    return (total + c) / count


def _variance(samples: Sequence[Sample]) -> float:
    count = mean = c_mean = aux = c_aux = 0.0
    for sample in samples:
        x = sample.v.f
        count += 1
        delta = x - (mean + c_mean)
        mean, c_mean = kahan_sum_inc(delta / count, mean, c_mean)
        aux, c_aux = kahan_sum_inc(delta * (x - (mean + c_mean)), aux, c_aux)
    if count == 0:
        return math.nan
    return (aux + c_aux) / count


def stdvar_over_time(samples: Sequence[Sample]) -> float:
    """Population variance of the float values."""
    return _variance(samples)


def stddev_over_time(samples: Sequence[Sample]) -> float:
    """Population standard deviation of the float values."""
    return math.sqrt(_variance(samples))


def changes(samples: Sequence[Sample]) -> float:
    """Number of times the value changed between consecutive samples.

    Two NaNs count as equal; a switch between float and histogram counts as a change.
    """
    count = 0
    for prev, cur in zip(samples, samples[1:]):
        prev_h, cur_h = prev.v.h, cur.v.h
        if prev_h is None and cur_h is None:
            both_nan = math.isnan(cur.v.f) and math.isnan(prev.v.f)
            if cur.v.f != prev.v.f and not both_nan:
                count += 1
        elif (prev_h is None) != (cur_h is None):
            count += 1
        elif cur_h != prev_h:
            count += 1
    return float(count)


def resets(samples: Sequence[Sample]) -> float:
    """Number of counter resets, taking floats and histograms in timestamp order."""
    floats = [s for s in samples if s.v.h is None]
    histograms = [s for s in samples if s.v.h is not None]
    ordered = heapq.merge(floats, histograms, key=lambda s: s.t)

    count = 0
    prev: Sample | None = None
    for cur in ordered:
        if prev is not None:
            prev_h, cur_h = prev.v.h, cur.v.h
            if prev_h is None and cur_h is None:
                if cur.v.f < prev.v.f:
                    count += 1
            elif (prev_h is None) != (cur_h is None):
                count += 1
            elif cur_h.detect_reset(prev_h):
                count += 1
        prev = cur
    return float(count)


def linear_regression(
    samples: Sequence[Sample], intercept_time: int
) -> tuple[float, float]:
    """Least-squares slope (per second) and intercept at ``intercept_time``.

    Histogram samples are ignored. A constant series has slope 0, or NaN for
    both results when the constant is infinite.
    """
    n = 0.0
    sum_x = c_x = sum_y = c_y = sum_xy = c_xy = sum_x2 = c_x2 = 0.0
    init_y = samples[0].v.f
    const_y = True
    for i, sample in enumerate(samples):
        if sample.v.h is not None:
            continue
        y = sample.v.f
        if const_y and i > 0 and y != init_y:
            const_y = False
        n += 1.0
        x = (sample.t - intercept_time) / 1e3
        sum_x, c_x = kahan_sum_inc(x, sum_x, c_x)
        sum_y, c_y = kahan_sum_inc(y, sum_y, c_y)
        sum_xy, c_xy = kahan_sum_inc(x * y, sum_xy, c_xy)
        sum_x2, c_x2 = kahan_sum_inc(x * x, sum_x2, c_x2)

    if const_y:
        if math.isinf(init_y):
            return math.nan, math.nan
        return 0.0, init_y

    sum_x += c_x
    sum_y += c_y
    sum_xy += c_xy
    sum_x2 += c_x2

    cov_xy = sum_xy - sum_x * sum_y / n
    var_x = sum_x2 - sum_x * sum_x / n
    slope = cov_xy / var_x if var_x != 0 else math.copysign(math.inf, cov_xy) if cov_xy else math.nan
    intercept = sum_y / n - slope * sum_x / n
    return slope, intercept


def deriv(samples: Sequence[Sample]) -> float:
    """Per-second derivative estimated by linear regression."""
    slope, _ = linear_regression(samples, samples[0].t)
    return slope


def predict_linear(
    samples: Sequence[Sample], duration: float, step_time: int
) -> float:
    """Value predicted ``duration`` seconds after ``step_time``."""
    slope, intercept = linear_regression(samples, step_time)
    return slope * duration + intercept


def _trend_value(i: int, tf: float, s0: float, s1: float, b: float) -> float:
    if i == 0:
        return b
    return tf * (s1 - s0) + (1 - tf) * b


def double_exponential_smoothing(
    samples: Sequence[Sample], sf: float, tf: float
) -> float | None:
    """Holt's double exponential smoothing of the float values.

    Returns None when a factor lies outside (0, 1), when there are fewer than
    two samples, or when any sample is a histogram.
    """
    if sf <= 0 or sf >= 1 or tf <= 0 or tf >= 1:
        return None
    if len(samples) < 2:
        return None
    if any(s.v.h is not None for s in samples):
        return None

    s0 = 0.0
    s1 = samples[0].v.f
    b = samples[1].v.f - samples[0].v.f
    for i, sample in enumerate(samples[1:], start=1):
        x = sf * sample.v.f
        b = _trend_value(i - 1, tf, s0, s1, b)
        y = (1 - sf) * (s1 + b)
        s0, s1 = s1, x + y
    return s1


def filter_float_only_samples(samples: Sequence[Sample]) -> list[Sample]:
    """The float samples of ``samples``, in order."""
    return [s for s in samples if s.v.h is None]