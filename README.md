# promring

`promring` evaluates PromQL-style range-vector functions over time series
samples. It covers `sum_over_time`, `avg_over_time`, `min_over_time`,
`max_over_time`, `count_over_time`, `stddev_over_time`, `stdvar_over_time`,
`last_over_time`, `present_over_time`, `quantile_over_time`, `changes`,
`resets`, `deriv`, `irate`, `idelta`, `rate`, `increase`, `delta`, the
extended `xrate`/`xincrease`/`xdelta` variants, `predict_linear` and
`double_exponential_smoothing`. It also provides the selector layer that
feeds these functions from a source of series you supply.

All timestamps and durations are integers in milliseconds.

## Installation

```
pip install promring
```

## Building blocks

- `promring.samples`: `Sample` (a timestamp `t` and a `Value`) and `Value`
  (a float `f`, or a native histogram `h`).
- `promring.over_time`: plain aggregation helpers over a sequence of
  samples, such as `sum_over_time`, `avg_over_time`, `stddev_over_time`,
  `changes`, `resets`, `linear_regression`, `deriv`, `predict_linear`,
  `double_exponential_smoothing` and the compensated adder `kahan_sum_inc`.
- `promring.range_functions`: `new_range_vector_func(name)` returns the
  range function called `name`, or raises `UnknownFunctionError`;
  `function_names()` lists every supported name. A function takes a
  `FunctionArgs` and returns a `Value`, or `None` when it yields nothing for
  that step. `extrapolated_rate`, `extended_rate`, `histogram_rate` and
  `instant_value` are available directly.
- `promring.annotations`: `Annotation` and `Annotations`, an ordered set of
  warnings and infos raised during evaluation.
- `promring.options.QueryOptions`: start, end, step, lookback deltas and the
  number of steps evaluated per batch. A step of zero means an instant query.
- `promring.ring_buffer.RingBuffer` and `promring.rate_buffer.RateBuffer`:
  sliding windows over the samples of one series as evaluation steps move
  forward. `RateBuffer` computes `rate`, `increase` and `delta`
  incrementally from the first sample, counter resets and last sample of
  each step.
- `promring.labels`: `Matcher` with `MatchType.EQUAL`, `NOT_EQUAL`,
  `REGEXP` and `NOT_REGEXP` (regular expressions are anchored at both ends),
  and `drop_metric_name`.
- `promring.filter`: `Filter`, `NopFilter` and `new_filter`, which keep a
  series only when every matcher accepts its labels.
- `promring.model`: `Series` (labels and samples) and `StepVector`, the
  values of several series at one timestamp.
- `promring.selectors`: `SeriesSelector` selects series from a querier once
  and hands out shards of them (`series_shard`); `FilteredSelector` narrows
  another selector with a filter; `SelectorPool` shares one selector between
  requests with identical matchers, time bounds and `SelectHints`.
- `promring.matrix_selector.MatrixSelector` and
  `promring.vector_selector.VectorSelector`: operators whose `next()`
  returns a batch of `StepVector`s, or `None` once every step is done.
  `VectorSelector` picks the latest sample within the lookback window
  (`select_point`, `MemoizedIterator`) and skips staleness markers.

## Examples

Aggregating samples directly:

```python
from promring.samples import Sample, Value
from promring.over_time import sum_over_time, avg_over_time

samples = [Sample(t=1000 * i, v=Value(f=float(i))) for i in range(1, 5)]
print(sum_over_time(samples))  # 10.0
print(avg_over_time(samples))  # 2.5
```

Running `rate` over series held in memory. A querier is any object with a
`select(hints, matchers)` method that returns an iterable of `Series`:

```python
from promring.labels import Matcher, MatchType
from promring.matrix_selector import MatrixSelector
from promring.model import Series
from promring.options import QueryOptions
from promring.samples import Sample, Value
from promring.selectors import SelectHints, SelectorPool


class MemoryQuerier:
    def __init__(self, series):
        self._series = series

    def select(self, hints, matchers):
        return [
            s for s in self._series
            if all(m.matches(s.labels.get(m.name, "")) for m in matchers)
        ]


series = Series(
    labels={"__name__": "http_requests_total", "job": "api"},
    samples=[Sample(t=15_000 * i, v=Value(f=float(10 * i))) for i in range(9)],
)
pool = SelectorPool(MemoryQuerier([series]))
selector = pool.get_selector(
    0, 120_000, 30_000,
    [Matcher(MatchType.EQUAL, "__name__", "http_requests_total")],
    SelectHints(),
)

options = QueryOptions(start=60_000, end=120_000, step=30_000)
operator = MatrixSelector(selector, "rate", 0.0, 0.0, options, select_range=60_000)
print(operator.series())  # [{'job': 'api'}]
while (batch := operator.next()) is not None:
    for vector in batch:
        print(vector.t, vector.sample_ids, vector.samples)
```

Functions that can raise warnings, such as a range that mixes floats and
histograms, record them in an `Annotations` collection you pass in.
`MatrixSelector` keeps its own in its `annotations` attribute, including an
info when `rate` or `increase` is applied to a metric whose name does not
end in `_total`, `_sum`, `_count` or `_bucket`.

## What the package does not do

- It does not parse PromQL expressions or plan queries; you pick the
  function by name and pass its scalar arguments yourself.
- It does not store series. Data comes from a querier object you provide.
- It has no native histogram type of its own. Histogram values are opaque
  objects that must offer the operations described by
  `promring.range_functions.Histogram` (`copy`, `add`, `sub`, `mul`, `div`,
  `detect_reset`, `copy_to_schema`, `compact` and so on).
- It has no command-line interface and no server.

## Running the tests

```
pip install -e ".[test]"
pytest
```