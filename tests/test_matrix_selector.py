import pytest

from promring.matrix_selector import MatrixSelector, NativeHistogramsNotSupportedError
from promring.model import Series
from promring.options import QueryOptions
from promring.range_functions import UnknownFunctionError, extrapolated_rate
from promring.samples import Sample, Value
from promring.selectors import SelectHints, SeriesSelector
from promring.vector_selector import STALE_NAN


class FakeQuerier:
    def __init__(self, series):
        self.series = series

    def select(self, hints, matchers):
        return list(self.series)


class FakeHistogram:
    def __init__(self, total):
        self.sum = total

    def copy(self):
        return FakeHistogram(self.sum)


def make_selector(*series):
    return SeriesSelector(FakeQuerier(list(series)), [], SelectHints())


def float_series(labels, points):
    return Series(labels=dict(labels), samples=[Sample(t=t, v=Value(f=f)) for t, f in points])


def drain(op):
    out = []
    while (batch := op.next()) is not None:
        out.extend(batch)
    return out


def instant(t):
    return QueryOptions(start=t, end=t)


def test_unknown_function_raises():
    with pytest.raises(UnknownFunctionError):
        MatrixSelector(make_selector(), "nope", 0, 0, instant(0), 30000)


def test_count_over_time_instant():
    series = float_series({"__name__": "m"}, [(10000 * i, float(i)) for i in range(1, 10)])
    op = MatrixSelector(make_selector(series), "count_over_time", 0, 0, instant(60000), 30000)
    vectors = op.next()
    assert [v.t for v in vectors] == [60000]
    assert vectors[0].samples == [3.0]
    assert vectors[0].sample_ids == [0]


def test_rate_matches_extrapolated_rate_over_window():
    points = [(t, float((t // 5000) % 13 * 3)) for t in range(0, 125000, 5000)]
    series = float_series({"__name__": "c_total"}, points)
    options = QueryOptions(start=60000, end=120000, step=10000, steps_batch=100)
    op = MatrixSelector(make_selector(series), "rate", 0, 0, options, 30000)
    vectors = drain(op)
    assert [v.t for v in vectors] == list(range(60000, 130000, 10000))
    for vector in vectors:
        window = [
            Sample(t=t, v=Value(f=f)) for t, f in points if vector.t - 30000 < t <= vector.t
        ]
        expected = extrapolated_rate(window, len(window), True, True, vector.t, 30000, 0, None)
        assert vector.samples == [pytest.approx(expected.f, rel=1e-9)]


def test_metric_name_dropped_except_for_last_over_time():
    series = float_series({"__name__": "m", "job": "a"}, [(1000, 1.0)])
    counted = MatrixSelector(make_selector(series), "count_over_time", 0, 0, instant(2000), 5000)
    assert counted.series() == [{"job": "a"}]
    last = MatrixSelector(make_selector(series), "last_over_time", 0, 0, instant(2000), 5000)
    assert last.series() == [{"__name__": "m", "job": "a"}]
    assert last.next()[0].samples == [1.0]


def test_next_returns_none_when_done():
    series = float_series({"job": "a"}, [(1000, 1.0)])
    op = MatrixSelector(make_selector(series), "count_over_time", 0, 0, instant(2000), 5000)
    assert op.next()[0].samples == [1.0]
    assert op.next() is None


def test_non_counter_info_for_rate():
    points = [(t, float(t)) for t in range(0, 65000, 5000)]
    op = MatrixSelector(
        make_selector(float_series({"__name__": "requests"}, points)),
        "rate", 0, 0, instant(60000), 30000,
    )
    drain(op)
    notes = list(op.annotations)
    assert len(notes) == 1
    assert notes[0].info
    assert '"requests"' in notes[0].message

    counter = MatrixSelector(
        make_selector(float_series({"__name__": "requests_total"}, points)),
        "rate", 0, 0, instant(60000), 30000,
    )
    drain(counter)
    assert len(counter.annotations) == 0


def test_extended_function_rejects_histograms():
    series = Series(labels={"job": "a"}, samples=[Sample(t=1000, v=Value(h=FakeHistogram(1.0)))])
    op = MatrixSelector(make_selector(series), "xrate", 0, 0, instant(2000), 5000)
    with pytest.raises(NativeHistogramsNotSupportedError):
        op.next()


def test_stale_markers_are_skipped():
    base = [(10000 * i, float(i)) for i in range(1, 10) if i != 5]
    stale = sorted(base + [(50000, STALE_NAN)])
    baseline = MatrixSelector(
        make_selector(float_series({}, base)), "count_over_time", 0, 0, instant(60000), 30000
    )
    with_stale = MatrixSelector(
        make_selector(float_series({}, stale)), "count_over_time", 0, 0, instant(60000), 30000
    )
    assert with_stale.next()[0].samples == baseline.next()[0].samples


def test_series_batching():
    a = float_series({"job": "a"}, [(1000, 1.0)])
    b = float_series({"job": "b"}, [(1000, 1.0)])
    op = MatrixSelector(make_selector(a, b), "count_over_time", 0, 0, instant(2000), 5000, 0, 1)
    assert op.next()[0].sample_ids == [0]
    assert op.next()[0].sample_ids == [1]
    assert op.next() is None


def test_histogram_last_over_time():
    series = Series(
        labels={"job": "a"},
        samples=[Sample(t=1000, v=Value(h=FakeHistogram(2.0))), Sample(t=2000, v=Value(h=FakeHistogram(5.0)))],
    )
    op = MatrixSelector(make_selector(series), "last_over_time", 0, 0, instant(3000), 5000)
    vector = op.next()[0]
    assert vector.samples == []
    assert vector.histogram_ids == [0]
    assert vector.histograms[0].sum == 5.0


def test_sharding_splits_series():
    a = float_series({"job": "a"}, [(1000, 1.0)])
    b = float_series({"job": "b"}, [(1000, 1.0)])
    selector = make_selector(a, b)
    second = MatrixSelector(selector, "count_over_time", 0, 0, instant(2000), 5000, 0, 0, 1, 2)
    assert second.series() == [{"job": "b"}]