import math

from promring.model import Series
from promring.options import QueryOptions
from promring.samples import Sample, Value
from promring.selectors import SelectHints, SeriesSelector
from promring.vector_selector import (
    STALE_NAN,
    MemoizedIterator,
    VectorSelector,
    is_stale_nan,
    select_point,
)


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


def samples(points):
    return [Sample(t=t, v=Value(f=f)) for t, f in points]


def test_stale_nan_is_distinguished_from_nan():
    assert is_stale_nan(STALE_NAN)
    assert not is_stale_nan(math.nan)
    assert not is_stale_nan(1.0)


def test_seek_and_peek_prev():
    it = MemoizedIterator(samples([(0, 1.0), (10, 2.0), (20, 3.0)]), 100)
    found = it.seek(15)
    assert found.t == 20
    assert it.peek_prev().t == 10
    assert it.seek(30) is None


def test_select_point_within_lookback():
    it = MemoizedIterator(samples([(1000, 1.0), (2000, 2.0)]), 5000)
    point = select_point(it, 2500, 5000, 0)
    assert (point.t, point.v.f) == (2000, 2.0)


def test_select_point_outside_lookback():
    it = MemoizedIterator(samples([(1000, 1.0), (2000, 2.0)]), 5000)
    assert select_point(it, 10000, 5000, 0) is None


def test_select_point_with_offset():
    it = MemoizedIterator(samples([(1000, 1.0), (2000, 2.0)]), 5000)
    point = select_point(it, 2500, 5000, 1000)
    assert point.t == 1000


def test_select_point_stale_marker():
    it = MemoizedIterator(samples([(1000, 1.0), (2000, STALE_NAN)]), 5000)
    assert select_point(it, 2500, 5000, 0) is None


def test_range_query_returns_each_value():
    series = Series(labels={"__name__": "m"}, samples=samples([(0, 1.0), (10000, 2.0), (20000, 3.0), (30000, 4.0)]))
    options = QueryOptions(start=0, end=30000, step=10000)
    op = VectorSelector(make_selector(series), options)
    vectors = op.next()
    assert [v.t for v in vectors] == [0, 10000, 20000, 30000]
    assert [v.samples for v in vectors] == [[1.0], [2.0], [3.0], [4.0]]
    assert op.series() == [{"__name__": "m"}]
    assert op.next() is None


def test_lookback_expiry():
    series = Series(labels={}, samples=samples([(0, 1.0)]))
    options = QueryOptions(start=0, end=600000, step=300000, lookback_delta=300000)
    op = VectorSelector(make_selector(series), options)
    assert [v.samples for v in op.next()] == [[1.0], [], []]


def test_select_timestamp():
    series = Series(labels={"__name__": "m", "job": "a"}, samples=samples([(2000, 7.0)]))
    op = VectorSelector(make_selector(series), QueryOptions(start=5000, end=5000), select_timestamp=True)
    assert op.series() == [{"job": "a"}]
    assert op.next()[0].samples == [2.0]


def test_histogram_values():
    series = Series(labels={}, samples=[Sample(t=1000, v=Value(h=FakeHistogram(3.0)))])
    op = VectorSelector(make_selector(series), QueryOptions(start=1000, end=1000))
    vector = op.next()[0]
    assert vector.samples == []
    assert vector.histogram_ids == [0]
    assert vector.histograms[0].sum == 3.0


def test_batching_across_series():
    a = Series(labels={"job": "a"}, samples=samples([(1000, 1.0)]))
    b = Series(labels={"job": "b"}, samples=samples([(1000, 2.0)]))
    op = VectorSelector(make_selector(a, b), QueryOptions(start=1000, end=1000), batch_size=1)
    assert op.next()[0].samples == [1.0]
    second = op.next()[0]
    assert (second.sample_ids, second.samples) == ([1], [2.0])
    assert op.next() is None