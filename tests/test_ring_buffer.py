import pytest

from promring.range_functions import FunctionArgs, new_range_vector_func
from promring.ring_buffer import MIN_TIMESTAMP, RingBuffer
from promring.samples import Value


class FakeHistogram:
    def __init__(self, count):
        self.count = count

    def copy(self):
        return FakeHistogram(self.count)

    def __eq__(self, other):
        return isinstance(other, FakeHistogram) and other.count == self.count


class Recorder:
    def __init__(self):
        self.args = None

    def __call__(self, args: FunctionArgs):
        self.args = args
        return Value(f=float(len(args.samples)))


def timestamps(buffer):
    recorder = Recorder()
    buffer._call = recorder
    buffer.eval()
    return [s.t for s in recorder.args.samples]


def make(ts, ext_lookback=0, call=None):
    buffer = RingBuffer(10_000, 0, call or Recorder(), ext_lookback)
    for t in ts:
        buffer.push(t, Value(f=float(t)))
    return buffer


def test_empty_buffer_max_t():
    buffer = RingBuffer(10_000, 0, Recorder())
    assert buffer.max_t() == MIN_TIMESTAMP
    assert len(buffer) == 0


def test_push_tracks_len_and_max_t():
    buffer = make([1000, 2000, 3000])
    assert len(buffer) == 3
    assert buffer.max_t() == 3000


def test_push_copies_histogram():
    recorder = Recorder()
    buffer = RingBuffer(10_000, 0, recorder)
    original = FakeHistogram(5)
    buffer.push(1000, Value(h=original))
    original.count = 99
    buffer.eval()
    stored = recorder.args.samples[0].v.h
    assert stored == FakeHistogram(5)
    assert stored is not original


def test_reset_drops_samples_at_or_before_mint():
    buffer = make([1000, 2000, 3000])
    buffer.reset(2000, 12_000)
    assert timestamps(buffer) == [3000]


def test_reset_clears_when_all_samples_older():
    buffer = make([1000, 2000])
    buffer.reset(5000, 15_000)
    assert len(buffer) == 0
    assert buffer.max_t() == MIN_TIMESTAMP


def test_reset_with_ext_lookback_keeps_one_sample_before_mint():
    buffer = make([1000, 2000, 3000], ext_lookback=1500)
    buffer.reset(2500, 12_500)
    assert timestamps(buffer) == [2000, 3000]


def test_reset_with_ext_lookback_drops_sample_too_far():
    buffer = make([1000, 3000], ext_lookback=500)
    buffer.reset(2500, 12_500)
    assert timestamps(buffer) == [3000]


def test_read_into_last_updates_newest_sample():
    buffer = make([1000, 2000])

    def update(sample):
        sample.t = 2500
        sample.v.f = 42.0

    buffer.read_into_last(update)
    assert buffer.max_t() == 2500
    assert len(buffer) == 2


def test_eval_passes_arguments():
    recorder = Recorder()
    buffer = RingBuffer(10_000, 500, recorder)
    buffer.push(1000, Value(f=1.0))
    buffer.reset(0, 10_500)
    buffer.eval(0.25, 0.75, 1000)
    args = recorder.args
    assert args.step_time == 10_500
    assert args.select_range == 10_000
    assert args.offset == 500
    assert args.scalar_point == 0.25
    assert args.scalar_point2 == 0.75
    assert args.metric_appeared_ts == 1000


@pytest.mark.parametrize("values", [[1.0], [1.0, 2.0, 3.0], [4.0, 4.0]])
def test_eval_with_sum_over_time(values):
    buffer = RingBuffer(10_000, 0, new_range_vector_func("sum_over_time"))
    for i, v in enumerate(values):
        buffer.push(1000 * (i + 1), Value(f=v))
    assert buffer.eval().f == pytest.approx(sum(values))


def test_eval_on_empty_buffer_returns_none():
    buffer = RingBuffer(10_000, 0, new_range_vector_func("count_over_time"))
    assert buffer.eval() is None