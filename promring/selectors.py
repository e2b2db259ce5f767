"""Selecting series from a querier, sharding them and sharing selections."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from .annotations import Annotation, Annotations
from .filter import Filter, NopFilter, new_filter
from .labels import Matcher
from .model import Series
from .samples import Sample


@dataclass(frozen=True)
class SelectHints:
    """Hints passed to the querier along with the matchers; times in milliseconds."""

    start: int = 0
    end: int = 0
    step: int = 0
    func: str = ""
    grouping: tuple[str, ...] = ()
    by: bool = False
    range: int = 0


class Querier(Protocol):
    """A source of series.

    The returned iterable may carry a ``warnings`` attribute whose items are
    recorded as annotations of the selector.
    """

    def select(self, hints: SelectHints, matchers: Sequence[Matcher]) -> Iterable[Series]: ...


@dataclass
class SignedSeries:
    """A series with its position ``signature`` in the selection it came from."""

    series: Series
    signature: int

    @property
    def labels(self) -> dict[str, str]:
        return self.series.labels

    @property
    def samples(self) -> list[Sample]:
        return self.series.samples


def series_shard(
    series: Sequence[SignedSeries], index: int, num_shards: int
) -> list[SignedSeries]:
    """Shard ``index`` of ``num_shards`` contiguous shards, renumbered from 0."""
    count = len(series)
    start = index * count // num_shards
    end = min((index + 1) * count // num_shards, count)
    return [SignedSeries(s.series, i) for i, s in enumerate(series[start:end])]


def _as_annotation(warning: object) -> Annotation:
    return warning if isinstance(warning, Annotation) else Annotation(str(warning))


class SeriesSelector:
    """Selects series from a querier once and hands out shards of them.

    The querier is asked only on the first call; an error it raises is
    raised from that call alone.
    """

    def __init__(
        self, querier: Querier, matchers: Iterable[Matcher], hints: SelectHints
    ) -> None:
        self._querier = querier
        self._matchers = list(matchers)
        self._hints = hints
        self._lock = threading.Lock()
        self._loaded = False
        self._series: list[SignedSeries] = []
        self.warnings = Annotations()

    @property
    def matchers(self) -> list[Matcher]:
        return list(self._matchers)

    def get_series(self, shard: int, num_shards: int) -> list[SignedSeries]:
        """Shard ``shard`` of ``num_shards`` of the selected series."""
        with self._lock:
            if not self._loaded:
                self._loaded = True
                self._load()
        return series_shard(self._series, shard, num_shards)

    def _load(self) -> None:
        result = self._querier.select(self._hints, list(self._matchers))
        for i, series in enumerate(result):
            self._series.append(SignedSeries(series, i))
        for warning in getattr(result, "warnings", ()):
            self.warnings.add(_as_annotation(warning))


class FilteredSelector:
    """The series of another selector that pass a filter."""

    def __init__(
        self, selector: SeriesSelector, series_filter: Filter | NopFilter
    ) -> None:
        self._selector = selector
        self._filter = series_filter
        self._lock = threading.Lock()
        self._loaded = False
        self._series: list[SignedSeries] = []

    @property
    def matchers(self) -> list[Matcher]:
        return self._selector.matchers + self._filter.matchers

    @property
    def warnings(self) -> Annotations:
        return self._selector.warnings

    def get_series(self, shard: int, num_shards: int) -> list[SignedSeries]:
        """Shard ``shard`` of ``num_shards`` of the series that pass the filter."""
        with self._lock:
            if not self._loaded:
                self._loaded = True
                selected = self._selector.get_series(0, 1)
                kept = (s for s in selected if self._filter.matches(s))
                self._series = [SignedSeries(s.series, i) for i, s in enumerate(kept)]
        return series_shard(self._series, shard, num_shards)


class SelectorPool:
    """Shares one selector among all requests with the same matchers and hints."""

    def __init__(self, querier: Querier) -> None:
        self._querier = querier
        self._selectors: dict[tuple, SeriesSelector] = {}

    def _shared(
        self, mint: int, maxt: int, matchers: Sequence[Matcher], hints: SelectHints
    ) -> SeriesSelector:
        key = (
            tuple((m.name, m.match_type.value, m.value) for m in matchers),
            mint,
            maxt,
            hints.step,
            hints.func,
            ";".join(hints.grouping),
            hints.by,
        )
        selector = self._selectors.get(key)
        if selector is None:
            selector = SeriesSelector(self._querier, matchers, hints)
            self._selectors[key] = selector
        return selector

    def get_selector(
        self,
        mint: int,
        maxt: int,
        step: int,
        matchers: Sequence[Matcher],
        hints: SelectHints,
    ) -> SeriesSelector:
        """The shared selector for ``matchers`` over ``[mint, maxt]``."""
        return self._shared(mint, maxt, matchers, hints)

    def get_filtered_selector(
        self,
        mint: int,
        maxt: int,
        step: int,
        matchers: Sequence[Matcher],
        filters: Sequence[Matcher],
        hints: SelectHints,
    ) -> FilteredSelector:
        """The shared selector for ``matchers``, narrowed by ``filters``."""
        return FilteredSelector(self._shared(mint, maxt, matchers, hints), new_filter(filters))