"""Filters that decide whether an already selected series is kept."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Protocol

from .labels import Matcher


class _Labelled(Protocol):
    @property
    def labels(self) -> Mapping[str, str]: ...


class NopFilter:
    """A filter that keeps every series."""

    @property
    def matchers(self) -> list[Matcher]:
        return []

    def matches(self, series: _Labelled) -> bool:
        """Always true."""
        return True


class Filter:
    """Keeps a series when every matcher accepts its label value."""

    def __init__(self, matchers: Iterable[Matcher]) -> None:
        self._matchers = list(matchers)
        self._by_name: dict[str, list[Matcher]] = {}
        for matcher in self._matchers:
            self._by_name.setdefault(matcher.name, []).append(matcher)

    @property
    def matchers(self) -> list[Matcher]:
        return list(self._matchers)

    def matches(self, series: _Labelled) -> bool:
        """Whether all matchers accept the series; a missing label reads as ''."""
        labels = series.labels
        return all(
            matcher.matches(labels.get(name, ""))
            for name, matchers in self._by_name.items()
            for matcher in matchers
        )


def new_filter(matchers: Iterable[Matcher]) -> Filter | NopFilter:
    """A filter for ``matchers``; with no matchers, one that keeps everything."""
    matchers = list(matchers)
    if not matchers:
        return NopFilter()
    return Filter(matchers)