"""Warnings and infos collected while evaluating range functions."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass


@dataclass(frozen=True)
class Annotation:
    """A single warning (or info, when ``info`` is true) raised during evaluation."""

    message: str
    info: bool = False

    def __str__(self) -> str:
        return self.message


MIXED_FLOATS_HISTOGRAMS = Annotation(
    "PromQL warning: encountered a mix of histograms and floats"
)
MIXED_EXPONENTIAL_CUSTOM_HISTOGRAMS = Annotation(
    "PromQL warning: vector contains a mix of histograms with exponential "
    "and custom buckets schemas"
)
NATIVE_HISTOGRAM_NOT_COUNTER = Annotation(
    "PromQL warning: this native histogram metric is not a counter"
)
NATIVE_HISTOGRAM_NOT_GAUGE = Annotation(
    "PromQL warning: this native histogram metric is not a gauge"
)
INCOMPATIBLE_CUSTOM_BUCKETS_HISTOGRAMS = Annotation(
    "PromQL warning: vector contains histograms with incompatible custom buckets"
)


class Annotations:
    """An insertion-ordered set of annotations; adding a duplicate is a no-op."""

    def __init__(self) -> None:
        self._items: dict[Annotation, None] = {}

    def add(self, annotation: Annotation) -> None:
        """Record ``annotation`` unless an equal one is already present."""
        self._items.setdefault(annotation, None)

    def __iter__(self) -> Iterator[Annotation]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"Annotations({list(self._items)!r})"