"""Series and the per-step vectors that operators produce."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .samples import Sample


@dataclass
class Series:
    """A labelled series with its samples in timestamp order."""

    labels: dict[str, str] = field(default_factory=dict)
    samples: list[Sample] = field(default_factory=list)


@dataclass
class StepVector:
    """The values of several series at one evaluation timestamp ``t``.

    Float values and histograms are kept apart, each with the ids of the
    series they belong to.
    """

    t: int
    sample_ids: list[int] = field(default_factory=list)
    samples: list[float] = field(default_factory=list)
    histogram_ids: list[int] = field(default_factory=list)
    histograms: list[Any] = field(default_factory=list)

    def append_sample(self, series_id: int, value: float) -> None:
        """Add the float ``value`` of series ``series_id``."""
        self.sample_ids.append(series_id)
        self.samples.append(value)

    def append_histogram(self, series_id: int, histogram: Any) -> None:
        """Add the histogram of series ``series_id``."""
        self.histogram_ids.append(series_id)
        self.histograms.append(histogram)