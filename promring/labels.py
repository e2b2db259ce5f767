"""Label sets and the matchers that select series by their labels."""

from __future__ import annotations

import enum
import re
from collections.abc import Mapping

METRIC_NAME = "__name__"


class MatchType(enum.Enum):
    """How a matcher compares a label value."""

    EQUAL = 0
    NOT_EQUAL = 1
    REGEXP = 2
    NOT_REGEXP = 3

    @property
    def symbol(self) -> str:
        """The operator written between label name and value."""
        return ("=", "!=", "=~", "!~")[self.value]


class Matcher:
    """Selects label values equal, unequal, matching or not matching ``value``.

    Regular expressions are anchored at both ends and ``.`` also matches a
    newline. A missing label is matched as the empty string.
    """

    __slots__ = ("match_type", "name", "value", "_pattern")

    def __init__(self, match_type: MatchType, name: str, value: str) -> None:
        self.match_type = MatchType(match_type)
        self.name = name
        self.value = value
        self._pattern: re.Pattern[str] | None = None
        if self.match_type in (MatchType.REGEXP, MatchType.NOT_REGEXP):
            try:
                self._pattern = re.compile(value, re.DOTALL)
            except re.error as exc:
                raise ValueError(f"invalid regular expression {value!r}: {exc}") from exc

    def matches(self, value: str) -> bool:
        """Whether the label value ``value`` is selected by this matcher."""
        if self.match_type is MatchType.EQUAL:
            return value == self.value
        if self.match_type is MatchType.NOT_EQUAL:
            return value != self.value
        assert self._pattern is not None
        found = self._pattern.fullmatch(value) is not None
        return found if self.match_type is MatchType.REGEXP else not found

    def _key(self) -> tuple[MatchType, str, str]:
        return self.match_type, self.name, self.value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Matcher):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __repr__(self) -> str:
        return f"Matcher({self.match_type.name}, {self.name!r}, {self.value!r})"

    def __str__(self) -> str:
        return f'{self.name}{self.match_type.symbol}"{self.value}"'


def drop_metric_name(labels: Mapping[str, str]) -> dict[str, str]:
    """A copy of ``labels`` without the metric name label."""
    return {name: value for name, value in labels.items() if name != METRIC_NAME}