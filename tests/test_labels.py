import pytest

from promring.labels import METRIC_NAME, Matcher, MatchType, drop_metric_name


@pytest.mark.parametrize(
    "match_type, pattern, value, expected",
    [
        (MatchType.EQUAL, "bar", "bar", True),
        (MatchType.EQUAL, "bar", "baz", False),
        (MatchType.NOT_EQUAL, "bar", "baz", True),
        (MatchType.NOT_EQUAL, "bar", "bar", False),
        (MatchType.REGEXP, "ba.", "bar", True),
        (MatchType.REGEXP, "ba.", "nope", False),
        (MatchType.NOT_REGEXP, "ba.", "bar", False),
        (MatchType.NOT_REGEXP, "ba.", "nope", True),
    ],
)
def test_matcher_matches(match_type, pattern, value, expected):
    assert Matcher(match_type, "foo", pattern).matches(value) is expected


def test_regexp_is_anchored():
    matcher = Matcher(MatchType.REGEXP, "foo", "ba")
    assert matcher.matches("ba") is True
    assert matcher.matches("bar") is False
    assert matcher.matches("xba") is False


def test_regexp_dot_matches_newline():
    assert Matcher(MatchType.REGEXP, "foo", ".*").matches("a\nb") is True


def test_empty_value_against_match_all():
    assert Matcher(MatchType.REGEXP, "foo", ".*").matches("") is True
    assert Matcher(MatchType.NOT_REGEXP, "foo", ".*").matches("") is False


def test_invalid_regexp_raises():
    with pytest.raises(ValueError):
        Matcher(MatchType.REGEXP, "foo", "(")


def test_matcher_equality_and_hash():
    a = Matcher(MatchType.EQUAL, "foo", "bar")
    b = Matcher(MatchType.EQUAL, "foo", "bar")
    c = Matcher(MatchType.NOT_EQUAL, "foo", "bar")
    assert a == b
    assert hash(a) == hash(b)
    assert a != c
    assert len({a, b, c}) == 2


def test_matcher_str():
    assert str(Matcher(MatchType.NOT_REGEXP, "job", "api")) == 'job!~"api"'


def test_matcher_str_for_every_match_type():
    rendered = [str(Matcher(t, "job", "api")) for t in MatchType]
    assert rendered == ['job="api"', 'job!="api"', 'job=~"api"', 'job!~"api"']


def test_drop_metric_name():
    labels = {METRIC_NAME: "http_requests_total", "job": "api"}
    assert drop_metric_name(labels) == {"job": "api"}
    assert labels[METRIC_NAME] == "http_requests_total"


def test_drop_metric_name_without_name():
    labels = {"job": "api", "instance": "a"}
    assert drop_metric_name(labels) == labels