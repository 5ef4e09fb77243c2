import pytest

from utils.errors import InvalidURLError, StageError
from utils.helpers import (
    canonical_url,
    normalize_url,
    path_segments,
    resolve_link,
    same_host,
    split_criteria,
    strip_code_fences,
    truncate,
)


class TestNormalizeUrl:
    def test_keeps_absolute_url(self):
        assert normalize_url("https://example.com/docs") == "https://example.com/docs"

    def test_bare_host_gets_https(self):
        assert normalize_url("  example.com/about ") == "https://example.com/about"

    @pytest.mark.parametrize("raw", ["localhost:3000", "127.0.0.1:8080/app", "example.com:8443"])
    def test_local_or_port_gets_http(self, raw):
        assert normalize_url(raw) == "http://" + raw

    @pytest.mark.parametrize("raw", ["", "   ", "ftp://example.com", "http://"])
    def test_rejects_invalid(self, raw):
        with pytest.raises(InvalidURLError):
            normalize_url(raw)

    def test_invalid_url_is_value_error(self):
        with pytest.raises(ValueError):
            normalize_url("")


class TestLinks:
    def test_resolves_relative_and_strips_fragment(self):
        assert resolve_link("https://example.com/a/b", "../c#top") == "https://example.com/c"

    @pytest.mark.parametrize("href", ["#section", "mailto:a@b.c", "tel:+123", "javascript:void(0)", ""])
    def test_discards_non_navigational(self, href):
        assert resolve_link("https://example.com/", href) is None

    def test_path_segments(self):
        assert path_segments("https://example.com") == 0
        assert path_segments("https://example.com/") == 0
        assert path_segments("https://example.com/a/b/") == 2

    def test_same_host_is_case_insensitive(self):
        assert same_host("https://Example.com/a", "https://example.com/b")
        assert not same_host("https://example.com", "https://docs.example.com")


class TestCriteria:
    def test_split_on_blank_lines(self):
        assert split_criteria("A\n\nB\n\nC") == ["A", "B", "C"]

    def test_single_criterion(self):
        assert split_criteria("Only one\nspanning two lines") == ["Only one\nspanning two lines"]

    def test_whitespace_only_separator_lines(self):
        assert split_criteria("A\n  \nB\n\n\n\nC\n") == ["A", "B", "C"]

    def test_empty(self):
        assert split_criteria("") == []
        assert split_criteria(" \n\n ") == []


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'


def test_truncate_keeps_tail():
    assert truncate("abcdef", 3) == "…def"
    assert truncate("abc", 10) == "abc"


def test_stage_error_carries_stage():
    err = StageError("execute", "runner missing")
    assert err.stage == "execute"
    assert "execute" in str(err)
    with pytest.raises(ValueError):
        StageError("deploy", "nope")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("https://example.com", "https://example.com/"),
        ("https://example.com/#top", "https://example.com/"),
        ("https://example.com?q=1", "https://example.com/?q=1"),
        ("https://example.com/docs#a", "https://example.com/docs"),
    ],
)
def test_canonical_url(raw, expected):
    assert canonical_url(raw) == expected


def test_resolve_link_gives_bare_host_a_slash():
    assert resolve_link("https://example.com/a", "https://example.com") == "https://example.com/"
