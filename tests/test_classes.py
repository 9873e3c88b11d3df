"""Window class matching: normalization, parsing, dedup."""

import pytest

from focusctl.classes import (
    auto_class_from_cmd,
    contains,
    dedupe,
    join_classes,
    normalize,
    parse_classes,
    single_class,
    without,
)
from focusctl.misc import InvalidInputError


class TestNormalize:
    def test_case_and_desktop_suffix_ignored(self):
        assert normalize("Foo.DESKTOP") == normalize("foo") == "foo"

    def test_blank_is_empty(self):
        assert normalize("  ") == ""
        assert normalize("") == ""

    def test_surrounding_whitespace_trimmed(self):
        assert normalize("  Google-Chrome  ") == "google-chrome"

    def test_only_one_trailing_suffix_stripped(self):
        assert normalize("a.desktop.desktop") == "a.desktop"

    def test_suffix_in_the_middle_kept(self):
        assert normalize("org.desktop.app") == "org.desktop.app"


class TestParseJoin:
    def test_all_separators(self):
        assert parse_classes("a;b,b; c") == ["a", "b", "b", "c"]

    def test_empty_items_dropped(self):
        assert parse_classes(";;a,, \t b;") == ["a", "b"]
        assert parse_classes("") == []

    def test_round_trip_keeps_order_and_spelling(self):
        classes = ["ProcletChrome", "google-chrome.desktop", "Firefox"]
        assert dedupe(parse_classes(join_classes(classes))) == classes


class TestDedupe:
    def test_first_occurrence_wins(self):
        assert dedupe(["Chrome", "chrome", "CHROME.desktop"]) == ["Chrome"]

    def test_blank_entries_dropped(self):
        assert dedupe(["a", " ", "b"]) == ["a", "b"]


class TestMembership:
    def test_contains_by_key(self):
        assert contains(["ProcletChrome"], "procletchrome.desktop")
        assert not contains(["ProcletChrome"], "chrome")

    def test_without_removes_all_matches(self):
        assert without(["X", "y", "x.desktop"], "x") == ["y"]


class TestAutoClass:
    def test_basename_capitalized(self):
        assert auto_class_from_cmd("/usr/bin/chromium") == "ChromiumApp"

    def test_non_alnum_dropped(self):
        assert auto_class_from_cmd("google-chrome-stable") == "GooglechromestableApp"

    def test_nothing_left(self):
        assert auto_class_from_cmd("/opt/---") == "FocusApp"

    def test_trailing_slash(self):
        assert auto_class_from_cmd("/opt/tool/") == "ToolApp"


class TestSingleClass:
    def test_trimmed(self):
        assert single_class("  Chrome.desktop ") == "Chrome.desktop"

    @pytest.mark.parametrize("raw", ["", "   ", ".desktop"])
    def test_empty(self, raw):
        with pytest.raises(InvalidInputError, match="class is empty"):
            single_class(raw)

    @pytest.mark.parametrize("raw", ["chrome;Chrome", "a,b", "a b", "a\tb"])
    def test_separators(self, raw):
        with pytest.raises(InvalidInputError, match="contains separators"):
            single_class(raw)
