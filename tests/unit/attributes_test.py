"""Tests for tag attribute helpers."""

from __future__ import annotations

import pytest

from tagstream.core.attributes import is_self_closing, is_truthy, parse_attributes, tag_name


class TestParseAttributes:
    def test_double_and_single_quotes(self) -> None:
        attrs = parse_attributes("""file path="a/b.txt" action='create'""")
        assert attrs == {"path": "a/b.txt", "action": "create"}

    def test_value_may_contain_other_quote(self) -> None:
        attrs = parse_attributes("""terminal command="echo 'hi'" """)
        assert attrs["command"] == "echo 'hi'"

    def test_spaces_around_equals(self) -> None:
        assert parse_attributes('terminal command = "ls"') == {"command": "ls"}

    def test_unquoted_values_are_ignored(self) -> None:
        assert parse_attributes("terminal command=ls") == {}


class TestTagName:
    @pytest.mark.parametrize(
        ("tag_text", "expected"),
        [("file path='x'", "file"), ("/file", "/file"), ("Terminal command='x'/", "terminal"), ("  ", None)],
    )
    def test_tag_name(self, tag_text: str, expected: str | None) -> None:
        assert tag_name(tag_text) == expected


def test_is_self_closing() -> None:
    assert is_self_closing('terminal command="ls" /') is True
    assert is_self_closing('file path="a"') is False


@pytest.mark.parametrize("value", ["true", "TRUE", "1", "yes", " on "])
def test_truthy_values(value: str) -> None:
    assert is_truthy(value) is True


@pytest.mark.parametrize("value", [None, "false", "0", "", "maybe"])
def test_falsy_values(value: str | None) -> None:
    assert is_truthy(value) is False
