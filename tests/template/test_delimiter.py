"""Tests for the template delimiter directive."""

import pytest

from flux_bootstrap.template import DelimiterError, Delimiters, parse_and_cleanup


def test_no_directive() -> None:
    """Test a template without a directive is returned unchanged."""
    template = "name: {{ values.name }}\n"
    assert parse_and_cleanup(template) == (template, Delimiters())


def test_default_delimiters() -> None:
    """Test the block and comment delimiters of the defaults."""
    delimiters = Delimiters()
    assert delimiters.is_default
    assert (delimiters.block_start, delimiters.block_end) == ("{%", "%}")
    assert (delimiters.comment_start, delimiters.comment_end) == ("{#", "#}")


def test_custom_delimiters() -> None:
    """Test a directive replacing the delimiters."""
    template = (
        '#?bootstrap {"template": {"delims": {"start": "<<", "end": ">>"}}}\n'
        "name: << values.name >>\n"
        "literal: {{ kept }}\n"
    )
    body, delimiters = parse_and_cleanup(template)
    assert body == "name: << values.name >>\nliteral: {{ kept }}\n"
    assert delimiters == Delimiters(start="<<", end=">>")
    assert (delimiters.block_start, delimiters.block_end) == ("<<%", "%>>")
    assert (delimiters.comment_start, delimiters.comment_end) == ("<<#", "#>>")


def test_partial_delimiters() -> None:
    """Test a directive that only sets the start delimiter."""
    body, delimiters = parse_and_cleanup(
        '#?bootstrap {"template": {"delims": {"start": "[["}}}\nbody'
    )
    assert body == "body"
    assert delimiters == Delimiters(start="[[", end="}}")


def test_directive_without_delims() -> None:
    """Test a directive without delimiters falls back to the defaults."""
    assert parse_and_cleanup('#?bootstrap {"template": {}}\nbody') == (
        "body",
        Delimiters(),
    )


@pytest.mark.parametrize(
    ("template", "match"),
    [
        ("#?bootstrap\nbody", "invalid template delimiter configuration"),
        ("#?bootstrap {not json}\nbody", "cannot parse"),
        ('#?bootstrap {"template": []}\nbody', "cannot parse"),
        ('#?bootstrap {"template": {"delims": {"start": 1}}}\nbody', "cannot parse"),
    ],
)
def test_invalid_directive(template: str, match: str) -> None:
    """Test directives that cannot be parsed."""
    with pytest.raises(DelimiterError, match=match):
        parse_and_cleanup(template)
