"""Errors raised while rendering templates.

Errors carry enough context to find the problem without re-running the
render: the position reported by the template engine, an excerpt of the
template source around that position and a dump of the template input.
"""

from collections.abc import Mapping
from typing import Any

from ..exceptions import TemplateException
from .formatter import TemplateInputFormatter

__all__ = [
    "TemplateError",
    "NoValueError",
    "DelimiterError",
    "create_source_snippet",
    "find_no_values",
]

# Number of lines printed before and after the error line.
SOURCE_PREPEND = 5
SOURCE_APPEND = 5
# Fixed width of the line number prefix of each source line.
SOURCE_INDENTATION = 6
CARET = "ˆ≈≈≈≈≈≈≈"
NO_VALUE = "<no value>"


class DelimiterError(TemplateException):
    """Raised when a template has a delimiter directive that cannot be parsed."""


def create_source_snippet(line: int, column: int, source: list[str]) -> str:
    """Return the source lines around a 1-based line with a caret under column.

    For example for an error at line 4, column 18:

        3:    suite:
        4:        name: {{ test.suite.name }}
                                ˆ≈≈≈≈≈≈≈
        5:        numTest: {{ test.suite.numTests }}
    """
    error_index = line - 1
    start = max(error_index - SOURCE_PREPEND, 0)
    end = min(error_index + SOURCE_APPEND + 1, len(source))
    snippet = []
    for index in range(start, end):
        number = index + 1
        padding = max(SOURCE_INDENTATION - len(str(number)) - 1, 0)
        prefix = f"{number}:{' ' * padding}"
        snippet.append(f"{prefix}{source[index]}\n")
        if index == error_index:
            snippet.append(f"{' ' * (column + len(prefix))}{CARET}\n")
    return "".join(snippet)


def _input_section(
    values: Mapping[str, Any] | None, formatter: TemplateInputFormatter | None
) -> str:
    if values is None or formatter is None:
        return ""
    return "\ntemplate input:\n" + formatter.format(values, "\t")


class TemplateError(TemplateException):
    """Raised when a template cannot be parsed or executed."""

    def __init__(
        self,
        name: str,
        cause: str,
        line: int | None = None,
        column: int | None = None,
        source: str | None = None,
        values: Mapping[str, Any] | None = None,
        formatter: TemplateInputFormatter | None = None,
    ) -> None:
        self.name = name
        self.cause = cause
        self.line = line
        self.column = column
        self.source = source
        self.values = values
        position = ""
        if line is not None:
            position = f":{line}"
            if column is not None:
                position += f":{column}"
        message = f"template: {name}{position}: {cause}"
        if source is not None and line is not None:
            message += "\ntemplate source:\n"
            message += create_source_snippet(line, column or 0, source.split("\n"))
        message += _input_section(values, formatter)
        super().__init__(message)


class NoValueError(TemplateException):
    """Raised when a rendered template contains fields without a value.

    Every occurrence of the marker is reported with its 1-based line and
    0-based column in the rendered output.
    """

    def __init__(
        self,
        name: str,
        output: str,
        positions: list[tuple[int, int]],
        values: Mapping[str, Any] | None = None,
        formatter: TemplateInputFormatter | None = None,
    ) -> None:
        self.name = name
        self.output = output
        self.positions = positions
        self.values = values
        locations = ", ".join(f"line {line}:{column}" for line, column in positions)
        message = (
            f'template "{name}" contains fields with no value ("{NO_VALUE}") '
            f"at: {locations}"
        )
        if output:
            lines = output.split("\n")
            message += "\ntemplate output:\n"
            message += "".join(
                create_source_snippet(line, column, lines)
                for line, column in positions
            )
        message += _input_section(values, formatter)
        super().__init__(message)


def find_no_values(output: str) -> list[tuple[int, int]]:
    """Return the (line, column) of every no value marker in the output."""
    positions = []
    for number, line in enumerate(output.split("\n"), start=1):
        column = line.find(NO_VALUE)
        while column != -1:
            positions.append((number, column))
            column = line.find(NO_VALUE, column + len(NO_VALUE))
    return positions
