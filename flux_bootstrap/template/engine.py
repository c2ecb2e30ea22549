"""Library for rendering templates against a template input.

Templates are Jinja templates rendered asynchronously so that template
functions may query the component repository. The top-level keys of the
input are the names available in the template:

    renderer = TemplateRenderer()
    await renderer.render("example", "{{ values.x }}", {"values": {"x": "Y"}})

Errors are raised as `TemplateError` with the position of the problem, an
excerpt of the template and a dump of the input.
"""

from collections.abc import Callable, Mapping
import enum
import logging
import re
import traceback
from typing import Any

import jinja2

from ..resolver import ComponentResolver
from .delimiter import Delimiters, parse_and_cleanup
from .errors import NO_VALUE, NoValueError, TemplateError, find_no_values
from .formatter import TemplateInputFormatter
from .functions import component_functions, general_functions

__all__ = [
    "MissingKeyPolicy",
    "TemplateRenderer",
]

_LOGGER = logging.getLogger(__name__)

_UNDEFINED_NAME = re.compile(r"'([^']+)' is undefined|has no attribute '([^']+)'")


class MissingKeyPolicy(str, enum.Enum):
    """How the renderer handles references to keys missing from the input."""

    ERROR = "error"
    """Abort rendering on the first missing key."""

    ZERO = "zero"
    """Render a marker for each missing key and report all of them afterwards."""

    IGNORE = "ignore"
    """Render nothing for missing keys."""


class NoValueUndefined(jinja2.ChainableUndefined):
    """Undefined value that renders as the no value marker."""

    def __str__(self) -> str:
        return NO_VALUE


UNDEFINED: dict[MissingKeyPolicy, type[jinja2.Undefined]] = {
    MissingKeyPolicy.ERROR: jinja2.StrictUndefined,
    MissingKeyPolicy.ZERO: NoValueUndefined,
    MissingKeyPolicy.IGNORE: jinja2.ChainableUndefined,
}


def _no_value_finalize(value: Any) -> Any:
    """Render a null value as the no value marker."""
    return NO_VALUE if value is None else value


def _error_position(
    err: Exception, name: str, source: str
) -> tuple[int | None, int | None]:
    """Return the 1-based line and 0-based column where rendering failed."""
    line: int | None = None
    for frame in traceback.extract_tb(err.__traceback__):
        if frame.filename == name and frame.lineno:
            line = frame.lineno
    if line is None:
        return None, None
    lines = source.split("\n")
    if not (match := _UNDEFINED_NAME.search(str(err))) or line > len(lines):
        return line, None
    undefined = match.group(1) or match.group(2)
    text = lines[line - 1]
    if (column := text.find(f".{undefined}")) != -1:
        return line, column + 1
    if (column := text.find(undefined)) != -1:
        return line, column
    return line, None


class TemplateRenderer:
    """Renders templates with the template function library."""

    def __init__(
        self,
        resolver: ComponentResolver | None = None,
        formatter: TemplateInputFormatter | None = None,
        functions: Mapping[str, Callable[..., Any]] | None = None,
    ) -> None:
        """Initialize TemplateRenderer.

        The resolver is bound to the component functions; extra functions are
        added to the library and override functions of the same name.
        """
        self._formatter = formatter or TemplateInputFormatter(pretty=True)
        self._functions: dict[str, Callable[..., Any]] = {
            **general_functions(),
            **component_functions(resolver),
            **(functions or {}),
        }

    @property
    def formatter(self) -> TemplateInputFormatter:
        return self._formatter

    def _environment(
        self, delimiters: Delimiters, missing_key: MissingKeyPolicy
    ) -> jinja2.Environment:
        env = jinja2.Environment(
            variable_start_string=delimiters.start,
            variable_end_string=delimiters.end,
            block_start_string=delimiters.block_start,
            block_end_string=delimiters.block_end,
            comment_start_string=delimiters.comment_start,
            comment_end_string=delimiters.comment_end,
            undefined=UNDEFINED[missing_key],
            finalize=(
                _no_value_finalize if missing_key == MissingKeyPolicy.ZERO else None
            ),
            keep_trailing_newline=True,
            enable_async=True,
            autoescape=False,
        )
        env.globals.update(self._functions)
        env.filters.update(general_functions())
        return env

    async def render(
        self,
        name: str,
        template: str,
        values: Mapping[str, Any],
        missing_key: MissingKeyPolicy = MissingKeyPolicy.ERROR,
    ) -> bytes:
        """Render the template and return the output as bytes.

        The name identifies the template in error messages.
        """
        text, delimiters = parse_and_cleanup(template)
        env = self._environment(delimiters, MissingKeyPolicy(missing_key))
        try:
            code = env.compile(text, name=name, filename=name)
        except jinja2.TemplateSyntaxError as err:
            raise TemplateError(
                name,
                err.message or str(err),
                line=err.lineno,
                column=0,
                source=text,
                values=values,
                formatter=self._formatter,
            ) from err
        compiled = env.template_class.from_code(env, code, env.make_globals(None))
        try:
            output = await compiled.render_async(values)
        except RuntimeError:
            raise
        except Exception as err:
            line, column = _error_position(err, name, text)
            raise TemplateError(
                name,
                str(err),
                line=line,
                column=column,
                source=text,
                values=values,
                formatter=self._formatter,
            ) from err

        if missing_key == MissingKeyPolicy.ZERO and (
            positions := find_no_values(output)
        ):
            raise NoValueError(name, output, positions, values, self._formatter)
        _LOGGER.debug("Rendered template %s (%d bytes)", name, len(output))
        return output.encode("utf-8")
