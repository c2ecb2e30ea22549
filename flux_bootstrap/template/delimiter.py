"""Parsing of the optional delimiter directive at the top of a template.

A template may declare its own delimiters on the first line, which is useful
when the rendered file itself contains `{{ }}` expressions, for example:

    #?bootstrap {"template": {"delims": {"start": "<<", "end": ">>"}}}

The directive line is removed from the template before it is compiled.
"""

from dataclasses import dataclass
import json

from .errors import DelimiterError

__all__ = [
    "Delimiters",
    "DIRECTIVE_PREFIX",
    "parse_and_cleanup",
]

DIRECTIVE_PREFIX = "#?bootstrap"
DEFAULT_START = "{{"
DEFAULT_END = "}}"


@dataclass(frozen=True)
class Delimiters:
    """Variable delimiters of a template.

    Block and comment delimiters are derived from the variable delimiters by
    adding `%` or `#` on the inside, mirroring `{% %}` and `{# #}`.
    """

    start: str = DEFAULT_START
    end: str = DEFAULT_END

    @property
    def block_start(self) -> str:
        return f"{self.start[:1]}%" if self.is_default else f"{self.start}%"

    @property
    def block_end(self) -> str:
        return f"%{self.end[-1:]}" if self.is_default else f"%{self.end}"

    @property
    def comment_start(self) -> str:
        return f"{self.start[:1]}#" if self.is_default else f"{self.start}#"

    @property
    def comment_end(self) -> str:
        return f"#{self.end[-1:]}" if self.is_default else f"#{self.end}"

    @property
    def is_default(self) -> bool:
        return self.start == DEFAULT_START and self.end == DEFAULT_END


def parse_and_cleanup(template: str) -> tuple[str, Delimiters]:
    """Return the template without its directive line and the delimiters to use.

    Templates without a directive use the default delimiters and are returned
    unchanged.
    """
    if not template.startswith(DIRECTIVE_PREFIX):
        return template, Delimiters()

    directive, _, body = template.partition("\n")
    payload = directive[len(DIRECTIVE_PREFIX) :].strip()
    if not payload:
        raise DelimiterError("invalid template delimiter configuration")
    try:
        config = json.loads(payload)
    except json.JSONDecodeError as err:
        raise DelimiterError(
            "cannot parse detected template delimiter configuration"
        ) from err
    template_config = (config.get("template") or {}) if isinstance(config, dict) else None
    if not isinstance(template_config, dict):
        raise DelimiterError("cannot parse detected template delimiter configuration")
    delims = template_config.get("delims") or {}
    if not isinstance(delims, dict):
        raise DelimiterError("cannot parse detected template delimiter configuration")
    start = delims.get("start") or DEFAULT_START
    end = delims.get("end") or DEFAULT_END
    if not isinstance(start, str) or not isinstance(end, str):
        raise DelimiterError("cannot parse detected template delimiter configuration")
    return body, Delimiters(start=start, end=end)
