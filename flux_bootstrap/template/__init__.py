"""Template rendering with custom delimiters and component functions."""

from .delimiter import Delimiters, parse_and_cleanup
from .directory import DirectorySink, TemplateSink, render_directory
from .engine import MissingKeyPolicy, TemplateRenderer
from .errors import (
    DelimiterError,
    NoValueError,
    TemplateError,
    create_source_snippet,
)
from .formatter import TemplateInputFormatter

__all__ = [
    "Delimiters",
    "DelimiterError",
    "DirectorySink",
    "MissingKeyPolicy",
    "NoValueError",
    "TemplateError",
    "TemplateInputFormatter",
    "TemplateRenderer",
    "TemplateSink",
    "create_source_snippet",
    "parse_and_cleanup",
    "render_directory",
]
