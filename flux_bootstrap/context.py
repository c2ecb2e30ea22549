"""Utilities for tracing the phases of a bootstrap run."""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Generator

from .exceptions import PhaseError

_LOGGER = logging.getLogger(__name__)

# No public API
__all__: list[str] = []


trace: contextvars.ContextVar[list[str]] = contextvars.ContextVar("trace")


def current_trace() -> str:
    """Return the label of the phases currently executing."""
    return " > ".join(trace.get([]))


@contextmanager
def trace_context(name: str) -> Generator[None, None, None]:
    """Record timing of a nested unit of work at debug level."""
    stack = trace.get([])
    token = trace.set(stack + [name])
    label = " > ".join(stack + [name])
    t1 = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    try:
        yield
    finally:
        t2 = perf_counter()
        trace.reset(token)
        _LOGGER.debug("[Trace] < %s (%0.2fs)", label, (t2 - t1))


@contextmanager
def phase_context(phase: str) -> Generator[None, None, None]:
    """Run a pipeline phase, re-raising any failure as a PhaseError."""
    with trace_context(phase):
        try:
            yield
        except PhaseError:
            raise
        except Exception as err:
            _LOGGER.debug("Phase '%s' failed: %s", current_trace(), err)
            raise PhaseError(phase, err) from err
