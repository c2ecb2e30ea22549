"""Human readable dump of a template input for error messages."""

import base64
from collections.abc import Iterable, Mapping
import gzip
import json
from typing import Any

__all__ = [
    "TemplateInputFormatter",
]

# Encoded values longer than this are compressed to keep error messages short.
COMPRESS_THRESHOLD = 1024
COMPRESSED_PREFIX = ">gzip>base64> "
REDACTED = "[...] ({})"


def _redact(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _redact(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    return REDACTED.format(type(value).__name__)


def _redact_keys(value: Any, keys: frozenset[str]) -> Any:
    """Return the value with the values of the keys redacted at any depth."""
    if isinstance(value, Mapping):
        return {
            key: _redact(item) if key in keys else _redact_keys(item, keys)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact_keys(item, keys) for item in value]
    return value


class TemplateInputFormatter:
    """Formats each top-level key of a template input on its own line."""

    def __init__(self, pretty: bool = True, sensitive_keys: Iterable[str] = ()) -> None:
        """Initialize TemplateInputFormatter.

        Values of sensitive keys, at any depth of the input, are replaced leaf
        by leaf with a placeholder naming the type of the value.
        """
        self._pretty = pretty
        self._sensitive_keys = frozenset(sensitive_keys)

    def _encode(self, value: Any) -> str:
        if self._pretty:
            return json.dumps(value, indent=2, sort_keys=True, default=str)
        return json.dumps(value, separators=(",", ":"), sort_keys=True, default=str)

    def format(self, values: Mapping[str, Any], indent: str = "\t") -> str:
        """Return the formatted input, one `<indent><key>: <json>` line per key."""
        lines = []
        for key in sorted(values):
            value = values[key]
            if key in self._sensitive_keys:
                value = _redact(value)
            elif self._sensitive_keys:
                value = _redact_keys(value, self._sensitive_keys)
            encoded = self._encode(value)
            if len(encoded) > COMPRESS_THRESHOLD:
                data = gzip.compress(encoded.encode("utf-8"), mtime=0)
                encoded = COMPRESSED_PREFIX + base64.b64encode(data).decode("ascii")
            else:
                encoded = encoded.replace("\n", f"\n{indent}")
            lines.append(f"{indent}{key}: {encoded}\n")
        return "".join(lines)
