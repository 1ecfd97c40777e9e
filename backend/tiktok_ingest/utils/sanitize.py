"""Free-text sanitization for upstream strings.

Scraped titles and bios arrive with control characters, half-written escape
sequences and lone surrogates that break JSON columns downstream.
"""
import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_INCOMPLETE_HEX_ESCAPE = re.compile(r"\\x(?![0-9A-Fa-f]{2})")
_INCOMPLETE_UNICODE_ESCAPE = re.compile(r"\\u(?![0-9A-Fa-f]{4})")
_LONE_BACKSLASH = re.compile(r"\\(?![\"\\/bfnrtux])")
_SURROGATES = re.compile(r"[\ud800-\udfff]")


def _sanitize_once(value: str) -> str:
    value = _CONTROL_CHARS.sub("", value)
    value = _INCOMPLETE_HEX_ESCAPE.sub("", value)
    value = _INCOMPLETE_UNICODE_ESCAPE.sub("", value)
    value = _LONE_BACKSLASH.sub("", value)
    return _SURROGATES.sub("", value)


def sanitize_string(value: str | None) -> str | None:
    """Strip control characters, broken escapes and unpaired surrogates.

    Passes are repeated until the text stops changing, so the result is a
    fixed point and sanitizing it again is a no-op. ``None`` and empty strings
    are returned unchanged.
    """
    if not value or not isinstance(value, str):
        return value
    while True:
        cleaned = _sanitize_once(value)
        if cleaned == value:
            return cleaned
        value = cleaned


def _sanitize_value(value: Any) -> Any:
    if isinstance(value, str):
        return sanitize_string(value)
    if isinstance(value, dict):
        return {key: _sanitize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize_value(item) for item in value]
    return value


def safe_serialize(data: Any) -> Any:
    """Return a JSON-safe, sanitized copy of ``data`` for a JSON column.

    Falls back to an empty list (or dict) when the value cannot be serialized,
    so one malformed field never aborts the post that carries it.
    """
    try:
        return json.loads(json.dumps(_sanitize_value(data)))
    except (TypeError, ValueError):
        logger.exception("Error serializing data, falling back to empty value")
        return [] if isinstance(data, (list, tuple)) else {}
