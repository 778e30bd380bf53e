"""Helpers for JSON object documents (declared data, API responses)."""

from __future__ import annotations

import json
from typing import Any

KEY_SEPARATOR = "/"


def parse_object(raw: str | None) -> dict[str, Any]:
    """Parse *raw* as a JSON object. Empty input yields an empty object.

    Raises:
        ValueError: *raw* is not valid JSON or not an object.
    """
    if not raw:
        return {}
    value = json.loads(raw)
    if not isinstance(value, dict):
        raise ValueError(f"expected a JSON object, got {type(value).__name__}")
    return value


def dump_object(doc: dict[str, Any]) -> str:
    """Serialize *doc* to a stable JSON string."""
    return json.dumps(doc, sort_keys=True, separators=(",", ":"))


def get_key(doc: Any, key: str, default: Any = None, *, sep: str = KEY_SEPARATOR) -> Any:
    """Resolve a ``/``-separated key (e.g. ``attributes/id``) in a nested document."""
    current = doc
    for segment in key.split(sep):
        if not isinstance(current, dict) or segment not in current:
            return default
        current = current[segment]
    return current


def set_key(doc: dict[str, Any], key: str, value: Any) -> None:
    """Set a ``/``-separated key, creating intermediate objects as needed."""
    *parents, last = key.split(KEY_SEPARATOR)
    current = doc
    for segment in parents:
        current = current.setdefault(segment, {})
    current[last] = value


def id_to_text(value: Any) -> str:
    """Render an identifier found in a document as text (``42.0`` -> ``"42"``)."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
