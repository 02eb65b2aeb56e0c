"""Cleaning for Stripe metadata mappings."""

from collections.abc import Mapping
from typing import Any

# Stripe rejects metadata values longer than this
MAX_VALUE_LENGTH = 500


def clean_value(value: Any) -> str | None:
    """Trim a metadata value; blanks and None become None."""
    if value is None:
        return None
    if isinstance(value, bool):
        value = "true" if value else "false"
    text = str(value).strip()
    return text[:MAX_VALUE_LENGTH] if text else None


def clean_metadata(metadata: Mapping[str, Any] | None) -> dict[str, str]:
    """Return a copy with trimmed keys and values, without blank entries.

    >>> clean_metadata({"a": " ", "b": "x", "c": ""})
    {'b': 'x'}
    """
    cleaned: dict[str, str] = {}
    if not metadata:
        return cleaned
    for key, value in metadata.items():
        clean_key = str(key).strip() if key is not None else ""
        clean_val = clean_value(value)
        if clean_key and clean_val is not None:
            cleaned[clean_key] = clean_val
    return cleaned
