"""Helpers to sanitize environment variable values before validation."""

from __future__ import annotations

import json
from typing import Any


def strip_inline_comment(value: str) -> str:
    """Remove inline comments of the form "value  # comment".

    A ``#`` without preceding whitespace is kept so values such as
    ``token#1`` survive.
    """
    idx = value.find("#")
    if idx == -1:
        return value.strip()
    if idx == 0:
        return ""
    if not value[idx - 1].isspace():
        return value.strip()
    return value[:idx].strip()


def sanitize_inline_numeric(value: Any) -> Any:
    """Normalize numeric env vars that may include inline comments."""
    if isinstance(value, str):
        cleaned = strip_inline_comment(value)
        if cleaned:
            return cleaned
    return value


def split_channel_list(value: Any) -> Any:
    """Accept ``EMAIL,PUSH`` or a JSON list for channel list settings.

    Entries are stripped and upper-cased, empties dropped. Non-string,
    non-list values pass through for the field validator to reject.
    """
    if isinstance(value, str):
        cleaned = strip_inline_comment(value)
        if cleaned.startswith("["):
            value = json.loads(cleaned)
        else:
            value = cleaned.split(",")
    if isinstance(value, (list, tuple)):
        return [str(item).strip().upper() for item in value if str(item).strip()]
    return value
