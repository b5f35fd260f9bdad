"""Shared text-field validation for usernames, display names and messages."""

from __future__ import annotations

from relay.exceptions import ValidationError

DEFAULT_MAX_LENGTH = 100


def validate_text(
    value: object,
    *,
    field: str,
    max_length: int = DEFAULT_MAX_LENGTH,
    allow_empty: bool = False,
) -> str:
    """Return *value* trimmed, or raise ``ValidationError``.

    The value must be a string; after stripping surrounding whitespace it
    must be non-empty (unless *allow_empty*) and at most *max_length*
    characters long.
    """
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if not text and not allow_empty:
        raise ValidationError(f"{field} must not be empty")
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text
