"""Text helpers for program names and queries."""

from __future__ import annotations


def normalize_name(text: str) -> str:
    """Lowercase and collapse runs of whitespace into single spaces."""
    return " ".join(text.lower().split())


def first_alnum(text: str, default: str = "?") -> str:
    """Return the first alphanumeric character of `text`, uppercased."""
    for char in text:
        if char.isalnum():
            return char.upper()
    return default


def contains_keyword(text: str, keywords: tuple[str, ...] | list[str]) -> bool:
    """Case-insensitive check for any of `keywords` inside `text`."""
    lowered = text.lower()
    return any(keyword.lower() in lowered for keyword in keywords if keyword)
