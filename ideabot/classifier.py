"""Keyword based message classification."""

from __future__ import annotations

DEFAULT_CATEGORY = "message"

# Ordered: the first family with a matching keyword wins.
_KEYWORD_FAMILIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("issue", ("issue", "bug", "error", "problem")),
    ("feature_request", ("feature", "enhancement", "request", "add")),
    ("question", ("question", "how", "what", "?")),
)

CATEGORIES: tuple[str, ...] = (*(name for name, _ in _KEYWORD_FAMILIES), DEFAULT_CATEGORY)


def classify(text: str) -> str:
    """Return the category tag for a message text.

    Matching is a case-insensitive substring test, so "address" counts as
    "add" and "whatever" counts as "what".
    """
    lowered = text.lower()
    for category, keywords in _KEYWORD_FAMILIES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def keyword_family(category: str) -> str:
    """Map a category to the family name used by the autoreply table."""

    return category.split("_", 1)[0]
