"""Canned replies used when the AI backend is unavailable."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from ideabot.jsonstore import read_json, write_json_atomic
from ideabot.models import AutoReply

LOGGER = logging.getLogger(__name__)

DEFAULT_AUTO_REPLIES: tuple[AutoReply, ...] = (
    AutoReply(
        id=1,
        category="greeting",
        reply="👋 Hello! I'm here to help with software engineering tasks.",
        context="when users greet the bot",
    ),
    AutoReply(
        id=2,
        category="issue",
        reply=(
            "🐛 I see you've mentioned an issue. Can you provide more details like steps to "
            "reproduce, expected vs actual behavior?"
        ),
        context="when users report bugs or issues",
    ),
    AutoReply(
        id=3,
        category="feature",
        reply="💡 Interesting feature idea! Let's break it down. What's the main use case and expected outcome?",
        context="when users suggest new features",
    ),
    AutoReply(
        id=4,
        category="question",
        reply="🤔 Good question! Let me help you with that. Can you provide more context?",
        context="when users ask questions",
    ),
    AutoReply(
        id=5,
        category="code",
        reply="💻 I can help with code review, debugging, or implementation suggestions. Share your code!",
        context="when users mention code-related topics",
    ),
)

# Fallback replies actually sent to chats. Separate from the persisted table.
_FALLBACK_REPLIES: dict[str, tuple[str, ...]] = {
    "issue": (
        "🐛 I see you've mentioned an issue. Can you provide more details?",
        "📝 Please create a detailed issue report with steps to reproduce.",
        "🔍 Let me help you troubleshoot this problem.",
    ),
    "feature_request": (
        "💡 Interesting feature idea! Let's discuss the requirements.",
        "🚀 That sounds like a useful enhancement. Can you elaborate?",
        "📋 I'll help you draft a proper feature request.",
    ),
    "question": (
        "🤔 Good question! Let me think about this...",
        "📚 I can help you with that. Here's what I know:",
        "💭 Interesting question. Let me research that for you.",
    ),
    "default": (
        "👍 Noted! I'm tracking this conversation.",
        "📊 I'm here to help with software engineering tasks.",
        "🤖 How can I assist with your development work?",
    ),
}

_REPLY_LIST = TypeAdapter(list[AutoReply])


def lookup(category: str) -> str:
    """Return the fallback reply for a category.

    The index is ``len(candidates) % 3``, which always selects the same entry
    for the three-entry lists above.
    """
    candidates = _FALLBACK_REPLIES.get(category, _FALLBACK_REPLIES["default"])
    return candidates[len(candidates) % 3]


class AutoReplyTable:
    """File-backed autoreply table (``auto.json``)."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._replies: list[AutoReply] = []

    @property
    def replies(self) -> list[AutoReply]:
        return list(self._replies)

    def ensure_loaded(self) -> list[AutoReply]:
        """Load the table, seeding it when the store is missing or empty."""

        replies = self._read()
        if not replies:
            return self.regenerate()
        self._replies = replies
        return list(replies)

    def regenerate(self) -> list[AutoReply]:
        """Overwrite the store with the default seed."""

        seed = [reply.model_copy() for reply in DEFAULT_AUTO_REPLIES]
        self._replies = seed
        try:
            write_json_atomic(self._path, _REPLY_LIST.dump_python(seed, mode="json"))
        except OSError:
            LOGGER.exception("Error creating %s", self._path)
        else:
            LOGGER.info("Generated %s with default replies", self._path)
        return list(seed)

    def categories(self) -> frozenset[str]:
        return frozenset(reply.category for reply in self._replies)

    def _read(self) -> list[AutoReply]:
        try:
            raw = read_json(self._path)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as exc:
            LOGGER.warning("Autoreply table %s is unreadable, regenerating: %s", self._path, exc)
            return []
        try:
            return _REPLY_LIST.validate_python(raw)
        except ValidationError as exc:
            LOGGER.warning("Autoreply table %s is invalid, regenerating: %s", self._path, exc)
            return []
