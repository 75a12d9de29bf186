"""Generative backend interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

DEFAULT_MODEL = "llama3"

DEFAULT_PROMPT = (
    "You are a software engineering assistant bot in a Telegram group. "
    "Be concise and helpful."
)


class AIError(RuntimeError):
    """Raised when the backend call fails or returns an unusable body."""

    def __init__(self, message: str, body: str | None = None) -> None:
        super().__init__(message)
        self.body = body


class AIResponder(ABC):
    """Single-shot text generation used by the routing engine."""

    @abstractmethod
    async def respond(self, prompt: str, model: str) -> str:
        """Return generated text or raise ``AIError``."""


def build_prompt(base_prompt: str, text: str, category: str | None = None) -> str:
    """Combine the configured system prompt with a user message."""

    context = base_prompt.strip() or DEFAULT_PROMPT
    if category:
        context = f"{context} Message type: {category}."
    return f"{context}\n\nUser message: {text}"
