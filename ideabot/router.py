"""Per-event routing decisions.

Every event is audited first, then the first matching rule produces the
reply: model directive, explicit AI trigger, command, implicit trigger.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from typing import TYPE_CHECKING

from ideabot.autoreply import lookup
from ideabot.classifier import classify, keyword_family
from ideabot.llm.base import DEFAULT_MODEL, AIError, build_prompt
from ideabot.models import ChatEvent, MessageRecord, ProcessTask, TaskType
from ideabot.task_queue import TaskTracker

if TYPE_CHECKING:
    from ideabot.autoreply import AutoReplyTable
    from ideabot.commands import CommandDispatcher
    from ideabot.config import ConfigStore
    from ideabot.db import Database
    from ideabot.llm.base import AIResponder
    from ideabot.task_queue import TaskQueue

LOGGER = logging.getLogger(__name__)

_MODEL_DIRECTIVE_RE = re.compile(
    r"(?:^|\s)[/@]?ai(?:@\w+)?\s+ollama\s+model\s+set\s+([A-Za-z0-9_-]+)(?=\s|$)",
    re.IGNORECASE,
)
_AI_TRIGGER_RE = re.compile(r"(?<![\w/@])[/@]ai(?![\w-])", re.IGNORECASE)
_COMMAND_TOKEN_RE = re.compile(r"^/\w+")


def parse_model_directive(text: str) -> str | None:
    """Return the model name from an ``ai ollama model set <name>`` directive."""

    match = _MODEL_DIRECTIVE_RE.search(text)
    return match.group(1) if match else None


def has_ai_trigger(text: str) -> bool:
    """True when ``/ai`` or ``@ai`` appears as a standalone token."""

    return _AI_TRIGGER_RE.search(text) is not None


def should_respond(
    text: str,
    chat_id: int,
    category: str,
    known_categories: frozenset[str] = frozenset(),
    bot_username: str | None = None,
) -> bool:
    """Decide whether a non-command message deserves a reply."""

    mentioned = bool(bot_username) and f"@{bot_username.lower()}" in text.lower()
    # Telegram gives private chats positive ids and groups negative ones.
    is_direct = chat_id > 0
    is_question = "?" in text
    is_command = _COMMAND_TOKEN_RE.match(text) is not None
    keyword_match = category in known_categories or keyword_family(category) in known_categories
    return mentioned or is_direct or is_question or is_command or keyword_match


class RoutingEngine:
    """Turns one ChatEvent into at most one reply."""

    def __init__(
        self,
        db: Database,
        config: ConfigStore,
        autoreplies: AutoReplyTable,
        ai: AIResponder,
        commands: CommandDispatcher,
        tasks: TaskQueue | None = None,
        bot_username: str | None = None,
    ) -> None:
        self._db = db
        self._config = config
        self._autoreplies = autoreplies
        self._ai = ai
        self._commands = commands
        self._tracker = TaskTracker(tasks)
        self._bot_username = (bot_username or "").lstrip("@") or None

    async def handle_event(self, event: ChatEvent) -> str | None:
        """Audit the event and return the reply to send, if any."""

        category = classify(event.text)
        self._audit(event, category)
        LOGGER.info(
            "[%s] chat=%s user=%s text=%r",
            category.upper(),
            event.chat_id,
            event.username,
            event.text,
        )

        model = parse_model_directive(event.text)
        if model is not None:
            return self._apply_model_directive(model)

        if has_ai_trigger(event.text):
            return await self._explicit_ai_reply(event)

        if event.is_command:
            return await self._commands.dispatch(event)

        if not should_respond(
            event.text,
            event.chat_id,
            category,
            self._autoreplies.categories(),
            self._bot_username,
        ):
            return None
        return await self._smart_reply(event, category)

    def _audit(self, event: ChatEvent, category: str) -> None:
        try:
            self._db.add_message(MessageRecord.from_event(event, category))
        except (sqlite3.Error, OSError):
            LOGGER.exception("Failed to audit message from chat %s", event.chat_id)

    def _apply_model_directive(self, model: str) -> str:
        if self._config.set_default_ai_model(model):
            return f"✅ AI model set to {model}"
        return f"⚠️ AI model set to {model} for this session only; saving the config failed."

    async def _explicit_ai_reply(self, event: ChatEvent) -> str:
        config = self._config.snapshot()
        prompt = build_prompt(config.default_ai_prompt, event.text)
        task = ProcessTask(type=TaskType.AI, user=event.username, chat_id=event.chat_id, info=event.text)
        self._tracker.start(task)
        try:
            reply = await self._ai.respond(prompt, config.default_ai_model or DEFAULT_MODEL)
        except AIError as exc:
            LOGGER.warning("AI request failed: %s", exc)
            self._tracker.finish(task, ok=False, info=str(exc))
            return f"[AI error] {exc}"
        self._tracker.finish(task, ok=True)
        return reply

    async def _smart_reply(self, event: ChatEvent, category: str) -> str:
        config = self._config.snapshot()
        prompt = build_prompt(config.default_ai_prompt, event.text, category)
        try:
            return await self._ai.respond(prompt, config.default_ai_model or DEFAULT_MODEL)
        except AIError as exc:
            LOGGER.info("AI unavailable, using autoreply for %s: %s", category, exc)
            return lookup(category)
