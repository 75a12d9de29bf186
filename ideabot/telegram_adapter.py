"""Telegram Bot API adapter."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, AsyncIterator

import httpx

from ideabot.commands import parse_command
from ideabot.models import ChatEvent

LOGGER = logging.getLogger(__name__)

# Telegram rejects longer message texts.
MAX_MESSAGE_LENGTH = 4096


class TransportError(RuntimeError):
    """Raised when a Bot API call fails."""


class TelegramAdapter:
    """Long-polling event source and reply sink for one bot token."""

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.telegram.org",
        poll_timeout_seconds: int = 60,
        retry_delay_seconds: float = 5.0,
    ) -> None:
        self._poll_timeout_seconds = poll_timeout_seconds
        self._retry_delay_seconds = retry_delay_seconds
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/bot{token}",
            timeout=httpx.Timeout(30.0),
        )
        self._offset = 0
        self._stop_event = asyncio.Event()

    async def get_me(self) -> dict[str, Any]:
        """Return the bot's own user record; failure here is fatal at startup."""

        result = await self._call("getMe")
        if not isinstance(result, dict):
            raise TransportError("getMe returned no user")
        return result

    def stop(self) -> None:
        """Stop pulling new updates after the current event."""

        self._stop_event.set()

    async def poll_events(self) -> AsyncIterator[ChatEvent]:
        """Long-poll getUpdates and yield normalized chat events."""

        while not self._stop_event.is_set():
            try:
                updates = await self._next_updates()
            except TransportError as exc:
                LOGGER.warning("Telegram getUpdates failed: %s", exc)
                await self._sleep_unless_stopped(self._retry_delay_seconds)
                continue
            if updates is None:
                break

            for update in updates:
                if self._stop_event.is_set():
                    return
                try:
                    self._offset = max(self._offset, int(update["update_id"]) + 1)
                except (KeyError, TypeError, ValueError):
                    continue
                event = to_event(update)
                if event is not None:
                    yield event

    async def send_message(self, chat_id: int, text: str) -> None:
        """Send text to a chat, raising ``TransportError`` on failure."""

        if len(text) > MAX_MESSAGE_LENGTH:
            text = text[: MAX_MESSAGE_LENGTH - 1] + "…"
        await self._call("sendMessage", {"chat_id": chat_id, "text": text})

    async def deliver(self, chat_id: int, text: str) -> None:
        """Send a reply, logging instead of raising when delivery fails."""

        try:
            await self.send_message(chat_id, text)
        except TransportError as exc:
            LOGGER.warning("Failed to send reply to chat %s: %s", chat_id, exc)

    async def close(self) -> None:
        """Acknowledge consumed updates and release the HTTP session."""

        if self._offset:
            try:
                await self._call("getUpdates", {"offset": self._offset, "timeout": 0})
            except TransportError as exc:
                LOGGER.warning("Failed to acknowledge updates up to %s: %s", self._offset, exc)
        await self._client.aclose()

    async def _next_updates(self) -> list[dict[str, Any]] | None:
        params = {
            "offset": self._offset,
            "timeout": self._poll_timeout_seconds,
            "allowed_updates": ["message"],
        }
        poll = asyncio.ensure_future(
            self._call("getUpdates", params, timeout=self._poll_timeout_seconds + 10)
        )
        stopped = asyncio.ensure_future(self._stop_event.wait())
        done, _ = await asyncio.wait({poll, stopped}, return_when=asyncio.FIRST_COMPLETED)
        if poll not in done:
            poll.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await poll
            return None
        stopped.cancel()
        result = poll.result()
        return [item for item in result if isinstance(item, dict)] if isinstance(result, list) else []

    async def _sleep_unless_stopped(self, seconds: float) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)

    async def _call(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        kwargs: dict[str, Any] = {"json": params or {}}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await self._client.post(f"/{method}", **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} failed: {exc.__class__.__name__}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise TransportError(f"{method} returned a non-JSON body (HTTP {response.status_code})") from exc
        if not isinstance(data, dict) or not data.get("ok"):
            description = data.get("description") if isinstance(data, dict) else None
            raise TransportError(f"{method} failed: {description or response.status_code}")
        return data.get("result")


def to_event(update: dict[str, Any]) -> ChatEvent | None:
    """Map a Bot API update to a ChatEvent, or None for non-message updates."""

    message = update.get("message")
    if not isinstance(message, dict):
        return None
    chat = message.get("chat")
    sender = message.get("from")
    if not isinstance(chat, dict) or not isinstance(sender, dict):
        return None
    try:
        chat_id = int(chat["id"])
        user_id = int(sender["id"])
    except (KeyError, TypeError, ValueError):
        return None

    text = message.get("text")
    text = text if isinstance(text, str) else ""
    username = str(sender.get("username") or sender.get("first_name") or "")

    entities = message.get("entities")
    starts_with_command = isinstance(entities, list) and any(
        isinstance(entity, dict)
        and entity.get("type") == "bot_command"
        and entity.get("offset") == 0
        for entity in entities
    )
    parsed = parse_command(text) if starts_with_command else None

    return ChatEvent(
        chat_id=chat_id,
        user_id=user_id,
        username=username,
        text=text,
        is_bot=bool(sender.get("is_bot", False)),
        is_command=parsed is not None,
        command_name=parsed[0] if parsed else None,
        command_args=parsed[1] if parsed else None,
    )
