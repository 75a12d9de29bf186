"""Application entrypoint."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

from ideabot.autoreply import AutoReplyTable
from ideabot.commands import CommandDispatcher
from ideabot.config import ConfigError, ConfigStore, Settings, load_settings, run_allowed_users
from ideabot.db import Database
from ideabot.llm.ollama import OllamaResponder
from ideabot.router import RoutingEngine
from ideabot.task_queue import TaskQueue
from ideabot.telegram_adapter import TelegramAdapter, TransportError

LOGGER = logging.getLogger(__name__)


async def run(settings: Settings) -> None:
    """Initialize app layers and start processing loop."""

    config = ConfigStore(settings.config_path)
    config.load()
    token = config.resolve_bot_token(settings.telegram_bot_token)

    db = Database(settings.database_path)
    db.initialize()

    autoreplies = AutoReplyTable(settings.autoreply_path)
    autoreplies.ensure_loaded()

    tasks = TaskQueue(settings.process_path)
    for stale in tasks.active():
        LOGGER.warning(
            "Task %s (%s by %s) was left %s by a previous run: %s",
            stale.id,
            stale.type.value,
            stale.user,
            stale.status.value,
            stale.info,
        )

    allowed = run_allowed_users(settings)
    if not allowed:
        LOGGER.warning("RUN_ALLOWED_USERS is empty: /run executes commands for any user")

    adapter = TelegramAdapter(
        token=token,
        base_url=settings.telegram_base_url,
        poll_timeout_seconds=settings.telegram_poll_timeout_seconds,
    )
    try:
        me = await adapter.get_me()
    except TransportError:
        await adapter.close()
        raise
    bot_username = settings.bot_username or str(me.get("username") or "")
    LOGGER.info("Authorized on account %s", bot_username)

    engine = RoutingEngine(
        db=db,
        config=config,
        autoreplies=autoreplies,
        ai=OllamaResponder(settings.ollama_base_url, settings.request_timeout_seconds),
        commands=CommandDispatcher(
            tasks=tasks,
            shell_timeout_seconds=settings.shell_timeout_seconds,
            run_allowed_users=allowed,
        ),
        tasks=tasks,
        bot_username=bot_username,
    )

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, _request_stop, adapter)

    LOGGER.info("Bot started. Listening for messages...")
    try:
        async for event in adapter.poll_events():
            try:
                reply = await engine.handle_event(event)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Unhandled error while processing event from chat %s", event.chat_id)
                continue
            if reply is not None:
                await adapter.deliver(event.chat_id, reply)
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)
        await adapter.close()
        LOGGER.info("Bot stopped")


def _request_stop(adapter: TelegramAdapter) -> None:
    LOGGER.info("Shutdown signal received")
    adapter.stop()


def main() -> None:
    """Synchronous wrapper for asyncio entrypoint."""

    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(run(settings))
    except (ConfigError, TransportError) as exc:
        LOGGER.error("Cannot start bot: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
