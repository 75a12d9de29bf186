"""Command dispatcher for /-prefixed messages.

``/run`` executes a command line, ``/status`` reports liveness, and every
other command is acknowledged without further action.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from ideabot.models import ChatEvent, ProcessTask, TaskType
from ideabot.shell import ShellResult, run_command
from ideabot.task_queue import TaskTracker

if TYPE_CHECKING:
    from ideabot.task_queue import TaskQueue

LOGGER = logging.getLogger(__name__)

STATUS_REPLY = "🤖 Bot is running and tracking conversations."
RUN_DENIED_REPLY = "⛔ /run is not allowed for this user."

_COMMAND_RE = re.compile(r"^/([A-Za-z0-9_]+)(?:@[A-Za-z0-9_]+)?(?:\s+(.*))?$", re.DOTALL)


def parse_command(text: str) -> tuple[str, str] | None:
    """Split a /-prefixed message into (command, args).

    Returns:
        A (command, args) tuple where command is lowercased and any
        ``@botname`` suffix is dropped, or None if text is not a command.
    """
    match = _COMMAND_RE.match(text.strip())
    if match is None:
        return None
    return match.group(1).lower(), (match.group(2) or "").strip()


def format_shell_result(result: ShellResult) -> str:
    if result.ok:
        return f"💻 Output:\n{result.output}"
    if result.output.strip():
        return f"❌ Error: {result.error}\n{result.output}"
    return f"❌ Error: {result.error}"


class CommandDispatcher:
    """Routes command events to their handlers."""

    def __init__(
        self,
        tasks: TaskQueue | None = None,
        shell_timeout_seconds: float = 60.0,
        run_allowed_users: frozenset[int] = frozenset(),
    ) -> None:
        self._tracker = TaskTracker(tasks)
        self._shell_timeout_seconds = shell_timeout_seconds
        self._run_allowed_users = run_allowed_users

    async def dispatch(self, event: ChatEvent) -> str:
        """Return the reply for a command event."""

        command = (event.command_name or "").lower()
        args = (event.command_args or "").strip()
        LOGGER.info("Command dispatch: command=%r args=%r", command, args)
        if command == "run" and args:
            return await self._handle_run(event, args)
        if command == "status":
            return STATUS_REPLY
        return f"⚡ Command processed: /{command}"

    async def _handle_run(self, event: ChatEvent, cmdline: str) -> str:
        if self._run_allowed_users and event.user_id not in self._run_allowed_users:
            LOGGER.warning("Rejected /run from user %s (%s)", event.user_id, event.username)
            return RUN_DENIED_REPLY

        task = ProcessTask(type=TaskType.COMMAND, user=event.username, chat_id=event.chat_id, info=cmdline)
        self._tracker.start(task)
        result = await run_command(cmdline, self._shell_timeout_seconds)
        self._tracker.finish(task, result.ok, result.error or None)
        return format_shell_result(result)
