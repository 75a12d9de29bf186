"""Core domain models used across layers."""

from __future__ import annotations

import os
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


@dataclass(frozen=True, slots=True)
class ChatEvent:
    """Inbound chat message normalized by the transport adapter."""

    chat_id: int
    user_id: int
    username: str
    text: str
    is_bot: bool = False
    is_command: bool = False
    command_name: str | None = None
    command_args: str | None = None


@dataclass(slots=True)
class MessageRecord:
    """Append-only audit entry written once per inbound event."""

    chat_id: int
    user_id: int
    username: str
    text: str
    is_bot: bool
    category: str
    timestamp: datetime

    @classmethod
    def from_event(cls, event: ChatEvent, category: str) -> MessageRecord:
        return cls(
            chat_id=event.chat_id,
            user_id=event.user_id,
            username=event.username,
            text=event.text,
            is_bot=event.is_bot,
            category=category,
            timestamp=datetime.now(timezone.utc),
        )


class AutoReply(BaseModel):
    """One canned reply in the persisted autoreply table."""

    id: int
    category: str
    reply: str
    context: str = ""


class TaskType(str, Enum):
    AI = "ai"
    COMMAND = "command"


class TaskStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class ProcessTask(BaseModel):
    """Durable record of a longer-running action triggered from chat."""

    id: str = Field(default_factory=lambda: new_task_id())
    type: TaskType
    user: str
    chat_id: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: TaskStatus = TaskStatus.QUEUED
    info: str = ""

    @property
    def resolved(self) -> bool:
        return self.status in (TaskStatus.DONE, TaskStatus.ERROR)


def new_task_id() -> str:
    """Return an id that stays unique across threads and processes."""

    return f"{time.time_ns()}-{os.getpid()}-{secrets.token_hex(4)}"
