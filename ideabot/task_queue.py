"""Durable queue of long-running chat tasks (``process.json``)."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from ideabot.jsonstore import read_json, write_json_atomic
from ideabot.models import ProcessTask, TaskStatus

LOGGER = logging.getLogger(__name__)

_TASK_LIST = TypeAdapter(list[ProcessTask])


class TaskQueue:
    """File-backed task list.

    Every public method holds one lock for its whole load-modify-save cycle,
    so concurrent callers in this process never lose each other's writes.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    def load(self) -> list[ProcessTask]:
        with self._lock:
            return self._load_locked()

    def save(self, tasks: list[ProcessTask]) -> None:
        with self._lock:
            self._save_locked(tasks)

    def add(self, task: ProcessTask) -> None:
        with self._lock:
            tasks = self._load_locked()
            if any(existing.id == task.id for existing in tasks):
                raise ValueError(f"Task id {task.id!r} already queued")
            tasks.append(task)
            self._save_locked(tasks)

    def update(self, task_id: str, status: TaskStatus, info: str | None = None) -> bool:
        """Move a task to a new status. Returns False if the id is unknown."""

        with self._lock:
            tasks = self._load_locked()
            for task in tasks:
                if task.id == task_id:
                    task.status = status
                    if info is not None:
                        task.info = info
                    self._save_locked(tasks)
                    return True
            return False

    def remove(self, task_id: str) -> None:
        with self._lock:
            tasks = self._load_locked()
            remaining = [task for task in tasks if task.id != task_id]
            if len(remaining) != len(tasks):
                self._save_locked(remaining)

    def active(self) -> list[ProcessTask]:
        with self._lock:
            return [task for task in self._load_locked() if not task.resolved]

    def _load_locked(self) -> list[ProcessTask]:
        try:
            raw = read_json(self._path)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as exc:
            LOGGER.warning("Task queue %s is unreadable, treating as empty: %s", self._path, exc)
            return []
        try:
            return _TASK_LIST.validate_python(raw)
        except ValidationError as exc:
            LOGGER.warning("Task queue %s is invalid, treating as empty: %s", self._path, exc)
            return []

    def _save_locked(self, tasks: list[ProcessTask]) -> None:
        write_json_atomic(self._path, _TASK_LIST.dump_python(tasks, mode="json"))


class TaskTracker:
    """Best-effort lifecycle bookkeeping for tasks run inside an event.

    Store failures are logged and never interrupt the work being tracked.
    """

    def __init__(self, queue: TaskQueue | None) -> None:
        self._queue = queue

    def start(self, task: ProcessTask) -> None:
        if self._queue is None:
            return
        try:
            self._queue.add(task)
            self._queue.update(task.id, TaskStatus.RUNNING)
        except (OSError, ValueError):
            LOGGER.exception("Failed to record task %s", task.id)

    def finish(self, task: ProcessTask, ok: bool, info: str | None = None) -> None:
        """Record the final status, then drop the resolved task."""

        if self._queue is None:
            return
        status = TaskStatus.DONE if ok else TaskStatus.ERROR
        try:
            self._queue.update(task.id, status, info)
            self._queue.remove(task.id)
        except OSError:
            LOGGER.exception("Failed to resolve task %s as %s", task.id, status.value)
