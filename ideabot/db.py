"""SQLite audit log."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from ideabot.models import MessageRecord

SCHEMA_VERSION = 1


class Database:
    """Insert-only store for MessageRecord audit entries."""

    def __init__(self, path: Path) -> None:
        self._path = path
        # Single writer: inserts land in the order they were requested.
        self._write_lock = threading.Lock()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create or migrate schema."""

        self._path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        with self._connect() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                self._create_schema(conn)
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            elif row["version"] != SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {row['version']} (expected {SCHEMA_VERSION})"
                )

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                chat_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                username TEXT,
                text TEXT NOT NULL,
                is_bot INTEGER NOT NULL,
                type TEXT NOT NULL,
                created TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_messages_chat ON messages(chat_id, id);
            """
        )

    def add_message(self, record: MessageRecord) -> int:
        with self._write_lock, self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO messages(chat_id, user_id, username, text, is_bot, type, created)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.chat_id,
                    record.user_id,
                    record.username,
                    record.text,
                    int(record.is_bot),
                    record.category,
                    record.timestamp.isoformat(),
                ),
            )
            return int(cur.lastrowid)

    def recent_messages(self, chat_id: int, limit: int = 20) -> list[dict[str, Any]]:
        """Return the latest records for a chat, oldest first."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, chat_id, user_id, username, text, is_bot, type, created
                FROM messages
                WHERE chat_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (chat_id, limit),
            ).fetchall()
        return [dict(row) for row in reversed(rows)]
