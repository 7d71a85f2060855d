"""SQLite memory store: users, chats, messages, memories.

Append-only. Nothing here updates or deletes a message or a memory.
"""

import json
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone

from ..types import Chat, Memory, MemoryKind, Message, Role, User
from .errors import StorageError


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _memory_from_row(row: sqlite3.Row) -> Memory:
    return Memory(
        id=row["id"],
        user_aid=row["user_aid"],
        kind=MemoryKind(row["kind"]),
        text=row["text"],
        embedding=json.loads(row["embedding"] or "[]"),
        created=datetime.fromisoformat(row["created"]),
    )


def _message_from_row(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        chat_id=row["chat_id"],
        role=Role(row["role"]),
        content=row["content"],
        created=datetime.fromisoformat(row["created"]),
    )


class SqliteStore:
    def __init__(self, store_path: str):
        os.makedirs(store_path, exist_ok=True)
        db_path = os.path.join(store_path, "memory.db")
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        # store calls arrive from asyncio.to_thread workers
        self._lock = threading.Lock()

    # Current schema version. Bump when adding new migrations.
    SCHEMA_VERSION = 2

    @contextmanager
    def _guard(self):
        with self._lock:
            try:
                yield self.conn
            except sqlite3.Error as e:
                raise StorageError(f"sqlite: {e}") from e

    def migrate(self) -> None:
        """Run all pending schema migrations in order."""
        with self._guard():
            current = self._get_schema_version()
            migrations = [
                self._migration_1_initial_schema,
                self._migration_2_indexes,
            ]
            for i, fn in enumerate(migrations, start=1):
                if current < i:
                    fn()
            self._set_schema_version(self.SCHEMA_VERSION)
            self.conn.commit()

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def _get_schema_version(self) -> int:
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version "
            "(id INTEGER PRIMARY KEY CHECK (id = 1), version INTEGER NOT NULL)"
        )
        row = self.conn.execute(
            "SELECT version FROM schema_version WHERE id = 1"
        ).fetchone()
        if row:
            return row[0]
        return 0

    def _set_schema_version(self, version: int) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO schema_version (id, version) VALUES (1, ?)",
            (version,),
        )

    # ------------------------------------------------------------------ #
    #  Schema migrations                                                   #
    # ------------------------------------------------------------------ #

    def _migration_1_initial_schema(self) -> None:
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS users (
                aid TEXT PRIMARY KEY,
                created TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS chats (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_aid TEXT NOT NULL UNIQUE REFERENCES users(aid),
                created TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                chat_id INTEGER NOT NULL REFERENCES chats(id),
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                created TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS memories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_aid TEXT NOT NULL REFERENCES users(aid),
                kind TEXT NOT NULL,
                text TEXT NOT NULL,
                embedding TEXT NOT NULL DEFAULT '[]',
                created TEXT NOT NULL
            );
        """)

    def _migration_2_indexes(self) -> None:
        self.conn.executescript("""
            CREATE INDEX IF NOT EXISTS idx_messages_chat_created
                ON messages(chat_id, created DESC);
            CREATE INDEX IF NOT EXISTS idx_memories_user_created
                ON memories(user_aid, created DESC);
            CREATE INDEX IF NOT EXISTS idx_memories_user_kind_created
                ON memories(user_aid, kind, created DESC);
        """)

    # ------------------------------------------------------------------ #
    #  Users and chats                                                     #
    # ------------------------------------------------------------------ #

    def upsert_user(self, aid: str) -> User:
        with self._guard() as conn:
            conn.execute(
                "INSERT INTO users (aid, created) VALUES (?, ?) "
                "ON CONFLICT(aid) DO NOTHING",
                (aid, _now()),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM users WHERE aid = ?", (aid,)
            ).fetchone()
        return User(aid=row["aid"], created=datetime.fromisoformat(row["created"]))

    def get_or_create_chat(self, aid: str) -> Chat:
        self.upsert_user(aid)
        with self._guard() as conn:
            conn.execute(
                "INSERT INTO chats (user_aid, created) VALUES (?, ?) "
                "ON CONFLICT(user_aid) DO NOTHING",
                (aid, _now()),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM chats WHERE user_aid = ?", (aid,)
            ).fetchone()
        return Chat(
            id=row["id"], user_aid=row["user_aid"],
            created=datetime.fromisoformat(row["created"]),
        )

    # ------------------------------------------------------------------ #
    #  Messages                                                            #
    # ------------------------------------------------------------------ #

    def append_message(self, chat_id: int, role: Role, content: str) -> Message:
        role = Role(role)
        now = _now()
        with self._guard() as conn:
            cur = conn.execute(
                "INSERT INTO messages (chat_id, role, content, created) "
                "VALUES (?, ?, ?, ?)",
                (chat_id, role.value, content, now),
            )
            conn.commit()
        return Message(
            id=cur.lastrowid, chat_id=chat_id, role=role,
            content=content, created=datetime.fromisoformat(now),
        )

    def count_messages(self, chat_id: int) -> int:
        with self._guard() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM messages WHERE chat_id = ?", (chat_id,)
            ).fetchone()
        return row[0]

    def recent_messages(self, chat_id: int, limit: int) -> list[Message]:
        """Newest first."""
        with self._guard() as conn:
            rows = conn.execute(
                "SELECT * FROM messages WHERE chat_id = ? "
                "ORDER BY created DESC, id DESC LIMIT ?",
                (chat_id, limit),
            ).fetchall()
        return [_message_from_row(r) for r in rows]

    # ------------------------------------------------------------------ #
    #  Memories                                                            #
    # ------------------------------------------------------------------ #

    def append_memory(
        self, aid: str, kind: MemoryKind, text: str,
        embedding: list[float] | None = None,
    ) -> Memory:
        kind = MemoryKind(kind)
        embedding = list(embedding or [])
        now = _now()
        with self._guard() as conn:
            cur = conn.execute(
                "INSERT INTO memories (user_aid, kind, text, embedding, created) "
                "VALUES (?, ?, ?, ?, ?)",
                (aid, kind.value, text, json.dumps(embedding), now),
            )
            conn.commit()
        return Memory(
            id=cur.lastrowid, user_aid=aid, kind=kind, text=text,
            embedding=embedding, created=datetime.fromisoformat(now),
        )

    def list_recent_memories(
        self, aid: str, kind: MemoryKind, limit: int,
    ) -> list[Memory]:
        """Most recent `limit` memories of one kind, newest first."""
        with self._guard() as conn:
            rows = conn.execute(
                "SELECT * FROM memories WHERE user_aid = ? AND kind = ? "
                "ORDER BY created DESC, id DESC LIMIT ?",
                (aid, MemoryKind(kind).value, limit),
            ).fetchall()
        return [_memory_from_row(r) for r in rows]

    def list_memories(self, aid: str, cap: int = 500) -> list[Memory]:
        """Up to `cap` memories of any kind, newest first."""
        with self._guard() as conn:
            rows = conn.execute(
                "SELECT * FROM memories WHERE user_aid = ? "
                "ORDER BY created DESC, id DESC LIMIT ?",
                (aid, cap),
            ).fetchall()
        return [_memory_from_row(r) for r in rows]
