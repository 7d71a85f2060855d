"""Postgres memory store. Used when DATABASE_URL is set.

Same method surface as SqliteStore. Embeddings live in a JSONB column.
"""

from contextlib import contextmanager

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from ..types import Chat, Memory, MemoryKind, Message, Role, User
from .errors import StorageError

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    aid TEXT PRIMARY KEY,
    created TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE TABLE IF NOT EXISTS chats (
    id BIGSERIAL PRIMARY KEY,
    user_aid TEXT NOT NULL UNIQUE REFERENCES users(aid),
    created TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE TABLE IF NOT EXISTS messages (
    id BIGSERIAL PRIMARY KEY,
    chat_id BIGINT NOT NULL REFERENCES chats(id),
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    created TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE TABLE IF NOT EXISTS memories (
    id BIGSERIAL PRIMARY KEY,
    user_aid TEXT NOT NULL REFERENCES users(aid),
    kind TEXT NOT NULL,
    text TEXT NOT NULL,
    embedding JSONB NOT NULL DEFAULT '[]'::jsonb,
    created TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_messages_chat_created
    ON messages(chat_id, created DESC);
CREATE INDEX IF NOT EXISTS idx_memories_user_created
    ON memories(user_aid, created DESC);
CREATE INDEX IF NOT EXISTS idx_memories_user_kind_created
    ON memories(user_aid, kind, created DESC);
"""


def _memory_from_row(row: dict) -> Memory:
    return Memory(
        id=row["id"],
        user_aid=row["user_aid"],
        kind=MemoryKind(row["kind"]),
        text=row["text"],
        embedding=row["embedding"] or [],
        created=row["created"],
    )


class PostgresStore:
    def __init__(self, dsn: str):
        try:
            self.conn = psycopg.connect(dsn, row_factory=dict_row)
        except psycopg.Error as e:
            raise StorageError(f"postgres: {e}") from e
        self.conn.autocommit = True

    @contextmanager
    def _cursor(self):
        try:
            with self.conn.cursor() as cur:
                yield cur
        except psycopg.Error as e:
            raise StorageError(f"postgres: {e}") from e

    def migrate(self) -> None:
        with self._cursor() as cur:
            cur.execute(SCHEMA)

    def close(self) -> None:
        self.conn.close()

    # ------------------------------------------------------------------ #
    #  Users and chats                                                     #
    # ------------------------------------------------------------------ #

    def upsert_user(self, aid: str) -> User:
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO users (aid) VALUES (%s) "
                "ON CONFLICT (aid) DO NOTHING",
                (aid,),
            )
            cur.execute("SELECT aid, created FROM users WHERE aid = %s", (aid,))
            row = cur.fetchone()
        return User(**row)

    def get_or_create_chat(self, aid: str) -> Chat:
        self.upsert_user(aid)
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO chats (user_aid) VALUES (%s) "
                "ON CONFLICT (user_aid) DO NOTHING",
                (aid,),
            )
            cur.execute(
                "SELECT id, user_aid, created FROM chats WHERE user_aid = %s",
                (aid,),
            )
            row = cur.fetchone()
        return Chat(**row)

    # ------------------------------------------------------------------ #
    #  Messages                                                            #
    # ------------------------------------------------------------------ #

    def append_message(self, chat_id: int, role: Role, content: str) -> Message:
        role = Role(role)
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO messages (chat_id, role, content) "
                "VALUES (%s, %s, %s) RETURNING *",
                (chat_id, role.value, content),
            )
            row = cur.fetchone()
        return Message(**row)

    def count_messages(self, chat_id: int) -> int:
        with self._cursor() as cur:
            cur.execute(
                "SELECT COUNT(*) AS n FROM messages WHERE chat_id = %s",
                (chat_id,),
            )
            return cur.fetchone()["n"]

    def recent_messages(self, chat_id: int, limit: int) -> list[Message]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM messages WHERE chat_id = %s "
                "ORDER BY created DESC, id DESC LIMIT %s",
                (chat_id, limit),
            )
            return [Message(**r) for r in cur.fetchall()]

    # ------------------------------------------------------------------ #
    #  Memories                                                            #
    # ------------------------------------------------------------------ #

    def append_memory(
        self, aid: str, kind: MemoryKind, text: str,
        embedding: list[float] | None = None,
    ) -> Memory:
        kind = MemoryKind(kind)
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO memories (user_aid, kind, text, embedding) "
                "VALUES (%s, %s, %s, %s) RETURNING *",
                (aid, kind.value, text, Jsonb(list(embedding or []))),
            )
            row = cur.fetchone()
        return _memory_from_row(row)

    def list_recent_memories(
        self, aid: str, kind: MemoryKind, limit: int,
    ) -> list[Memory]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM memories WHERE user_aid = %s AND kind = %s "
                "ORDER BY created DESC, id DESC LIMIT %s",
                (aid, MemoryKind(kind).value, limit),
            )
            return [_memory_from_row(r) for r in cur.fetchall()]

    def list_memories(self, aid: str, cap: int = 500) -> list[Memory]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM memories WHERE user_aid = %s "
                "ORDER BY created DESC, id DESC LIMIT %s",
                (aid, cap),
            )
            return [_memory_from_row(r) for r in cur.fetchall()]
