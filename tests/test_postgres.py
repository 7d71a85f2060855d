"""Tests for PostgresStore with a mocked psycopg connection."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import psycopg
import pytest

import companion_memory.store.postgres as pg
from companion_memory.store import StorageError
from companion_memory.types import MemoryKind, Role


@pytest.fixture
def cur():
    return MagicMock()


@pytest.fixture
def pgstore(monkeypatch, cur):
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cur
    monkeypatch.setattr(pg.psycopg, "connect", MagicMock(return_value=conn))
    return pg.PostgresStore("postgresql://test/db")


NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


class TestPostgresStore:
    def test_migrate_runs_schema(self, pgstore, cur):
        pgstore.migrate()
        sql = cur.execute.call_args.args[0]
        assert "CREATE TABLE IF NOT EXISTS memories" in sql

    def test_append_memory_maps_row(self, pgstore, cur):
        cur.fetchone.return_value = {
            "id": 3, "user_aid": "u1", "kind": "fact",
            "text": "User likes tea", "embedding": [0.5], "created": NOW,
        }
        mem = pgstore.append_memory("u1", MemoryKind.fact, "User likes tea", [0.5])
        assert mem.id == 3
        assert mem.embedding == [0.5]
        params = cur.execute.call_args.args[1]
        assert params[:3] == ("u1", "fact", "User likes tea")

    def test_list_memories_newest_first_query(self, pgstore, cur):
        cur.fetchall.return_value = []
        assert pgstore.list_memories("u1", 25) == []
        sql, params = cur.execute.call_args.args
        assert "ORDER BY created DESC, id DESC" in sql
        assert params == ("u1", 25)

    def test_append_message(self, pgstore, cur):
        cur.fetchone.return_value = {
            "id": 1, "chat_id": 9, "role": "user",
            "content": "hi", "created": NOW,
        }
        msg = pgstore.append_message(9, Role.user, "hi")
        assert msg.role == Role.user

    def test_count_messages(self, pgstore, cur):
        cur.fetchone.return_value = {"n": 12}
        assert pgstore.count_messages(9) == 12

    def test_errors_become_storage_errors(self, pgstore, cur):
        cur.execute.side_effect = psycopg.OperationalError("connection lost")
        with pytest.raises(StorageError):
            pgstore.list_memories("u1")

    def test_connect_failure(self, monkeypatch):
        monkeypatch.setattr(
            pg.psycopg, "connect",
            MagicMock(side_effect=psycopg.OperationalError("no server")),
        )
        with pytest.raises(StorageError):
            pg.PostgresStore("postgresql://nowhere/db")
