"""Shared fixtures for the companion-memory test suite."""

import os

import pytest

# Force local SQLite, no real upstream key
os.environ["OPENAI_API_KEY"] = ""
os.environ["DATABASE_URL"] = ""
os.environ["ALLOW_ORIGIN"] = ""
os.environ["COOKIE_SECURE"] = ""
os.environ["COOKIE_SAMESITE"] = ""


class FakeEmbedder:
    """Deterministic embeddings keyed by text. Unknown text → fallback."""

    def __init__(self, vectors=None, fallback=None, fail=False):
        self.vectors = dict(vectors or {})
        self.fallback = fallback if fallback is not None else [0.0, 0.0, 1.0]
        self.fail = fail
        self.calls: list[list[str]] = []

    async def embed(self, texts):
        self.calls.append(list(texts))
        if self.fail:
            return [[] for _ in texts]
        return [list(self.vectors.get(t, self.fallback)) for t in texts]


class FakeCompleter:
    """Records every (system, user) pair and answers with a fixed reply."""

    def __init__(self, reply="ok!", summary="User is called Ava and likes tea.",
                 error=None):
        self.reply = reply
        self.summary = summary
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def complete(self, system, user):
        self.calls.append((system, user))
        if self.error is not None:
            raise self.error
        if system.startswith("Summarize"):
            return self.summary
        return self.reply


@pytest.fixture
def tmp_store_path(tmp_path):
    """Return a fresh temp directory for store data."""
    return str(tmp_path / "companion-test-store")


@pytest.fixture
def settings(tmp_store_path):
    from companion_memory.config import Settings
    return Settings(store_path=tmp_store_path, api_key="test-key")


@pytest.fixture
def db(tmp_store_path):
    """Return a fresh migrated SqliteStore."""
    from companion_memory.store.sqlite import SqliteStore
    store = SqliteStore(tmp_store_path)
    store.migrate()
    yield store
    store.close()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def completer():
    return FakeCompleter()


@pytest.fixture
def orchestrator(settings, db, embedder, completer):
    from companion_memory.chat import ConversationOrchestrator
    return ConversationOrchestrator(settings, db, embedder, completer)


@pytest.fixture
def make_embedder():
    """Factory for FakeEmbedder instances."""
    return FakeEmbedder


@pytest.fixture
def make_completer():
    """Factory for FakeCompleter instances."""
    return FakeCompleter
