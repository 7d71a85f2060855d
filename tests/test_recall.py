"""Tests for cosine similarity, ranking, and the recall scan."""

from datetime import datetime, timezone

import pytest

from companion_memory.memory.recall import cosine, do_recall, rank_memories
from companion_memory.types import Memory, MemoryKind


def _mem(id, text="m", embedding=None, kind=MemoryKind.fact):
    return Memory(
        id=id, user_aid="u1", kind=kind, text=text,
        embedding=embedding or [], created=datetime.now(timezone.utc),
    )


class TestCosine:
    def test_identical(self):
        assert cosine([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_opposite(self):
        assert cosine([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_orthogonal(self):
        assert cosine([1.0, 0.0], [0.0, 1.0]) == 0.0

    def test_symmetric(self):
        a, b = [0.3, -1.2, 4.0], [2.0, 0.5, -0.7]
        assert cosine(a, b) == pytest.approx(cosine(b, a))

    @pytest.mark.parametrize("a,b", [
        ([], [1.0, 2.0]),
        ([1.0, 2.0], []),
        ([], []),
        ([0.0, 0.0], [1.0, 2.0]),
        ([1.0, 2.0], [0.0, 0.0, 0.0]),
    ])
    def test_zero_when_degenerate(self, a, b):
        assert cosine(a, b) == 0.0

    def test_bounded(self):
        vecs = [[1e9, 1e9], [1e-9, 3.0], [-5.0, 2.0], [7.0, 7.0, 7.0]]
        for a in vecs:
            for b in vecs:
                assert -1.0 <= cosine(a, b) <= 1.0

    def test_mismatched_length_uses_shared_prefix(self):
        # dot over first two dims, norms over full vectors
        score = cosine([1.0, 0.0], [1.0, 0.0, 1.0])
        assert score == pytest.approx(1 / 2 ** 0.5)


class TestRankMemories:
    def test_orders_by_descending_score(self):
        a = _mem(1, "a", [1.0, 0.0])
        b = _mem(2, "b", [0.7, 0.7])
        c = _mem(3, "c", [0.9, 0.1])
        hits = rank_memories([1.0, 0.0], [(m, m.embedding) for m in (a, b, c)])
        assert [h.memory.id for h in hits] == [1, 3, 2]
        assert hits[0].score == pytest.approx(1.0)

    def test_caps_at_top_k(self):
        mems = [_mem(i, f"m{i}", [1.0, 0.01 * i]) for i in range(20)]
        hits = rank_memories([1.0, 0.0], [(m, m.embedding) for m in mems])
        assert len(hits) == 8

    def test_custom_top_k(self):
        mems = [_mem(i, f"m{i}", [1.0, 0.0]) for i in range(5)]
        hits = rank_memories([1.0, 0.0], [(m, m.embedding) for m in mems], top_k=2)
        assert len(hits) == 2

    def test_below_threshold_excluded(self):
        weak = _mem(1, "weak", [1.0, 10.0])
        above = _mem(2, "above", [0.5, 0.5])
        hits = rank_memories(
            [1.0, 0.0], [(m, m.embedding) for m in (weak, above)],
        )
        assert [h.memory.text for h in hits] == ["above"]
        assert all(h.score > 0.1 for h in hits)

    def test_threshold_is_strict(self):
        mems = [_mem(1, "same", [1.0, 0.0])]
        hits = rank_memories(
            [1.0, 0.0], [(m, m.embedding) for m in mems], threshold=1.0,
        )
        assert hits == []

    def test_empty_embeddings_never_recalled(self):
        mems = [_mem(1, "no vector"), _mem(2, "vector", [1.0, 0.0])]
        hits = rank_memories([1.0, 0.0], [(m, m.embedding) for m in mems])
        assert [h.memory.text for h in hits] == ["vector"]

    def test_empty_query_recalls_nothing(self):
        mems = [_mem(1, "x", [1.0, 0.0])]
        assert rank_memories([], [(m, m.embedding) for m in mems]) == []

    def test_truncates_before_filtering(self):
        strong = [_mem(i, f"s{i}", [1.0, 0.0]) for i in range(8)]
        weak = [_mem(100, "weak", [0.5, 0.5])]
        hits = rank_memories(
            [1.0, 0.0], [(m, m.embedding) for m in strong + weak],
        )
        assert "weak" not in [h.memory.text for h in hits]

    def test_duplicate_texts_both_returned(self):
        mems = [_mem(1, "User likes tea", [1.0, 0.0]),
                _mem(2, "User likes tea", [1.0, 0.0])]
        hits = rank_memories([1.0, 0.0], [(m, m.embedding) for m in mems])
        assert [h.memory.text for h in hits] == ["User likes tea"] * 2


class TestDoRecall:
    @pytest.mark.asyncio
    async def test_no_memories_skips_embedding(self, db, make_embedder):
        embedder = make_embedder()
        assert await do_recall(db, embedder, "u1", "hello") == []
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_scans_user_memories(self, db, make_embedder):
        db.append_memory("u1", MemoryKind.fact, "User likes tea", [1.0, 0.0])
        db.append_memory("u1", MemoryKind.summary, "Talked about work", [0.0, 1.0])
        db.append_memory("u2", MemoryKind.fact, "User likes coffee", [1.0, 0.0])
        embedder = make_embedder(vectors={"tea?": [1.0, 0.1]})
        hits = await do_recall(db, embedder, "u1", "tea?")
        assert [h.memory.text for h in hits] == ["User likes tea"]

    @pytest.mark.asyncio
    async def test_degraded_query_embedding(self, db, make_embedder):
        db.append_memory("u1", MemoryKind.fact, "User likes tea", [1.0, 0.0])
        hits = await do_recall(db, make_embedder(fail=True), "u1", "tea?")
        assert hits == []

    @pytest.mark.asyncio
    async def test_scan_cap(self, db, make_embedder):
        db.append_memory("u1", MemoryKind.fact, "old match", [1.0, 0.0])
        for i in range(3):
            db.append_memory("u1", MemoryKind.fact, f"new {i}", [0.0, 1.0])
        embedder = make_embedder(vectors={"q": [1.0, 0.0]})
        hits = await do_recall(db, embedder, "u1", "q", scan_cap=3)
        assert hits == []
