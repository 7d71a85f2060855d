"""Similarity recall: exact linear scan over a user's memories."""

import asyncio
import logging
import math
from collections.abc import Iterable, Sequence

from ..types import Memory, RecallHit

log = logging.getLogger("companion")

DEFAULT_TOP_K = 8
DEFAULT_THRESHOLD = 0.1


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity. 0.0 when either side is empty or all zeros.

    Vectors of different length are dotted over their shared prefix.
    """
    na = math.hypot(*a) if a else 0.0
    nb = math.hypot(*b) if b else 0.0
    if not na or not nb:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    return max(-1.0, min(1.0, dot / (na * nb)))


def rank_memories(
    query: Sequence[float],
    candidates: Iterable[tuple[Memory, Sequence[float]]],
    top_k: int = DEFAULT_TOP_K,
    threshold: float = DEFAULT_THRESHOLD,
) -> list[RecallHit]:
    """Top `top_k` by descending similarity, then keep scores > threshold."""
    scored = [
        RecallHit(memory=mem, score=cosine(query, vec))
        for mem, vec in candidates
    ]
    # stable sort keeps newest-first among equal scores
    scored.sort(key=lambda h: h.score, reverse=True)
    return [h for h in scored[:top_k] if h.score > threshold]


async def do_recall(
    store, embedder, aid: str, query: str,
    top_k: int = DEFAULT_TOP_K,
    threshold: float = DEFAULT_THRESHOLD,
    scan_cap: int = 500,
) -> list[RecallHit]:
    memories = await asyncio.to_thread(store.list_memories, aid, scan_cap)
    if not memories:
        return []
    vectors = await embedder.embed([query])
    qvec = vectors[0] if vectors else []
    hits = rank_memories(
        qvec, ((m, m.embedding) for m in memories), top_k, threshold,
    )
    log.debug(
        "recall for %s: %d/%d memories above %.2f",
        aid, len(hits), len(memories), threshold,
    )
    return hits
