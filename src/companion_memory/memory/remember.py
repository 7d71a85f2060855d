import asyncio
import logging

from ..types import Memory, MemoryKind

log = logging.getLogger("companion")


async def do_remember(
    store, embedder, aid: str, texts: list[str],
    kind: MemoryKind = MemoryKind.fact,
) -> list[Memory]:
    """Embed `texts` in one batch and append each as a memory.

    A failed embedding call stores the memories with empty vectors.
    """
    if not texts:
        return []
    vectors = await embedder.embed(texts)
    if len(vectors) != len(texts):
        vectors = [[] for _ in texts]
    if any(not v for v in vectors):
        log.info("storing %d %s memories without embeddings", len(texts), kind.value)

    stored = []
    for text, vec in zip(texts, vectors):
        mem = await asyncio.to_thread(store.append_memory, aid, kind, text, vec)
        stored.append(mem)
    return stored
