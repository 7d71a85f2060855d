"""Periodic session summaries.

Every `every` messages in a chat, the latest window of messages is condensed
by the chat model into one or two sentences and stored as a `summary`
memory. Runs detached from the turn that triggered it; any failure is
logged and dropped.
"""

import asyncio
import logging

from ..types import Memory, MemoryKind, Message
from .remember import do_remember

log = logging.getLogger("companion.summarize")

SUMMARY_PROMPT = (
    "Summarize this conversation in 1-2 sentences. Focus on stable facts "
    "about the user and their preferences; skip small talk and transient "
    "details."
)


def should_summarize(count: int, every: int = 12) -> bool:
    return count > 0 and count % every == 0


def render_transcript(messages: list[Message]) -> str:
    """`ROLE: content` lines, in the order given."""
    return "\n".join(f"{m.role.value.upper()}: {m.content}" for m in messages)


class SessionSummarizer:
    def __init__(self, store, completer, embedder, window: int = 20):
        self.store = store
        self.completer = completer
        self.embedder = embedder
        self.window = window

    async def summarize(self, aid: str, chat_id: int) -> Memory | None:
        """Summarize the latest window of `chat_id`. Raises on failure."""
        newest_first = await asyncio.to_thread(
            self.store.recent_messages, chat_id, self.window
        )
        if not newest_first:
            return None
        convo = render_transcript(list(reversed(newest_first)))
        summary = (await self.completer.complete(SUMMARY_PROMPT, convo)).strip()
        if not summary:
            return None
        stored = await do_remember(
            self.store, self.embedder, aid, [summary], kind=MemoryKind.summary,
        )
        log.info("stored session summary for chat %s", chat_id)
        return stored[0]

    async def run(self, aid: str, chat_id: int) -> Memory | None:
        """Background entry point: never raises."""
        try:
            return await self.summarize(aid, chat_id)
        except Exception as e:
            log.warning("session summary failed for chat %s: %s", chat_id, e)
            return None
