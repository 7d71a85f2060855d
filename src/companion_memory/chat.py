"""One conversational turn, from user message to persisted reply.

Order is fixed: persist the user message, extract and store facts, load
grounding and compute recall, build the prompt, ask for a reply, persist
the reply, then maybe schedule a session summary in the background.
Embedding trouble degrades recall; a failed completion fails the turn.
"""

import asyncio
import logging
from collections import OrderedDict

from .config import Settings
from .extract import extract_facts
from .memory import SessionSummarizer, do_recall, do_remember, should_summarize
from .prompt import build_system_prompt
from .tasks import BackgroundTasks
from .types import Chat, MemoryKind, Role, TurnResult, TurnState

log = logging.getLogger("companion")


class EmptyMessageError(ValueError):
    """The turn was rejected before anything was written."""


class ConversationOrchestrator:
    def __init__(
        self,
        settings: Settings,
        store,
        embedder,
        completer,
        tasks: BackgroundTasks | None = None,
        summarizer: SessionSummarizer | None = None,
    ):
        self.settings = settings
        self.store = store
        self.embedder = embedder
        self.completer = completer
        self.tasks = tasks or BackgroundTasks()
        self.summarizer = summarizer or SessionSummarizer(
            store, completer, embedder, window=settings.summary_window,
        )
        self._chats: OrderedDict[str, Chat] = OrderedDict()

    async def chat_for(self, aid: str) -> Chat:
        """Resolve (creating on first contact) the caller's single chat.

        Resolved chats are kept in a least-recently-used cache of
        `chat_cache_size` entries; an evicted aid is looked up again.
        """
        chat = self._chats.get(aid)
        if chat is not None:
            self._chats.move_to_end(aid)
            return chat
        chat = await asyncio.to_thread(self.store.get_or_create_chat, aid)
        self._chats[aid] = chat
        while len(self._chats) > self.settings.chat_cache_size:
            self._chats.popitem(last=False)
        return chat

    async def grounding(self, aid: str) -> tuple[list[str], list[str]]:
        facts = await asyncio.to_thread(
            self.store.list_recent_memories,
            aid, MemoryKind.fact, self.settings.fact_limit,
        )
        summaries = await asyncio.to_thread(
            self.store.list_recent_memories,
            aid, MemoryKind.summary, self.settings.summary_limit,
        )
        return [m.text for m in facts], [m.text for m in summaries]

    async def handle_turn(self, aid: str, message: str) -> TurnResult:
        if not isinstance(message, str) or not message.strip():
            raise EmptyMessageError("message must be a non-empty string")
        text = message.strip()
        states = [TurnState.received]
        s = self.settings

        chat = await self.chat_for(aid)
        await asyncio.to_thread(self.store.append_message, chat.id, Role.user, text)
        states.append(TurnState.persisted_user_msg)

        facts = extract_facts(text)
        await do_remember(self.store, self.embedder, aid, facts)
        states.append(TurnState.facts_extracted)

        grounding_facts, summaries = await self.grounding(aid)
        hits = await do_recall(
            self.store, self.embedder, aid, text,
            top_k=s.recall_top_k, threshold=s.recall_threshold,
            scan_cap=s.recall_scan_cap,
        )
        recalled = [h.memory.text for h in hits]
        states.append(TurnState.recall_computed)

        system = build_system_prompt(grounding_facts, summaries, recalled)
        states.append(TurnState.prompt_built)

        reply = await self.completer.complete(system, text)
        states.append(TurnState.replied)

        await asyncio.to_thread(
            self.store.append_message, chat.id, Role.assistant, reply
        )
        states.append(TurnState.persisted_assistant_msg)

        count = await asyncio.to_thread(self.store.count_messages, chat.id)
        scheduled = should_summarize(count, s.summary_every)
        if scheduled:
            log.info("chat %s reached %d messages, summarizing", chat.id, count)
            self.tasks.spawn(
                self.summarizer.run(aid, chat.id), name=f"summarize-{chat.id}",
            )

        return TurnResult(
            reply=reply,
            state=states[-1],
            states=states,
            facts=facts,
            recalled=recalled,
            message_count=count,
            summary_scheduled=scheduled,
        )
