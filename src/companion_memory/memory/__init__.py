from .recall import cosine, do_recall, rank_memories
from .remember import do_remember
from .summarize import SessionSummarizer, render_transcript, should_summarize

__all__ = [
    "cosine", "do_recall", "rank_memories",
    "do_remember",
    "SessionSummarizer", "render_transcript", "should_summarize",
]
