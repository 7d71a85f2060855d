"""Long-term memory and recall for a stateless chat-completion companion."""

__version__ = "0.1.0"
