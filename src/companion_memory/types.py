from enum import Enum
from datetime import datetime

from pydantic import BaseModel, Field


class MemoryKind(str, Enum):
    fact = "fact"
    summary = "summary"


class Role(str, Enum):
    user = "user"
    assistant = "assistant"


class User(BaseModel):
    aid: str
    created: datetime


class Chat(BaseModel):
    id: int
    user_aid: str
    created: datetime


class Message(BaseModel):
    id: int
    chat_id: int
    role: Role
    content: str
    created: datetime


class Memory(BaseModel):
    id: int
    user_aid: str
    kind: MemoryKind
    text: str
    embedding: list[float] = Field(default_factory=list)
    created: datetime


class RecallHit(BaseModel):
    memory: Memory
    score: float


class TurnState(str, Enum):
    received = "received"
    persisted_user_msg = "persisted_user_msg"
    facts_extracted = "facts_extracted"
    recall_computed = "recall_computed"
    prompt_built = "prompt_built"
    replied = "replied"
    persisted_assistant_msg = "persisted_assistant_msg"


class TurnResult(BaseModel):
    reply: str
    state: TurnState
    states: list[TurnState] = Field(default_factory=list)
    facts: list[str] = Field(default_factory=list)
    recalled: list[str] = Field(default_factory=list)
    message_count: int = 0
    summary_scheduled: bool = False
