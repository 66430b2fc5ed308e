# simgateway/models/chat_models.py

from dataclasses import dataclass
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChatMessage(BaseModel):
    """A single message of a conversation, as sent by the client."""
    model_config = ConfigDict(extra='allow')

    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Body shared by the chat services. Unknown fields are kept for passthrough."""
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    messages: List[ChatMessage] = Field(default_factory=list)
    model: Optional[str] = None
    stream: bool = True
    thread_id: Optional[str] = Field(None, alias="threadId", description="Upstream thread to continue.")

    @model_validator(mode="after")
    def _require_messages_for_new_conversation(self) -> "ChatRequest":
        if not self.messages and not self.thread_id:
            raise ValueError("messages must not be empty for a new conversation")
        return self

    def message_dicts(self) -> List[dict]:
        return [{"role": m.role, "content": m.content} for m in self.messages]


@dataclass(frozen=True)
class TokenUsage:
    total_tokens: int = 0
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None


@dataclass(frozen=True)
class ChatDelta:
    """One increment of generated text; the last delta of a stream may carry usage only."""
    text: str = ""
    usage: Optional[TokenUsage] = None


@dataclass(frozen=True)
class ConversationHandle:
    """Upstream thread id handed back to the client as the first stream event."""
    thread_id: str
