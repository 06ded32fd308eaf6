"""Data models for chat messages and conversation memory."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Attachment(BaseModel):
    """A file attached to a message (already uploaded)."""

    name: str
    url: str
    type: str = "application/octet-stream"


class MessagePart(BaseModel):
    """One typed piece of a message: text, a file reference, etc."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = "text"
    text: str | None = None
    url: str | None = None
    media_type: str | None = Field(default=None, alias="mediaType")
    name: str | None = None


class Message(BaseModel):
    """A single conversation message as sent by the client."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    role: Literal["user", "assistant"]
    content: str = ""
    parts: list[MessagePart] = Field(default_factory=list)
    files: list[Attachment] = Field(default_factory=list)
    timestamp: datetime | None = None

    def text(self) -> str:
        """Flattened text: text parts joined with spaces, other parts empty."""
        if not self.parts:
            return self.content or ""
        return " ".join((p.text or "") if p.type == "text" else "" for p in self.parts)

    def context_text(self) -> str:
        """Like :meth:`text`, but non-text parts render as ``[type]``."""
        if not self.parts:
            return self.content or ""
        return " ".join((p.text or "") if p.type == "text" else f"[{p.type}]" for p in self.parts)


class ConversationMemory(BaseModel):
    """Derived memory record for one (user, conversation) pair."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str
    conversation_id: str
    context: list[str] = Field(default_factory=list)
    entities: dict[str, list[str]] = Field(default_factory=dict)
    summary: str = ""
    created_at: datetime
    updated_at: datetime

    @property
    def key(self) -> str:
        return memory_key(self.user_id, self.conversation_id)


def memory_key(user_id: str, conversation_id: str) -> str:
    """Composite key used by the remote backend."""
    return f"{user_id}:{conversation_id}"
