"""Conversation data model."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from src.memory.models import Message

DEFAULT_TITLE = "New Conversation"


def dump_messages(messages: list[Message]) -> str:
    """Encode a transcript as the JSON stored in the ``messages`` column."""
    return json.dumps([m.model_dump(mode="json") for m in messages])


@dataclass
class Conversation:
    """A persisted chat transcript.

    Attributes:
        id: Unique identifier (UUID hex).
        user_id: Owner; an opaque partition key, not an authenticated identity.
        title: Display title shown in the sidebar.
        messages: Full transcript, oldest first.
        created_at: ISO 8601 timestamp.
        updated_at: ISO 8601 timestamp of the last change.
    """

    user_id: str
    title: str = DEFAULT_TITLE
    messages: list[Message] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = datetime.now(UTC).isoformat()
        if not self.updated_at:
            self.updated_at = self.created_at

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match on title or any message text."""
        needle = query.lower()
        if needle in self.title.lower():
            return True
        return any(needle in m.text().lower() for m in self.messages)

    # -- Serialization ---------------------------------------------------------

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``conversations`` column order."""
        return (
            self.id,
            self.user_id,
            self.title,
            dump_messages(self.messages),
            self.created_at,
            self.updated_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> Conversation:
        """Deserialize from a ``SELECT *`` row."""
        return cls(
            id=row[0],
            user_id=row[1],
            title=row[2],
            messages=[Message.model_validate(m) for m in json.loads(row[3] or "[]")],
            created_at=row[4],
            updated_at=row[5],
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation for the HTTP API."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "messages": [m.model_dump(mode="json", exclude_none=True) for m in self.messages],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
