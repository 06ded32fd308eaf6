"""ConversationStore: libsql CRUD for chat transcripts."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from src.conversations.models import Conversation, dump_messages
from src.db import connection
from src.memory.models import Message

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    messages TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

_CREATE_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_conversations_user "
    "ON conversations (user_id, updated_at)"
)

_UPDATABLE_FIELDS = ("title", "messages")


class ConversationStore:
    """Persists conversations in SQLite (or Turso).

    Pass an explicit *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    async def _ensure_schema(self, db) -> None:
        if self._initialised:
            return
        await db.execute(_CREATE_TABLE)
        await db.execute(_CREATE_INDEX)
        await db.commit()
        self._initialised = True

    # -- CRUD ------------------------------------------------------------------

    async def create(self, conversation: Conversation) -> str:
        """Insert a conversation. Returns its ID."""
        async with connection(self._db_path) as db:
            await self._ensure_schema(db)
            await db.execute(
                """
                INSERT INTO conversations
                    (id, user_id, title, messages, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                conversation.to_row(),
            )
            await db.commit()
        logger.info("Created conversation %s for %s", conversation.id, conversation.user_id)
        return conversation.id

    async def get(self, conversation_id: str) -> Conversation | None:
        """Fetch a conversation by ID, or None if not found."""
        async with connection(self._db_path) as db:
            await self._ensure_schema(db)
            cursor = await db.execute(
                "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
            )
            row = await cursor.fetchone()
        return Conversation.from_row(row) if row else None

    async def list_for_user(self, user_id: str) -> list[Conversation]:
        """All of a user's conversations, most recently updated first."""
        async with connection(self._db_path) as db:
            await self._ensure_schema(db)
            cursor = await db.execute(
                "SELECT * FROM conversations WHERE user_id = ? ORDER BY updated_at DESC",
                (user_id,),
            )
            rows = await cursor.fetchall()
        return [Conversation.from_row(row) for row in rows]

    async def update(self, conversation_id: str, updates: dict[str, Any]) -> bool:
        """Apply *updates* (``title`` and/or ``messages``) and bump ``updated_at``.

        Unknown keys are ignored. Returns True if a row was updated.
        """
        assignments: list[str] = []
        params: list[Any] = []
        if "title" in updates:
            assignments.append("title = ?")
            params.append(str(updates["title"]))
        if "messages" in updates:
            messages = [
                m if isinstance(m, Message) else Message.model_validate(m)
                for m in updates["messages"] or []
            ]
            assignments.append("messages = ?")
            params.append(dump_messages(messages))

        ignored = set(updates) - set(_UPDATABLE_FIELDS)
        if ignored:
            logger.debug("Ignoring non-updatable fields: %s", sorted(ignored))

        assignments.append("updated_at = ?")
        params.append(datetime.now(UTC).isoformat())
        params.append(conversation_id)

        async with connection(self._db_path) as db:
            await self._ensure_schema(db)
            cursor = await db.execute(
                f"UPDATE conversations SET {', '.join(assignments)} WHERE id = ?",  # noqa: S608
                tuple(params),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def delete(self, conversation_id: str) -> bool:
        """Delete a conversation. Returns True if a row was removed."""
        async with connection(self._db_path) as db:
            await self._ensure_schema(db)
            cursor = await db.execute(
                "DELETE FROM conversations WHERE id = ?", (conversation_id,)
            )
            await db.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted conversation %s", conversation_id)
        return deleted

    async def search(self, user_id: str, query: str) -> list[Conversation]:
        """Conversations whose title or message text contains *query* (any case)."""
        return [c for c in await self.list_for_user(user_id) if c.matches(query)]
