"""Builds and queries per-conversation memory records."""

from __future__ import annotations

import asyncio
import logging
import weakref
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from src.memory.extractors import extract_entities, generate_summary
from src.memory.models import ConversationMemory

if TYPE_CHECKING:
    from collections.abc import Sequence

    from src.memory.models import Message
    from src.memory.store import MemoryStore

logger = logging.getLogger(__name__)

CONTEXT_SIZE = 10


class MemoryManager:
    """Entry point for conversation memory.

    Owns no global state: construct one per application with the store
    returned by :func:`src.memory.store.create_memory_store` (or any store
    in tests).

    Saves for the same (user, conversation) pair are serialized so the
    original ``created_at`` survives rapid successive turns.
    """

    def __init__(self, store: MemoryStore) -> None:
        self._store = store
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, user_id: str, conversation_id: str) -> asyncio.Lock:
        key = (user_id, conversation_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def save_memory(
        self,
        user_id: str,
        conversation_id: str,
        messages: Sequence[Message],
    ) -> ConversationMemory:
        """Rebuild the memory record from *messages* and upsert it.

        Returns the record as built; store errors propagate to the caller.
        """
        context = [m.context_text() for m in messages][-CONTEXT_SIZE:]
        entities = extract_entities(messages)
        summary = generate_summary(messages)

        async with self._lock_for(user_id, conversation_id):
            prior = await self._store.get(user_id, conversation_id)
            now = datetime.now(UTC)
            record = ConversationMemory(
                user_id=user_id,
                conversation_id=conversation_id,
                context=context,
                entities=entities,
                summary=summary,
                created_at=prior.created_at if prior is not None else now,
                updated_at=now,
            )
            await self._store.save(user_id, conversation_id, record)

        logger.debug(
            "Saved memory %s (%d context entries, entities: %s)",
            record.key,
            len(context),
            ", ".join(entities) or "none",
        )
        return record

    async def get_memory(self, user_id: str, conversation_id: str) -> ConversationMemory | None:
        """Return the stored record for the pair, or None."""
        return await self._store.get(user_id, conversation_id)

    async def search_memories(self, user_id: str, query: str) -> list[ConversationMemory]:
        """Records whose context or summary contains *query*, ignoring case.

        Order is whatever the store returns.
        """
        needle = query.lower()
        return [
            m
            for m in await self._store.all_for_user(user_id)
            if any(needle in c.lower() for c in m.context) or needle in m.summary.lower()
        ]
