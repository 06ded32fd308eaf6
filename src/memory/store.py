"""Conversation memory storage backends.

Two interchangeable backends implement :class:`MemoryStore`:

- In-process (default): a dict keyed by ``(user_id, conversation_id)``.
  Records live as long as the process does.
- Hosted: set ``MEM0_API_KEY``. Each record is stored as one Mem0 memory,
  tagged with the composite key ``"<user_id>:<conversation_id>"``.

The backend is chosen once at startup by :func:`create_memory_store`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

from src.memory.models import ConversationMemory, memory_key

if TYPE_CHECKING:
    from src.config import Settings

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class MemoryBackendError(Exception):
    """The remote memory backend is unavailable (network, auth, bad data)."""


class MemoryStore(Protocol):
    """Persistence for memory records, one per (user, conversation) pair."""

    async def save(
        self, user_id: str, conversation_id: str, record: ConversationMemory
    ) -> None: ...

    async def get(self, user_id: str, conversation_id: str) -> ConversationMemory | None: ...

    async def all_for_user(self, user_id: str) -> list[ConversationMemory]: ...


# -- In-process --------------------------------------------------------------


class InProcessMemoryStore:
    """Memory records held in a process-local dict.

    Returned records are copies, so callers never hold live references.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], ConversationMemory] = {}

    async def save(
        self, user_id: str, conversation_id: str, record: ConversationMemory
    ) -> None:
        key = (user_id, conversation_id)
        existing = self._records.get(key)
        if existing is not None:
            record = record.model_copy(update={"created_at": existing.created_at})
        self._records[key] = record.model_copy(deep=True)

    async def get(self, user_id: str, conversation_id: str) -> ConversationMemory | None:
        record = self._records.get((user_id, conversation_id))
        return record.model_copy(deep=True) if record is not None else None

    async def all_for_user(self, user_id: str) -> list[ConversationMemory]:
        return [
            record.model_copy(deep=True)
            for (uid, _), record in self._records.items()
            if uid == user_id
        ]

    def __len__(self) -> int:
        return len(self._records)


# -- Mem0 --------------------------------------------------------------------


class Mem0MemoryStore:
    """Memory records stored in Mem0's hosted platform.

    The full record rides in the memory's metadata; the memory text is the
    record's summary so it stays readable in the Mem0 dashboard.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    async def save(
        self, user_id: str, conversation_id: str, record: ConversationMemory
    ) -> None:
        key = memory_key(user_id, conversation_id)
        try:
            items = await self._fetch(user_id)
            existing = next(
                (i for i in items if (i.get("metadata") or {}).get("memory_key") == key),
                None,
            )
            if existing is not None:
                prior = self._to_record(existing)
                if prior is not None:
                    record = record.model_copy(update={"created_at": prior.created_at})

            metadata = {
                "memory_key": key,
                "conversation_id": conversation_id,
                "record": record.model_dump(mode="json", by_alias=True),
            }
            text = record.summary or key

            if existing is not None:
                await self._client.update(existing["id"], text=text, metadata=metadata)
            else:
                await self._client.add(
                    [{"role": "user", "content": text}],
                    user_id=user_id,
                    metadata=metadata,
                    infer=False,
                )
        except MemoryBackendError:
            raise
        except Exception as exc:
            msg = f"Failed to save memory {key}"
            raise MemoryBackendError(msg) from exc
        logger.debug("Saved memory %s to Mem0", key)

    async def get(self, user_id: str, conversation_id: str) -> ConversationMemory | None:
        for record in await self.all_for_user(user_id):
            if record.conversation_id == conversation_id:
                return record
        return None

    async def all_for_user(self, user_id: str) -> list[ConversationMemory]:
        items = await self._fetch(user_id)
        records = []
        for item in items:
            record = self._to_record(item)
            if record is not None and record.user_id == user_id:
                records.append(record)
        return records

    # -- Helpers -------------------------------------------------------------

    async def _fetch(self, user_id: str) -> list[dict[str, Any]]:
        """All of a user's Mem0 memories, following pagination to the end."""
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            try:
                raw = await self._client.get_all(
                    filters={"user_id": user_id}, page=page, page_size=PAGE_SIZE
                )
            except Exception as exc:
                msg = f"Failed to fetch memories for user {user_id}"
                raise MemoryBackendError(msg) from exc
            items.extend(self._normalize(raw))
            if not (isinstance(raw, dict) and raw.get("next")):
                return items
            page += 1

    @staticmethod
    def _normalize(raw: Any) -> list[dict[str, Any]]:
        """Mem0 returns ``{"results": [...]}`` (hosted) or a plain list."""
        if isinstance(raw, dict):
            return list(raw.get("results", []))
        if isinstance(raw, list):
            return raw
        return []

    @staticmethod
    def _to_record(item: dict[str, Any]) -> ConversationMemory | None:
        """Rebuild a record from Mem0 metadata; skip memories we didn't write."""
        meta = item.get("metadata") or {}
        payload = meta.get("record")
        if not isinstance(payload, dict):
            return None
        try:
            return ConversationMemory.model_validate(payload)
        except ValueError:
            logger.warning("Skipping malformed memory record %s", item.get("id", "?"))
            return None


# -- Selection ---------------------------------------------------------------


def create_memory_store(config: Settings) -> MemoryStore:
    """Build the backend selected by *config*. Call once at startup."""
    if config.memory_backend == "mem0":
        from mem0 import AsyncMemoryClient

        logger.info("Memory store: hosted mode (Mem0 cloud)")
        return Mem0MemoryStore(AsyncMemoryClient(api_key=config.mem0_api_key))

    logger.info("Memory store: in-process mode (set MEM0_API_KEY for Mem0)")
    return InProcessMemoryStore()
