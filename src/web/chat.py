"""One chat turn: trim history, update memory in the background, stream a reply."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from src.config import settings
from src.llm.client import stream_reply
from src.memory.context import trim_for_context

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from src.memory.manager import MemoryManager
    from src.memory.models import Message

logger = logging.getLogger(__name__)

# Strong references to in-flight memory saves so they aren't garbage collected.
_background_tasks: set[asyncio.Task] = set()


async def save_memory_quietly(
    manager: MemoryManager,
    user_id: str,
    conversation_id: str,
    messages: Sequence[Message],
) -> None:
    """Background task: update conversation memory, logging any failure."""
    try:
        await manager.save_memory(user_id, conversation_id, messages)
    except Exception:
        logger.exception(
            "Memory save failed for %s:%s (non-fatal)", user_id, conversation_id
        )


def schedule_memory_save(
    manager: MemoryManager,
    user_id: str,
    conversation_id: str,
    messages: Sequence[Message],
) -> asyncio.Task:
    """Spawn :func:`save_memory_quietly` without waiting for it."""
    task = asyncio.create_task(
        save_memory_quietly(manager, user_id, conversation_id, list(messages))
    )
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def run_turn(
    manager: MemoryManager,
    user_id: str,
    conversation_id: str,
    messages: Sequence[Message],
    max_tokens: int | None = None,
) -> AsyncIterator[str]:
    """Trim *messages* to the context budget and stream the model's reply.

    Memory for the conversation is updated off the response path; its
    failure never affects the reply.
    """
    budget = max_tokens if max_tokens is not None else settings.context_token_budget
    trimmed = trim_for_context(messages, budget)
    logger.info(
        "Chat turn %s:%s: %d/%d messages in context",
        user_id,
        conversation_id,
        len(trimmed),
        len(messages),
    )

    schedule_memory_save(manager, user_id, conversation_id, trimmed)

    async for chunk in stream_reply(trimmed):
        yield chunk
