#!/usr/bin/env python3
"""Diagnostic: exercise the configured memory backend end to end.

Saves a throwaway record, reads it back, and searches for it:

    uv run python scripts/check_memory.py
"""

import asyncio
import sys
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.config import settings
from src.memory.manager import MemoryManager
from src.memory.models import Message
from src.memory.store import MemoryBackendError, create_memory_store

USER_ID = "diagnostic"
CONVERSATION_ID = "check-memory"


def banner(msg: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {msg}")
    print(f"{'=' * 60}")


async def main() -> None:
    banner(f"Memory backend: {settings.memory_backend}")
    manager = MemoryManager(create_memory_store(settings))
    messages = [
        Message(role="user", content="Diagnostic message from diag@example.com"),
        Message(role="assistant", content="Details at https://example.com/diagnostic"),
    ]

    banner("Step 1: save_memory")
    try:
        record = await manager.save_memory(USER_ID, CONVERSATION_ID, messages)
    except MemoryBackendError as exc:
        print(f"FAIL: {exc} (cause: {exc.__cause__!r})")
        sys.exit(1)
    print(f"OK: summary={record.summary!r}")
    print(f"    entities={record.entities}")

    banner("Step 2: get_memory")
    fetched = await manager.get_memory(USER_ID, CONVERSATION_ID)
    if fetched is None:
        print("FAIL: record not found after save")
        sys.exit(1)
    print(f"OK: created_at={fetched.created_at.isoformat()}")

    banner("Step 3: search_memories")
    found = await manager.search_memories(USER_ID, "DIAGNOSTIC")
    print(f"OK: {len(found)} match(es)")

    banner("Done")


if __name__ == "__main__":
    asyncio.run(main())
