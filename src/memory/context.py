"""Token estimation and context-window trimming.

Token counts are a fixed heuristic (4 characters per token, rounded up),
not a real tokenizer. Trimming keeps the longest run of most recent messages
that fits the budget.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from src.memory.models import Message

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str | None) -> int:
    """Approximate the token count of *text* (``None`` counts as empty)."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def trim_for_context(messages: Sequence[Message], max_tokens: int) -> list[Message]:
    """Return the most recent suffix of *messages* that fits in *max_tokens*.

    Walks from newest to oldest and stops at the first message that would
    overflow the budget, even if an older, smaller message would still fit.
    Chronological order is preserved.
    """
    if max_tokens <= 0:
        return []

    total = 0
    start = len(messages)
    for i in range(len(messages) - 1, -1, -1):
        cost = estimate_tokens(messages[i].text())
        if total + cost > max_tokens:
            break
        total += cost
        start = i

    kept = list(messages[start:])
    if len(kept) < len(messages):
        logger.debug(
            "Trimmed context: kept %d/%d messages (%d tokens, budget %d)",
            len(kept),
            len(messages),
            total,
            max_tokens,
        )
    return kept
