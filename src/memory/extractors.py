"""Heuristic entity extraction and summary labels for memory records.

Both are intentionally primitive: regex matching and a word-length filter.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from src.memory.models import Message

# Category name -> pattern. New categories may be added; existing patterns
# must keep their matching semantics.
ENTITY_PATTERNS: dict[str, re.Pattern[str]] = {
    "emails": re.compile(r"[\w.-]+@[\w.-]+\.\w+"),
    "urls": re.compile(r"https?://\S+"),
}

SUMMARY_WINDOW = 3
SUMMARY_MIN_WORD_LENGTH = 5
SUMMARY_MAX_TOPICS = 5
SUMMARY_PREFIX = "Conversation about: "


def extract_entities(messages: Sequence[Message]) -> dict[str, list[str]]:
    """Find emails, URLs, etc. across all *messages*.

    Keys appear only for categories with at least one match. Matches keep
    their scan order and duplicates are not removed.
    """
    text = " ".join(m.text() for m in messages)
    entities: dict[str, list[str]] = {}
    for category, pattern in ENTITY_PATTERNS.items():
        found = pattern.findall(text)
        if found:
            entities[category] = found
    return entities


def generate_summary(messages: Sequence[Message]) -> str:
    """Label the conversation with the first long words of its last messages.

    Returns ``""`` for no messages, and ``"Conversation about: "`` with an
    empty list when no word is long enough.
    """
    if not messages:
        return ""

    recent = messages[-SUMMARY_WINDOW:]
    words = " ".join(m.text() for m in recent).split()
    topics = [w for w in words if len(w) >= SUMMARY_MIN_WORD_LENGTH][:SUMMARY_MAX_TOPICS]
    return SUMMARY_PREFIX + ", ".join(topics)
