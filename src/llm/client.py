"""Async Claude API client that streams chat replies."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import anthropic

from src.config import settings
from src.llm.prompt import SYSTEM_PROMPT

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from src.memory.models import Message

logger = logging.getLogger(__name__)

_client: anthropic.AsyncAnthropic | None = None


def _get_client() -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    return _client


def _render(message: Message) -> str:
    """Flatten a message for the API, mentioning any attached files."""
    lines = [message.text().strip()]
    for part in message.parts:
        if part.type != "text" and part.url:
            label = part.name or part.type
            lines.append(f"[File: {label} ({part.media_type or 'unknown type'}) {part.url}]")
    for f in message.files:
        lines.append(f"[File: {f.name} ({f.type}) {f.url}]")
    return "\n".join(line for line in lines if line)


def to_api_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert chat messages to Claude API format.

    Empty messages are dropped and consecutive same-role messages merged,
    since the API requires non-empty, alternating turns.
    """
    result: list[dict[str, Any]] = []
    for message in messages:
        content = _render(message)
        if not content:
            continue
        if result and result[-1]["role"] == message.role:
            result[-1]["content"] += f"\n\n{content}"
        else:
            result.append({"role": message.role, "content": content})
    return result


async def stream_reply(
    messages: Sequence[Message],
    *,
    system: str = SYSTEM_PROMPT,
    model: str | None = None,
    max_tokens: int | None = None,
) -> AsyncIterator[str]:
    """Yield reply text chunks from Claude as they arrive."""
    client = _get_client()
    api_messages = to_api_messages(messages)
    if not api_messages:
        msg = "No message content to send"
        raise ValueError(msg)

    async with client.messages.stream(
        model=model or settings.claude_model,
        max_tokens=max_tokens or settings.max_response_tokens,
        system=system,
        messages=api_messages,
    ) as stream:
        async for text in stream.text_stream:
            yield text

    logger.debug("Streamed reply for %d message(s)", len(api_messages))
