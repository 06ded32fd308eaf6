"""Tests for message and memory models."""

from datetime import UTC, datetime

from src.memory.models import ConversationMemory, Message, memory_key


def test_text_from_content() -> None:
    assert Message(role="user", content="hello").text() == "hello"


def test_text_from_parts_skips_non_text() -> None:
    message = Message.model_validate(
        {
            "role": "assistant",
            "parts": [
                {"type": "text", "text": "a"},
                {"type": "file", "url": "https://x"},
                {"type": "text", "text": "b"},
            ],
        }
    )
    assert message.text() == "a  b"
    assert message.context_text() == "a [file] b"


def test_missing_part_text_is_empty() -> None:
    message = Message.model_validate({"role": "user", "parts": [{"type": "text"}]})
    assert message.text() == ""


def test_unknown_fields_ignored() -> None:
    message = Message.model_validate({"role": "user", "content": "x", "experimental": 1})
    assert message.content == "x"


def test_memory_key() -> None:
    assert memory_key("1.2.3.4", "current") == "1.2.3.4:current"


def test_memory_serializes_camel_case() -> None:
    now = datetime(2025, 3, 1, tzinfo=UTC)
    record = ConversationMemory(
        user_id="u", conversation_id="c", created_at=now, updated_at=now
    )
    data = record.model_dump(mode="json", by_alias=True)
    assert data["userId"] == "u"
    assert data["conversationId"] == "c"
    assert data["createdAt"].startswith("2025-03-01T00:00:00")
    assert ConversationMemory.model_validate(data) == record
    assert record.key == "u:c"
