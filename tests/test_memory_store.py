"""Tests for the memory store backends."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, create_autospec, patch

import pytest
from mem0 import AsyncMemoryClient

from src.config import Settings
from src.memory.models import ConversationMemory
from src.memory.store import (
    PAGE_SIZE,
    InProcessMemoryStore,
    Mem0MemoryStore,
    MemoryBackendError,
    create_memory_store,
)

T0 = datetime(2025, 1, 1, tzinfo=UTC)


def _record(
    user_id: str = "u1",
    conversation_id: str = "c1",
    summary: str = "Conversation about: budget",
    created_at: datetime = T0,
    updated_at: datetime = T0,
) -> ConversationMemory:
    return ConversationMemory(
        user_id=user_id,
        conversation_id=conversation_id,
        context=["hello"],
        entities={},
        summary=summary,
        created_at=created_at,
        updated_at=updated_at,
    )


def _mem0_item(record: ConversationMemory, memory_id: str = "mem_1") -> dict:
    return {
        "id": memory_id,
        "memory": record.summary,
        "metadata": {
            "memory_key": record.key,
            "conversation_id": record.conversation_id,
            "record": record.model_dump(mode="json", by_alias=True),
        },
    }


# -- In-process --------------------------------------------------------------


async def test_in_process_save_and_get() -> None:
    store = InProcessMemoryStore()
    await store.save("u1", "c1", _record())
    fetched = await store.get("u1", "c1")
    assert fetched is not None
    assert fetched.summary == "Conversation about: budget"


async def test_in_process_get_missing() -> None:
    assert await InProcessMemoryStore().get("u1", "nope") is None


async def test_in_process_upsert_keeps_one_record_and_created_at() -> None:
    store = InProcessMemoryStore()
    later = T0 + timedelta(hours=1)
    await store.save("u1", "c1", _record())
    await store.save("u1", "c1", _record(summary="new", created_at=later, updated_at=later))

    assert len(store) == 1
    fetched = await store.get("u1", "c1")
    assert fetched.created_at == T0
    assert fetched.updated_at == later
    assert fetched.summary == "new"


async def test_in_process_returns_snapshots() -> None:
    store = InProcessMemoryStore()
    await store.save("u1", "c1", _record())
    fetched = await store.get("u1", "c1")
    fetched.context.append("mutated")

    again = await store.get("u1", "c1")
    assert again.context == ["hello"]


async def test_in_process_all_for_user_filters_by_user() -> None:
    store = InProcessMemoryStore()
    await store.save("u1", "c1", _record())
    await store.save("u1", "c2", _record(conversation_id="c2"))
    await store.save("u2", "c1", _record(user_id="u2"))

    records = await store.all_for_user("u1")
    assert sorted(r.conversation_id for r in records) == ["c1", "c2"]


# -- Mem0 --------------------------------------------------------------------


@pytest.fixture
def client() -> AsyncMock:
    """A mock checked against the real Mem0 client's method set."""
    c = create_autospec(AsyncMemoryClient, instance=True)
    c.get_all.return_value = {"count": 0, "next": None, "previous": None, "results": []}
    return c


async def test_mem0_save_adds_new_memory(client: AsyncMock) -> None:
    store = Mem0MemoryStore(client)
    await store.save("u1", "c1", _record())

    client.add.assert_called_once()
    args, kwargs = client.add.call_args
    assert args[0] == [{"role": "user", "content": "Conversation about: budget"}]
    assert kwargs["user_id"] == "u1"
    assert kwargs["infer"] is False
    assert kwargs["metadata"]["memory_key"] == "u1:c1"
    assert kwargs["metadata"]["record"]["conversationId"] == "c1"
    client.update.assert_not_called()


async def test_mem0_save_updates_existing_and_keeps_created_at(client: AsyncMock) -> None:
    client.get_all.return_value = {"results": [_mem0_item(_record(), "mem_9")]}
    store = Mem0MemoryStore(client)
    later = T0 + timedelta(days=1)

    await store.save("u1", "c1", _record(summary="changed", created_at=later, updated_at=later))

    client.add.assert_not_called()
    args, kwargs = client.update.call_args
    assert args[0] == "mem_9"
    saved = ConversationMemory.model_validate(kwargs["metadata"]["record"])
    assert saved.created_at == T0
    assert saved.updated_at == later
    assert kwargs["text"] == "changed"


async def test_mem0_get_finds_record(client: AsyncMock) -> None:
    client.get_all.return_value = {
        "results": [
            _mem0_item(_record(conversation_id="c1"), "m1"),
            _mem0_item(_record(conversation_id="c2", summary="other"), "m2"),
        ]
    }
    store = Mem0MemoryStore(client)

    record = await store.get("u1", "c2")
    assert record is not None
    assert record.summary == "other"
    client.get_all.assert_called_once_with(filters={"user_id": "u1"}, page=1, page_size=100)


async def test_mem0_scopes_by_filters_not_top_level_ids(client: AsyncMock) -> None:
    await Mem0MemoryStore(client).all_for_user("u1")

    _, kwargs = client.get_all.call_args
    assert kwargs["filters"] == {"user_id": "u1"}
    assert not {"user_id", "agent_id", "app_id", "run_id"} & set(kwargs)


async def test_mem0_follows_pagination(client: AsyncMock) -> None:
    first = _mem0_item(_record(conversation_id="c1"), "m1")
    second = _mem0_item(_record(conversation_id="c2", summary="page two"), "m2")
    client.get_all.side_effect = [
        {"count": 2, "next": "https://api.mem0.ai/v3/memories/?page=2", "results": [first]},
        {"count": 2, "next": None, "results": [second]},
    ]
    store = Mem0MemoryStore(client)

    record = await store.get("u1", "c2")

    assert record is not None
    assert record.summary == "page two"
    pages = [call.kwargs["page"] for call in client.get_all.call_args_list]
    assert pages == [1, 2]
    assert all(call.kwargs["page_size"] == PAGE_SIZE for call in client.get_all.call_args_list)


async def test_mem0_save_updates_record_found_on_later_page(client: AsyncMock) -> None:
    filler = _mem0_item(_record(conversation_id="other"), "m1")
    client.get_all.side_effect = [
        {"count": 2, "next": "page-2", "results": [filler]},
        {"count": 2, "next": None, "results": [_mem0_item(_record(), "m2")]},
    ]
    later = T0 + timedelta(days=2)

    await Mem0MemoryStore(client).save("u1", "c1", _record(created_at=later, updated_at=later))

    client.add.assert_not_called()
    args, kwargs = client.update.call_args
    assert args[0] == "m2"
    assert ConversationMemory.model_validate(kwargs["metadata"]["record"]).created_at == T0


async def test_mem0_get_missing(client: AsyncMock) -> None:
    assert await Mem0MemoryStore(client).get("u1", "c1") is None


async def test_mem0_all_for_user_skips_foreign_memories(client: AsyncMock) -> None:
    client.get_all.return_value = [
        _mem0_item(_record()),
        {"id": "x", "memory": "Likes coffee", "metadata": {"source": "explicit"}},
        {"id": "y", "memory": "broken", "metadata": {"record": {"userId": "u1"}}},
        {"id": "z", "memory": "no meta", "metadata": None},
    ]
    records = await Mem0MemoryStore(client).all_for_user("u1")
    assert [r.conversation_id for r in records] == ["c1"]


async def test_mem0_fetch_failure_raises_backend_error(client: AsyncMock) -> None:
    client.get_all.side_effect = ConnectionError("down")
    store = Mem0MemoryStore(client)

    with pytest.raises(MemoryBackendError):
        await store.get("u1", "c1")
    with pytest.raises(MemoryBackendError):
        await store.all_for_user("u1")


async def test_mem0_write_failure_raises_backend_error(client: AsyncMock) -> None:
    client.add.side_effect = RuntimeError("401 unauthorized")
    with pytest.raises(MemoryBackendError) as exc_info:
        await Mem0MemoryStore(client).save("u1", "c1", _record())
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_normalize_formats() -> None:
    assert Mem0MemoryStore._normalize({"results": [{"id": "1"}]}) == [{"id": "1"}]
    assert Mem0MemoryStore._normalize([{"id": "1"}]) == [{"id": "1"}]
    assert Mem0MemoryStore._normalize(None) == []


# -- Selection ---------------------------------------------------------------


def test_create_store_without_key_is_in_process() -> None:
    store = create_memory_store(Settings(mem0_api_key=""))
    assert isinstance(store, InProcessMemoryStore)


def test_create_store_with_blank_key_is_in_process() -> None:
    store = create_memory_store(Settings(mem0_api_key="   "))
    assert isinstance(store, InProcessMemoryStore)


def test_create_store_with_key_uses_mem0() -> None:
    fake_client_cls = MagicMock()
    with patch("mem0.AsyncMemoryClient", fake_client_cls):
        store = create_memory_store(Settings(mem0_api_key="m0-key"))
    assert isinstance(store, Mem0MemoryStore)
    fake_client_cls.assert_called_once_with(api_key="m0-key")
