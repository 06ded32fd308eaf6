"""Shared test fixtures."""

import pytest

from src.memory.manager import MemoryManager
from src.memory.store import InProcessMemoryStore


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("src.config.settings.turso_database_url", "")


@pytest.fixture
def memory_store() -> InProcessMemoryStore:
    return InProcessMemoryStore()


@pytest.fixture
def memory_manager(memory_store: InProcessMemoryStore) -> MemoryManager:
    """A MemoryManager backed by an isolated in-process store."""
    return MemoryManager(memory_store)
