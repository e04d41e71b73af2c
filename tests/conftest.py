"""In-memory fakes for the store, embedding provider and response generator."""

import asyncio
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import pytest

from echoes.core.constants import EMBEDDING_DIMENSIONS
from echoes.core.errors import ServiceError
from echoes.domain.models import Memory


def unit_vector(*components: float, dimensions: int = EMBEDDING_DIMENSIONS) -> list[float]:
    """A vector whose leading components are ``components`` and the rest zero."""
    vector = [0.0] * dimensions
    for index, value in enumerate(components):
        vector[index] = value
    return vector


def make_memory(
    transcript: str = "Walked by the river this morning",
    embedding: Any = None,
    user_id: str = "user-1",
    created_at: datetime | None = None,
    **fields: Any,
) -> Memory:
    return Memory(
        user_id=user_id,
        transcript=transcript,
        embedding=embedding,
        created_at=created_at or datetime(2026, 10, 18, 9, 30, tzinfo=UTC),
        **fields,
    )


class InMemoryStore:
    """MemoryStore backed by a dict; ``fail_with`` makes every call raise.

    ``list_delay`` holds a listing open after its snapshot is taken, and
    ``updates`` records the fields each update was asked to write.
    """

    def __init__(self, memories: list[Memory] | None = None):
        self.memories: dict[UUID, Memory] = {memory.id: memory for memory in memories or []}
        self.list_calls = 0
        self.list_delay = 0.0
        self.updates: list[dict[str, Any]] = []
        self.fail_with: Exception | None = None

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def list_memories(self, user_id: str) -> list[Memory]:
        self._check()
        self.list_calls += 1
        owned = [memory for memory in self.memories.values() if memory.user_id == user_id]
        if self.list_delay:
            await asyncio.sleep(self.list_delay)
        return sorted(owned, key=lambda memory: memory.created_at, reverse=True)

    async def get_memory(self, memory_id: UUID) -> Memory | None:
        self._check()
        return self.memories.get(memory_id)

    async def create_memory(self, memory: Memory) -> Memory:
        self._check()
        self.memories[memory.id] = memory
        return memory

    async def update_memory(self, memory_id: UUID, fields: dict[str, Any]) -> Memory | None:
        self._check()
        self.updates.append(dict(fields))
        current = self.memories.get(memory_id)
        if current is None:
            return None
        updated = current.with_updates(fields)
        self.memories[memory_id] = updated
        return updated

    async def delete_memory(self, memory_id: UUID) -> bool:
        self._check()
        return self.memories.pop(memory_id, None) is not None

    async def list_unembedded(self, limit: int) -> list[Memory]:
        self._check()
        pending = [memory for memory in self.memories.values() if not memory.has_embedding]
        return sorted(pending, key=lambda memory: memory.created_at)[:limit]


class FakeEmbeddings:
    """Returns preset vectors per text, a default vector otherwise."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, default: list[float] | None = None):
        self.vectors = vectors or {}
        self.default = default or unit_vector(1.0)
        self.calls: list[str] = []
        self.failures_remaining = 0
        self.delay = 0.0

    async def embed_text(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures_remaining:
            self.failures_remaining -= 1
            raise ServiceError(message="embedding provider down")
        return list(self.vectors.get(text, self.default))

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed_text(text) for text in texts]

    def get_model_dimensions(self) -> int:
        return EMBEDDING_DIMENSIONS


class FakeGenerator:
    """Records the context it was given and echoes a canned reply."""

    def __init__(self, reply: str = "That sounds like a lovely morning.", summary: str | None = None):
        self.reply = reply
        self.summary = summary
        self.contexts: list[str] = []
        self.fail_with: Exception | None = None

    async def generate(self, context: str, user_message: str) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.contexts.append(context)
        return self.reply

    async def summarize(self, text: str) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        return self.summary if self.summary is not None else text[:40]


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()
