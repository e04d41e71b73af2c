"""Service layer interfaces.

The retrieval core depends on these protocols only; concrete Gemini and
Neo4j implementations live under ``echoes.infrastructure``.
"""

from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from echoes.domain.models import Memory


@runtime_checkable
class EmbeddingService(Protocol):
    """Turns text into canonical vectors.

    Failures raise an ApplicationError; a zero vector is never used to signal
    failure.
    """

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts."""
        ...

    def get_model_dimensions(self) -> int:
        """Get the dimensions of the embedding model."""
        ...


@runtime_checkable
class MemoryStore(Protocol):
    """Persistence for memory records."""

    async def list_memories(self, user_id: str) -> list[Memory]:
        """All memories of a user, newest first."""
        ...

    async def get_memory(self, memory_id: UUID) -> Memory | None:
        ...

    async def create_memory(self, memory: Memory) -> Memory:
        ...

    async def update_memory(self, memory_id: UUID, fields: dict[str, Any]) -> Memory | None:
        """Overwrite the given fields; returns None when the memory no longer exists."""
        ...

    async def delete_memory(self, memory_id: UUID) -> bool:
        ...

    async def list_unembedded(self, limit: int) -> list[Memory]:
        """Memories whose embedding is still missing, oldest first."""
        ...


@runtime_checkable
class ResponseGenerator(Protocol):
    """Produces the assistant reply from composed context."""

    async def generate(self, context: str, user_message: str) -> str:
        ...


@runtime_checkable
class Summarizer(Protocol):
    async def summarize(self, text: str) -> str:
        ...


__all__ = ["EmbeddingService", "MemoryStore", "ResponseGenerator", "Summarizer"]
