"""Memory lifecycle: save, browse, update and delete."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import UUID

from echoes.core.base import ErrorCode, ErrorLevel, ResourceErrorDetails, ValidationErrorDetails
from echoes.core.decorators import with_error_handling
from echoes.core.errors import NotFoundError, ProcessingError
from echoes.core.logging import get_logger
from echoes.domain.models import MUTABLE_FIELDS, Memory, utc_now

if TYPE_CHECKING:
    from echoes.services import MemoryStore
    from echoes.services.enrichment import EnrichmentWorker
    from echoes.services.retrieval import MemoryRetrievalService

logger = get_logger(__name__)


class MemoryService:
    """Owns memory writes and keeps the retrieval cache consistent with them."""

    def __init__(
        self,
        store: MemoryStore,
        retrieval: MemoryRetrievalService,
        worker: EnrichmentWorker | None = None,
    ):
        self.store = store
        self.retrieval = retrieval
        self.worker = worker

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def save_memory(self, user_id: str, transcript: str, duration_seconds: int = 0) -> Memory:
        """Persist a new memory and hand it to post-processing.

        Returns as soon as the record is stored; summary, title, emotion and
        embedding are filled in later by the enrichment worker.
        """
        if not transcript.strip():
            raise ProcessingError(
                message="Transcript is empty",
                code=ErrorCode.INVALID_INPUT,
                details={"source": "memory_service", "operation": "save_memory"},
            )

        now = utc_now()
        memory = Memory(
            user_id=user_id,
            transcript=transcript.strip(),
            created_at=now,
            day_of_week=now.strftime("%A"),
            duration_seconds=duration_seconds,
        )
        stored = await self.store.create_memory(memory)
        self.retrieval.invalidate(user_id)
        logger.info("memory_saved", memory_id=str(stored.id), user_id=user_id, duration_seconds=duration_seconds)

        if self.worker is not None:
            self.worker.enqueue(stored)
        return stored

    async def list_memories(self, user_id: str) -> list[Memory]:
        """All of the user's memories, newest first."""
        return await self.store.list_memories(user_id)

    async def get_memory(self, user_id: str, memory_id: UUID) -> Memory:
        memory = await self.store.get_memory(memory_id)
        if memory is None or memory.user_id != user_id:
            raise NotFoundError(
                message=f"Memory {memory_id} not found",
                details=ResourceErrorDetails(
                    source="memory_service",
                    operation="get_memory",
                    resource_id=str(memory_id),
                    resource_type="Memory",
                    action="read",
                ),
            )
        return memory

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def update_memory(self, user_id: str, memory_id: UUID, fields: dict[str, Any]) -> Memory:
        """Overwrite mutable fields of a memory owned by ``user_id``."""
        current = await self.get_memory(user_id, memory_id)
        try:
            validated = current.with_updates(fields)
        except ValueError as e:
            raise ProcessingError(
                message=str(e),
                code=ErrorCode.INVALID_INPUT,
                details=ValidationErrorDetails(
                    source="memory_service",
                    operation="update_memory",
                    field=", ".join(sorted(set(fields) - MUTABLE_FIELDS)) or None,
                    constraint="only transcript, summary, title, emotion and embedding can change",
                ),
            ) from e

        # Persist the normalised values, never the caller's raw shapes
        canonical = validated.model_dump(mode="json")
        updated = await self.store.update_memory(memory_id, {field: canonical[field] for field in fields})
        if updated is None:
            raise NotFoundError(message=f"Memory {memory_id} not found")
        self.retrieval.invalidate(user_id)
        return updated

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def delete_memory(self, user_id: str, memory_id: UUID) -> None:
        """Delete a memory and drop it from cached candidates and shown results."""
        await self.get_memory(user_id, memory_id)
        await self.store.delete_memory(memory_id)
        self.retrieval.forget(user_id, memory_id)
        logger.info("memory_deleted", memory_id=str(memory_id), user_id=user_id)
