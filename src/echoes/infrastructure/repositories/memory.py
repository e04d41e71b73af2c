from enum import Enum
from typing import Any
from uuid import UUID

from neo4j import AsyncDriver
from pydantic import ValidationError

from echoes.core.base import ErrorCode, ErrorLevel
from echoes.core.config import settings
from echoes.core.decorators import with_error_handling, with_session
from echoes.core.errors import StoreError
from echoes.core.logging import get_logger
from echoes.domain.models import MUTABLE_FIELDS, Memory
from echoes.infrastructure.neo4j.driver import neo4j_errors
from echoes.infrastructure.neo4j.queries import MemoryQueries

logger = get_logger(__name__)


class Neo4jMemoryStore:
    """MemoryStore over ``(:Memory)`` nodes."""

    def __init__(self, driver: AsyncDriver):
        self.driver = driver

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    @neo4j_errors("list_memories", source="neo4j_memory_store", label="Memory")
    @with_session()
    async def list_memories(self, session, user_id: str) -> list[Memory]:
        result = await session.run(MemoryQueries.list_for_user(), user_id=user_id)
        memories = [self._to_memory(record["m"]) async for record in result]
        logger.debug("memories_loaded", user_id=user_id, count=len(memories))
        return [memory for memory in memories if memory is not None]

    @neo4j_errors("get_memory", source="neo4j_memory_store", label="Memory")
    @with_session()
    async def get_memory(self, session, memory_id: UUID) -> Memory | None:
        result = await session.run(MemoryQueries.get_by_id(), id=str(memory_id))
        record = await result.single()
        return self._to_memory(record["m"]) if record else None

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    @neo4j_errors("create_memory", source="neo4j_memory_store", label="Memory")
    @with_session()
    async def create_memory(self, session, memory: Memory) -> Memory:
        result = await session.run(MemoryQueries.create(), properties=memory.to_properties())
        record = await result.single()
        if not record:
            raise StoreError(
                message="Failed to store memory in database",
                details={"source": "neo4j_memory_store", "operation": "create_memory", "memory_id": str(memory.id)},
            )
        logger.debug("memory_stored", memory_id=str(memory.id))
        return memory

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    @neo4j_errors("update_memory", source="neo4j_memory_store", label="Memory")
    @with_session()
    async def update_memory(self, session, memory_id: UUID, fields: dict[str, Any]) -> Memory | None:
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise StoreError(
                message=f"Fields cannot be updated: {sorted(unknown)}",
                code=ErrorCode.INVALID_REQUEST,
                details={"source": "neo4j_memory_store", "operation": "update_memory"},
            )
        result = await session.run(
            MemoryQueries.update_fields(),
            id=str(memory_id),
            fields=self._serialize_fields(fields),
        )
        record = await result.single()
        return self._to_memory(record["m"]) if record else None

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    @neo4j_errors("delete_memory", source="neo4j_memory_store", label="Memory")
    @with_session()
    async def delete_memory(self, session, memory_id: UUID) -> bool:
        result = await session.run(MemoryQueries.delete(), id=str(memory_id))
        record = await result.single()
        return bool(record and record["deleted"])

    @neo4j_errors("list_unembedded", source="neo4j_memory_store", label="Memory")
    @with_session()
    async def list_unembedded(self, session, limit: int) -> list[Memory]:
        result = await session.run(
            MemoryQueries.list_unembedded(),
            limit=limit,
            dimensions=settings.embedding_dimensions,
        )
        memories = [self._to_memory(record["m"]) async for record in result]
        return [memory for memory in memories if memory is not None]

    @staticmethod
    def _serialize_fields(fields: dict[str, Any]) -> dict[str, Any]:
        serialized = {}
        for key, value in fields.items():
            if isinstance(value, Enum):
                value = value.value
            serialized[key] = value
        return serialized

    @staticmethod
    def _to_memory(node: Any) -> Memory | None:
        """Convert a node to a Memory; an unreadable row is skipped, not fatal."""
        props = dict(node)
        try:
            return Memory.from_properties(props)
        except ValidationError:
            logger.warning("memory_row_unreadable", memory_id=props.get("id"), exc_info=True)
            return None
