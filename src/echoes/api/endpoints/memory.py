"""Memory API endpoints."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from echoes.api.dependencies import get_memory_service, get_user_id
from echoes.core.decorators import with_error_handling
from echoes.core.logging import get_logger
from echoes.domain.models import Memory
from echoes.services.memory_service import MemoryService

logger = get_logger(__name__)
router = APIRouter()


class SaveMemoryRequest(BaseModel):
    """A finished recording's transcript."""

    transcript: str = Field(..., min_length=1)
    duration_seconds: int = Field(default=0, ge=0, description="Recording length in seconds")


class MemoryResponse(BaseModel):
    id: UUID
    title: str
    summary: str | None
    transcript: str
    emotion: str | None
    created_at: datetime
    day_of_week: str | None
    duration_seconds: int
    searchable: bool = Field(description="Whether the memory has an embedding yet")

    @classmethod
    def from_memory(cls, memory: Memory) -> "MemoryResponse":
        return cls(
            id=memory.id,
            title=memory.display_title,
            summary=memory.summary,
            transcript=memory.transcript,
            emotion=memory.emotion.value if memory.emotion else None,
            created_at=memory.created_at,
            day_of_week=memory.day_of_week,
            duration_seconds=memory.duration_seconds,
            searchable=memory.has_embedding,
        )


@router.post("", response_model=MemoryResponse, status_code=status.HTTP_201_CREATED, operation_id="save_memory")
@with_error_handling(reraise=True)
async def save_memory(
    request: SaveMemoryRequest,
    user_id: Annotated[str, Depends(get_user_id)],
    memory_service: Annotated[MemoryService, Depends(get_memory_service)],
) -> MemoryResponse:
    """Save a transcript; summary, title, emotion and embedding follow in the background."""
    memory = await memory_service.save_memory(user_id, request.transcript, request.duration_seconds)
    return MemoryResponse.from_memory(memory)


@router.get("", response_model=list[MemoryResponse], operation_id="list_memories")
async def list_memories(
    user_id: Annotated[str, Depends(get_user_id)],
    memory_service: Annotated[MemoryService, Depends(get_memory_service)],
) -> list[MemoryResponse]:
    memories = await memory_service.list_memories(user_id)
    return [MemoryResponse.from_memory(memory) for memory in memories]


@router.get("/{memory_id}", response_model=MemoryResponse, operation_id="get_memory")
async def get_memory(
    memory_id: UUID,
    user_id: Annotated[str, Depends(get_user_id)],
    memory_service: Annotated[MemoryService, Depends(get_memory_service)],
) -> MemoryResponse:
    return MemoryResponse.from_memory(await memory_service.get_memory(user_id, memory_id))


@router.delete("/{memory_id}", status_code=status.HTTP_204_NO_CONTENT, operation_id="delete_memory")
async def delete_memory(
    memory_id: UUID,
    user_id: Annotated[str, Depends(get_user_id)],
    memory_service: Annotated[MemoryService, Depends(get_memory_service)],
) -> None:
    await memory_service.delete_memory(user_id, memory_id)
