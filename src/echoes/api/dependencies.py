"""API dependencies."""

from typing import Annotated

from fastapi import Header, HTTPException

from echoes.core.logging import update_log_context
from echoes.services.chat import ChatService
from echoes.services.enrichment import EnrichmentWorker
from echoes.services.memory_service import MemoryService
from echoes.services.retrieval import MemoryRetrievalService

# These will be set by the main.py lifespan
memory_service: MemoryService | None = None
retrieval_service: MemoryRetrievalService | None = None
chat_service: ChatService | None = None
enrichment_worker: EnrichmentWorker | None = None


async def get_user_id(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Caller identity; authentication happens upstream of this service."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    update_log_context("user_id", user_id)
    return user_id


def get_memory_service() -> MemoryService:
    if memory_service is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return memory_service


def get_retrieval_service() -> MemoryRetrievalService:
    if retrieval_service is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return retrieval_service


def get_chat_service() -> ChatService:
    if chat_service is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return chat_service


def get_enrichment_worker() -> EnrichmentWorker | None:
    return enrichment_worker
