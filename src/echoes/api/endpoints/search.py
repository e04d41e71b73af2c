"""Semantic search endpoint."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from echoes.api.dependencies import get_retrieval_service, get_user_id
from echoes.core.logging import get_logger
from echoes.domain.models import RankedResult, Relevance, RetrievalOutcome, RetrievalStatus
from echoes.services.retrieval import MemoryRetrievalService

logger = get_logger(__name__)
router = APIRouter()

STATUS_MESSAGES: dict[RetrievalStatus, str] = {
    RetrievalStatus.NO_MATCHES: "No relevant memories found.",
    RetrievalStatus.NO_SEARCHABLE_DATA: (
        "Your memories don't have vector embeddings yet. New memories will be searchable."
    ),
    RetrievalStatus.UNAVAILABLE: "Search is temporarily unavailable. Please try again.",
    RetrievalStatus.SUPERSEDED: "A newer search replaced this one.",
}


class SearchRequest(BaseModel):
    """Request model for searching memories."""

    query: str = Field(..., min_length=1)
    top_k: int | None = Field(default=None, ge=0)
    min_similarity: float | None = Field(default=None, ge=-1.0, le=1.0)


class SearchResultItem(BaseModel):
    id: UUID
    title: str
    created_at: datetime
    day_of_week: str | None
    emotion: str | None
    transcript: str
    summary: str | None
    score: float
    similarity_percent: int
    relevance: Relevance

    @classmethod
    def from_result(cls, result: RankedResult) -> "SearchResultItem":
        memory = result.memory
        return cls(
            id=memory.id,
            title=memory.display_title,
            created_at=memory.created_at,
            day_of_week=memory.day_of_week,
            emotion=memory.emotion.value if memory.emotion else None,
            transcript=memory.transcript,
            summary=memory.summary,
            score=result.score,
            similarity_percent=result.percent,
            relevance=result.relevance,
        )


class SearchResponse(BaseModel):
    status: RetrievalStatus
    message: str | None = None
    results: list[SearchResultItem]
    count: int
    candidate_count: int

    @classmethod
    def from_outcome(cls, outcome: RetrievalOutcome) -> "SearchResponse":
        items = [SearchResultItem.from_result(result) for result in outcome.results]
        return cls(
            status=outcome.status,
            message=STATUS_MESSAGES.get(outcome.status),
            results=items,
            count=len(items),
            candidate_count=outcome.candidate_count,
        )


@router.post("", response_model=SearchResponse, operation_id="search_memories")
async def search_memories(
    request: SearchRequest,
    user_id: Annotated[str, Depends(get_user_id)],
    retrieval: Annotated[MemoryRetrievalService, Depends(get_retrieval_service)],
) -> SearchResponse:
    """Rank the caller's memories by semantic similarity to the query.

    Empty outcomes are not errors: the response carries a status and a
    message the client shows as-is.
    """
    outcome = await retrieval.search(
        user_id,
        request.query,
        top_k=request.top_k,
        min_similarity=request.min_similarity,
    )
    return SearchResponse.from_outcome(outcome)
