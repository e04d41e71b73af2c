"""Retrieval value objects: options, ranked results and outcomes."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from echoes.core.config import settings
from echoes.core.constants import RELEVANCE_HIGH_THRESHOLD, RELEVANCE_MEDIUM_THRESHOLD
from echoes.domain.models.memory import Memory


class RetrievalOptions(BaseModel):
    """Ranking knobs; call sites differ only in these values."""

    top_k: int = Field(default=settings.search_top_k, ge=0)
    min_similarity: float = Field(default=settings.search_min_similarity, ge=-1.0, le=1.0)

    @classmethod
    def for_search(cls, top_k: int | None = None, min_similarity: float | None = None) -> "RetrievalOptions":
        return cls(
            top_k=settings.search_top_k if top_k is None else top_k,
            min_similarity=settings.search_min_similarity if min_similarity is None else min_similarity,
        )

    @classmethod
    def for_grounding(cls) -> "RetrievalOptions":
        return cls(top_k=settings.grounding_top_k, min_similarity=settings.grounding_min_similarity)


class Relevance(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RankedResult(BaseModel):
    """A memory paired with its similarity to the query."""

    memory: Memory
    score: float = Field(ge=-1.0, le=1.0)

    @property
    def relevance(self) -> Relevance:
        if self.score > RELEVANCE_HIGH_THRESHOLD:
            return Relevance.HIGH
        if self.score > RELEVANCE_MEDIUM_THRESHOLD:
            return Relevance.MEDIUM
        return Relevance.LOW

    @property
    def percent(self) -> int:
        return round(self.score * 100)


class RetrievalStatus(str, Enum):
    """How a retrieval ended; each empty status has its own user-facing message."""

    OK = "ok"
    NO_MATCHES = "no_matches"
    NO_SEARCHABLE_DATA = "no_searchable_data"
    UNAVAILABLE = "unavailable"
    SUPERSEDED = "superseded"


class RetrievalOutcome(BaseModel):
    status: RetrievalStatus
    results: list[RankedResult] = Field(default_factory=list)
    candidate_count: int = 0
    reason: str | None = None

    @property
    def memory_ids(self) -> list[UUID]:
        return [result.memory.id for result in self.results]

    def without(self, memory_id: UUID) -> "RetrievalOutcome":
        """Copy of this outcome with one memory removed from its results."""
        remaining = [result for result in self.results if result.memory.id != memory_id]
        if len(remaining) == len(self.results):
            return self
        status = self.status
        if status == RetrievalStatus.OK and not remaining:
            status = RetrievalStatus.NO_MATCHES
        return self.model_copy(update={"results": remaining, "status": status})

    @classmethod
    def unavailable(cls, reason: str) -> "RetrievalOutcome":
        return cls(status=RetrievalStatus.UNAVAILABLE, reason=reason)
