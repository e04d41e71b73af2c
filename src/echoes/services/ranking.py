"""Similarity ranking over a user's candidate memories."""

from collections.abc import Iterable, Sequence
from datetime import datetime

from echoes.domain.models import Memory, RankedResult, RetrievalOptions
from echoes.domain.vectors import cosine_similarity


class RetrievalRanker:
    """Scores, thresholds and truncates candidates against a query vector.

    Used by both the search screen and conversational grounding; the two
    differ only in their RetrievalOptions. The ranker is stateless and pure:
    no I/O, no logging, and malformed vectors simply score 0.
    """

    def rank(
        self,
        query_vector: Sequence[float],
        candidates: Iterable[Memory],
        options: RetrievalOptions | None = None,
    ) -> list[RankedResult]:
        """Rank candidates by cosine similarity to ``query_vector``.

        Scores strictly below ``options.min_similarity`` are dropped. The rest
        are ordered by score descending, then ``created_at`` descending, then
        id, and the first ``options.top_k`` are returned.
        """
        options = options or RetrievalOptions.for_search()
        if options.top_k == 0:
            return []

        scored = [
            RankedResult(memory=memory, score=cosine_similarity(query_vector, memory.embedding))
            for memory in candidates
            if memory.embedding is not None
        ]
        passing = [result for result in scored if result.score >= options.min_similarity]
        passing.sort(key=_ordering_key)
        return passing[: options.top_k]


def _ordering_key(result: RankedResult) -> tuple[float, float, str]:
    created: datetime = result.memory.created_at
    return (-result.score, -created.timestamp(), str(result.memory.id))
