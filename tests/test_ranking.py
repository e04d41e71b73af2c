from datetime import UTC, datetime

import pytest
from conftest import make_memory, unit_vector

from echoes.domain.models import Relevance, RetrievalOptions
from echoes.services.ranking import RetrievalRanker

QUERY = unit_vector(1.0)


def scored(score: float) -> list[float]:
    """Unit vector whose cosine with QUERY is ``score``."""
    return unit_vector(score, (1 - score**2) ** 0.5)


@pytest.fixture
def ranker() -> RetrievalRanker:
    return RetrievalRanker()


def test_orders_by_score_and_applies_threshold(ranker):
    low = make_memory("low", embedding=scored(0.2))
    high = make_memory("high", embedding=scored(0.9))
    mid = make_memory("mid", embedding=scored(0.5))

    results = ranker.rank(QUERY, [low, high, mid], RetrievalOptions(top_k=5, min_similarity=0.3))

    assert [r.memory.transcript for r in results] == ["high", "mid"]
    assert results[0].score == pytest.approx(0.9)


def test_threshold_is_inclusive(ranker):
    # cos = 3/5 exactly
    exact = make_memory("exact", embedding=unit_vector(3.0, 4.0))
    results = ranker.rank(QUERY, [exact], RetrievalOptions(top_k=5, min_similarity=0.6))
    assert len(results) == 1


def test_top_k_truncates_and_zero_returns_nothing(ranker):
    candidates = [make_memory(f"m{i}", embedding=scored(0.1 * i)) for i in range(1, 8)]
    assert len(ranker.rank(QUERY, candidates, RetrievalOptions(top_k=3, min_similarity=0.0))) == 3
    assert ranker.rank(QUERY, candidates, RetrievalOptions(top_k=0, min_similarity=0.0)) == []


def test_memories_without_embedding_are_skipped(ranker):
    missing = make_memory("missing")
    broken = make_memory("broken", embedding=[0.1] * 12)
    ok = make_memory("ok", embedding=scored(0.6))

    results = ranker.rank(QUERY, [missing, broken, ok], RetrievalOptions(top_k=20, min_similarity=0.0))

    assert [r.memory.transcript for r in results] == ["ok"]


def test_ties_prefer_newer_then_id(ranker):
    older = make_memory("older", embedding=scored(0.7), created_at=datetime(2026, 1, 1, tzinfo=UTC))
    newer = make_memory("newer", embedding=scored(0.7), created_at=datetime(2026, 6, 1, tzinfo=UTC))

    results = ranker.rank(QUERY, [older, newer])

    assert [r.memory.transcript for r in results] == ["newer", "older"]


def test_ranking_is_deterministic(ranker):
    candidates = [make_memory(f"m{i}", embedding=scored(0.5)) for i in range(5)]
    first = [r.memory.id for r in ranker.rank(QUERY, candidates)]
    second = [r.memory.id for r in ranker.rank(QUERY, list(reversed(candidates)))]
    assert first == second


def test_negative_scores_respect_similarity_floor(ranker):
    opposite = make_memory("opposite", embedding=unit_vector(-1.0))
    assert ranker.rank(QUERY, [opposite], RetrievalOptions(top_k=5, min_similarity=0.0)) == []
    results = ranker.rank(QUERY, [opposite], RetrievalOptions(top_k=5, min_similarity=-1.0))
    assert results[0].score == pytest.approx(-1.0)


def test_relevance_bands_and_percent(ranker):
    memories = [make_memory(str(s), embedding=scored(s)) for s in (0.75, 0.45, 0.2)]
    results = ranker.rank(QUERY, memories)

    assert [r.relevance for r in results] == [Relevance.HIGH, Relevance.MEDIUM, Relevance.LOW]
    assert [r.percent for r in results] == [75, 45, 20]
