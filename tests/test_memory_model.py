from datetime import UTC, datetime

import pytest
from conftest import make_memory

from echoes.domain.models import Emotion, Memory, RankedResult, RetrievalOutcome, RetrievalStatus


def test_invalid_stored_embedding_becomes_none():
    assert make_memory(embedding=[1.0, 2.0]).embedding is None
    assert make_memory(embedding="garbage").embedding is None


def test_json_stored_embedding_is_parsed():
    memory = make_memory(embedding="[" + ",".join(["0.5"] * 768) + "]")
    assert memory.has_embedding
    assert len(memory.embedding) == 768


def test_unknown_emotion_is_untagged():
    assert make_memory(emotion="Nostalgic").emotion is None
    assert make_memory(emotion="HAPPY").emotion == Emotion.HAPPY


def test_naive_created_at_is_treated_as_utc():
    memory = make_memory(created_at=datetime(2026, 10, 18, 9, 30))
    assert memory.created_at.tzinfo is UTC


def test_with_updates_validates_and_rejects_fixed_fields():
    memory = make_memory()
    updated = memory.with_updates({"title": "18th October, 2026", "embedding": [0.1] * 1000})

    assert updated.title == "18th October, 2026"
    assert len(updated.embedding) == 768
    assert memory.title is None

    with pytest.raises(ValueError):
        memory.with_updates({"user_id": "someone-else"})


def test_neo4j_properties_round_trip():
    memory = make_memory(embedding=[0.25] * 768, emotion=Emotion.SAD, day_of_week="Sunday")
    props = memory.to_properties()

    assert isinstance(props["created_at"], float)
    assert props["emotion"] == "sad"
    assert Memory.from_properties(props) == memory


def test_display_title_falls_back():
    assert make_memory().display_title == "Memory"


def test_outcome_without_removes_result_and_updates_status():
    memory = make_memory(embedding=[0.25] * 768)
    outcome = RetrievalOutcome(
        status=RetrievalStatus.OK,
        results=[RankedResult(memory=memory, score=0.8)],
        candidate_count=1,
    )

    emptied = outcome.without(memory.id)

    assert emptied.results == []
    assert emptied.status == RetrievalStatus.NO_MATCHES
    assert outcome.results
