import asyncio
from uuid import uuid4

import pytest
from conftest import FakeEmbeddings, FakeGenerator, InMemoryStore, make_memory, unit_vector

from echoes.core.base import ErrorCode
from echoes.core.errors import ServiceError, StoreError
from echoes.domain.models import RetrievalStatus, TurnRole
from echoes.services.chat import ChatService, ChatSessionRegistry
from echoes.services.retrieval import MemoryRetrievalService


def chat_for(store: InMemoryStore, generator: FakeGenerator | None = None) -> tuple[ChatService, FakeGenerator]:
    generator = generator or FakeGenerator()
    retrieval = MemoryRetrievalService(store, FakeEmbeddings(default=unit_vector(1.0)))
    return ChatService(retrieval, generator), generator


def test_reply_is_grounded_on_relevant_memories():
    relevant = make_memory("Swam in the lake at dawn", embedding=unit_vector(1.0))
    unrelated = make_memory("Filed my taxes", embedding=unit_vector(0.0, 1.0))
    chat, generator = chat_for(InMemoryStore([relevant, unrelated]))
    session_id = uuid4()

    reply = asyncio.run(chat.send_message("user-1", session_id, "What did I do at the lake?"))

    assert reply.grounding_status == RetrievalStatus.OK
    assert reply.memory_ids == [relevant.id]
    assert "Swam in the lake at dawn" in generator.contexts[0]
    assert "Filed my taxes" not in generator.contexts[0]


def test_turns_are_recorded_and_windowed():
    chat, generator = chat_for(InMemoryStore())
    session_id = uuid4()

    async def scenario():
        for i in range(5):
            await chat.send_message("user-1", session_id, f"message {i}")

    asyncio.run(scenario())

    session = chat.sessions.get("user-1", session_id)
    assert len(session.turns) == 10
    assert session.turns[-1].role == TurnRole.ASSISTANT
    last_context = generator.contexts[-1]
    assert "message 4" in last_context
    assert "message 1" not in last_context


def test_grounding_failure_still_answers():
    store = InMemoryStore()
    store.fail_with = StoreError(message="down")
    chat, _ = chat_for(store)

    reply = asyncio.run(chat.send_message("user-1", uuid4(), "hello"))

    assert reply.grounding_status == RetrievalStatus.UNAVAILABLE
    assert reply.memory_ids == []


def test_generator_failure_raises_service_error():
    generator = FakeGenerator()
    generator.fail_with = ServiceError(message="quota")
    chat, _ = chat_for(InMemoryStore(), generator)

    with pytest.raises(ServiceError) as excinfo:
        asyncio.run(chat.send_message("user-1", uuid4(), "hello"))
    assert excinfo.value.code == ErrorCode.GENERATION_FAILED


def test_sessions_are_scoped_per_user():
    chat, _ = chat_for(InMemoryStore())
    session_id = uuid4()

    asyncio.run(chat.send_message("user-1", session_id, "mine"))

    assert chat.sessions.get("user-2", session_id) is None


def test_registry_drops_least_recently_used_session():
    registry = ChatSessionRegistry(max_sessions=2)
    first, second, third = uuid4(), uuid4(), uuid4()

    registry.get_or_create("user-1", first)
    registry.get_or_create("user-1", second)
    registry.get_or_create("user-1", first)
    registry.get_or_create("user-1", third)

    assert len(registry) == 2
    assert registry.get("user-1", second) is None
    assert registry.get("user-1", first) is not None
    assert registry.close("user-1", third) is True
    assert registry.close("user-1", third) is False
