import asyncio
from uuid import uuid4

import pytest
from conftest import FakeEmbeddings, FakeGenerator, InMemoryStore, make_memory, unit_vector
from fastapi.testclient import TestClient

from echoes.api import dependencies
from echoes.core.base import ErrorCode
from echoes.core.errors import StoreError
from echoes.core.logging import get_log_context
from echoes.main import create_app
from echoes.services.chat import ChatService
from echoes.services.enrichment import EnrichmentWorker, MemoryEnricher
from echoes.services.memory_service import MemoryService
from echoes.services.retrieval import MemoryRetrievalService

HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def api_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def client(api_store: InMemoryStore) -> TestClient:
    # No `with` block: the lifespan would try to reach Neo4j and Gemini.
    embeddings = FakeEmbeddings(default=unit_vector(1.0))
    retrieval = MemoryRetrievalService(api_store, embeddings)
    worker = EnrichmentWorker(MemoryEnricher(api_store, embeddings, retrieval=retrieval), api_store)

    app = create_app()
    app.dependency_overrides[dependencies.get_memory_service] = lambda: MemoryService(api_store, retrieval)
    app.dependency_overrides[dependencies.get_retrieval_service] = lambda: retrieval
    chat = ChatService(retrieval, FakeGenerator())
    app.dependency_overrides[dependencies.get_chat_service] = lambda: chat
    app.dependency_overrides[dependencies.get_enrichment_worker] = lambda: worker
    return TestClient(app)


def test_requests_without_user_header_are_rejected(client: TestClient):
    assert client.get("/api/v1/memories").status_code == 401
    assert client.get("/api/v1/memories", headers={"X-User-Id": "  "}).status_code == 401


def test_user_id_is_bound_to_log_context():
    async def scenario():
        await dependencies.get_user_id(" user-7 ")
        return get_log_context()

    assert asyncio.run(scenario())["user_id"] == "user-7"


def test_save_and_fetch_memory(client: TestClient, api_store: InMemoryStore):
    response = client.post(
        "/api/v1/memories",
        json={"transcript": "Picked apples with my sister.", "duration_seconds": 12},
        headers=HEADERS,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["title"] == "Memory"
    assert body["searchable"] is False
    assert body["duration_seconds"] == 12

    fetched = client.get(f"/api/v1/memories/{body['id']}", headers=HEADERS)
    assert fetched.status_code == 200
    assert fetched.json()["transcript"] == "Picked apples with my sister."
    assert len(api_store.memories) == 1


def test_blank_transcript_maps_to_unprocessable(client: TestClient):
    response = client.post("/api/v1/memories", json={"transcript": "   "}, headers=HEADERS)

    assert response.status_code == 422
    assert response.json()["error_code"] == ErrorCode.INVALID_INPUT.value


def test_other_users_memory_is_not_found(client: TestClient, api_store: InMemoryStore):
    memory = make_memory(user_id="user-2")
    api_store.memories[memory.id] = memory

    assert client.get(f"/api/v1/memories/{memory.id}", headers=HEADERS).status_code == 404
    assert client.delete(f"/api/v1/memories/{memory.id}", headers=HEADERS).status_code == 404
    assert memory.id in api_store.memories


def test_delete_memory(client: TestClient, api_store: InMemoryStore):
    memory = make_memory()
    api_store.memories[memory.id] = memory

    assert client.delete(f"/api/v1/memories/{memory.id}", headers=HEADERS).status_code == 204
    assert api_store.memories == {}


def test_search_returns_ranked_results(client: TestClient, api_store: InMemoryStore):
    match = make_memory("Swam in the lake", embedding=unit_vector(1.0), title="Lake day")
    other = make_memory("Filed taxes", embedding=unit_vector(0.0, 1.0))
    api_store.memories.update({match.id: match, other.id: other})

    response = client.post("/api/v1/search", json={"query": "lake"}, headers=HEADERS)

    body = response.json()
    assert response.status_code == 200
    assert body["status"] == "ok"
    assert body["message"] is None
    assert body["count"] == 1
    assert body["candidate_count"] == 2
    assert body["results"][0]["title"] == "Lake day"
    assert body["results"][0]["similarity_percent"] == 100
    assert body["results"][0]["relevance"] == "high"


def test_search_without_embeddings_explains_itself(client: TestClient, api_store: InMemoryStore):
    memory = make_memory()
    api_store.memories[memory.id] = memory

    body = client.post("/api/v1/search", json={"query": "river"}, headers=HEADERS).json()

    assert body["status"] == "no_searchable_data"
    assert body["results"] == []
    assert "embeddings" in body["message"]


def test_search_store_outage_is_reported_not_raised(client: TestClient, api_store: InMemoryStore):
    api_store.fail_with = StoreError(message="neo4j down")

    response = client.post("/api/v1/search", json={"query": "river"}, headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["status"] == "unavailable"
    assert response.json()["message"] == "Search is temporarily unavailable. Please try again."


def test_search_rejects_out_of_range_threshold(client: TestClient):
    response = client.post("/api/v1/search", json={"query": "river", "min_similarity": 2}, headers=HEADERS)
    assert response.status_code == 422


def test_chat_message(client: TestClient, api_store: InMemoryStore):
    memory = make_memory("Baked bread on Sunday", embedding=unit_vector(1.0))
    api_store.memories[memory.id] = memory
    session_id = uuid4()

    response = client.post(
        f"/api/v1/chat/{session_id}/messages",
        json={"message": "What did I bake?"},
        headers=HEADERS,
    )

    body = response.json()
    assert response.status_code == 200
    assert body["session_id"] == str(session_id)
    assert body["reply"] == "That sounds like a lovely morning."
    assert body["memory_ids"] == [str(memory.id)]


def test_close_chat_session(client: TestClient):
    session_id = uuid4()
    client.post(f"/api/v1/chat/{session_id}/messages", json={"message": "hello"}, headers=HEADERS)

    assert client.delete(f"/api/v1/chat/{session_id}", headers=HEADERS).status_code == 204
    assert client.delete(f"/api/v1/chat/{session_id}", headers=HEADERS).status_code == 404


def test_health(client: TestClient):
    body = client.get("/api/v1/health").json()

    assert body["status"] == "healthy"
    assert body["enrichment"]["scheduler_running"] is False
    assert body["enrichment"]["pending_enrichments"] == 0


def test_uninitialised_services_return_503():
    app = create_app()
    response = TestClient(app).get("/api/v1/memories", headers=HEADERS)
    assert response.status_code == 503
