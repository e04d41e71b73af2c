import asyncio
import json

import httpx
import pytest

from echoes.core.base import ErrorCode
from echoes.core.errors import AuthenticationError, ProcessingError, RateLimitError, ServiceError
from echoes.infrastructure.embeddings.gemini import GeminiEmbeddingService
from echoes.infrastructure.gemini_client import GeminiHTTPClient
from echoes.infrastructure.generation.gemini import GeminiResponseGenerator


def client_with(handler, api_key: str = "test-key", max_retries: int = 2) -> GeminiHTTPClient:
    return GeminiHTTPClient(
        api_key=api_key,
        base_url="https://gemini.test/v1beta",
        transport=httpx.MockTransport(handler),
        max_retries=max_retries,
        initial_delay=0,
    )


def test_embed_text_sends_expected_request_and_returns_canonical_vector():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.headers.get("x-goog-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"embedding": {"values": [0.5] * 768}})

    service = GeminiEmbeddingService(client=client_with(handler))
    vector = asyncio.run(service.embed_text("a quiet morning"))

    assert vector == [0.5] * 768
    assert seen["path"] == "/v1beta/models/text-embedding-004:embedContent"
    assert seen["key"] == "test-key"
    assert seen["body"] == {
        "model": "models/text-embedding-004",
        "content": {"parts": [{"text": "a quiet morning"}]},
    }


def test_oversized_provider_vector_is_truncated():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"embedding": {"values": [0.1] * 1024}})

    vector = asyncio.run(GeminiEmbeddingService(client=client_with(handler)).embed_text("text"))
    assert len(vector) == 768


def test_malformed_provider_vector_is_an_error_not_a_zero_vector():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"embedding": {"values": [0.1] * 10}})

    with pytest.raises(ProcessingError) as excinfo:
        asyncio.run(GeminiEmbeddingService(client=client_with(handler)).embed_text("text"))
    assert excinfo.value.code == ErrorCode.EMBEDDING_FAILED


def test_missing_api_key_fails_without_calling_out():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    with pytest.raises(AuthenticationError):
        asyncio.run(GeminiEmbeddingService(client=client_with(handler, api_key="")).embed_text("text"))
    assert calls == []


def test_rate_limit_is_retried_then_raised():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(429, json={"error": {"message": "quota"}})

    with pytest.raises(RateLimitError):
        asyncio.run(GeminiEmbeddingService(client=client_with(handler, max_retries=2)).embed_text("text"))
    assert len(calls) == 2


def test_transient_rate_limit_recovers():
    responses = iter(
        [
            httpx.Response(429, json={}),
            httpx.Response(200, json={"embedding": {"values": [0.2] * 768}}),
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return next(responses)

    vector = asyncio.run(GeminiEmbeddingService(client=client_with(handler)).embed_text("text"))
    assert vector[0] == 0.2


def test_unauthorized_maps_to_authentication_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={})

    with pytest.raises(AuthenticationError):
        asyncio.run(GeminiEmbeddingService(client=client_with(handler)).embed_text("text"))


def test_server_errors_open_the_circuit():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503, json={})

    client = client_with(handler)
    service = GeminiEmbeddingService(client=client)

    async def scenario():
        for _ in range(3):
            with pytest.raises(ServiceError):
                await service.embed_text("text")
        with pytest.raises(ServiceError) as excinfo:
            await service.embed_text("text")
        return excinfo.value

    error = asyncio.run(scenario())

    assert error.code == ErrorCode.CIRCUIT_OPEN
    assert len(calls) == 3


def test_network_error_maps_to_service_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ServiceError):
        asyncio.run(GeminiEmbeddingService(client=client_with(handler)).embed_text("text"))


def test_embed_batch_preserves_order():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert request.url.path.endswith(":batchEmbedContents")
        return httpx.Response(
            200,
            json={"embeddings": [{"values": [float(i)] * 768} for i in range(len(body["requests"]))]},
        )

    vectors = asyncio.run(GeminiEmbeddingService(client=client_with(handler)).embed_batch(["a", "b", "c"]))
    assert [v[0] for v in vectors] == [0.0, 1.0, 2.0]


def test_generator_joins_candidate_parts_and_sends_context_as_system_instruction():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": "Hello "}, {"text": "there."}]}}]},
        )

    generator = GeminiResponseGenerator(client=client_with(handler), model="gemini-test")
    reply = asyncio.run(generator.generate("CONTEXT", "How was my week?"))

    assert reply == "Hello there."
    assert seen["body"]["systemInstruction"] == {"parts": [{"text": "CONTEXT"}]}
    assert seen["body"]["contents"][0]["parts"][0]["text"] == "How was my week?"


def test_generator_without_candidates_fails():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"candidates": []})

    with pytest.raises(ProcessingError) as excinfo:
        asyncio.run(GeminiResponseGenerator(client=client_with(handler)).summarize("text"))
    assert excinfo.value.code == ErrorCode.GENERATION_FAILED
