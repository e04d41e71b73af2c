"""Gemini embedding service (text-embedding-004)."""

from typing import Any

from echoes.core.base import AIServiceErrorDetails, ErrorCode, ErrorLevel
from echoes.core.config import settings
from echoes.core.decorators import with_error_handling
from echoes.core.errors import ProcessingError, StoreError
from echoes.core.logging import get_logger
from echoes.domain.vectors import normalize_embedding
from echoes.infrastructure.embeddings.cache import EmbeddingCache
from echoes.infrastructure.gemini_client import GeminiHTTPClient

logger = get_logger(__name__)


class GeminiEmbeddingService:
    """Embedding provider backed by the Gemini ``embedContent`` endpoints.

    Every vector handed back has passed through ``normalize_embedding``, so
    callers always receive a canonical ``embedding_dimensions``-long list. A
    response that cannot be normalized is an error, never a zero vector.
    """

    def __init__(
        self,
        client: GeminiHTTPClient | None = None,
        model: str | None = None,
        dimensions: int | None = None,
        cache: EmbeddingCache | None = None,
    ) -> None:
        self.client = client or GeminiHTTPClient(name="gemini_embeddings")
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.cache = cache

    def _request(self, text: str) -> dict[str, Any]:
        return {"model": f"models/{self.model}", "content": {"parts": [{"text": text}]}}

    def _canonical(self, raw: Any, operation: str, input_length: int) -> list[float]:
        vector = normalize_embedding(
            raw,
            self.dimensions,
            truncate_oversized=settings.truncate_oversized_embeddings,
        )
        if vector is None:
            raise ProcessingError(
                message="Gemini returned an unusable embedding",
                code=ErrorCode.EMBEDDING_FAILED,
                details=AIServiceErrorDetails(
                    source="gemini_embeddings",
                    operation=operation,
                    service_name="Gemini",
                    model_name=self.model,
                    input_length=input_length,
                ),
            )
        return vector

    async def _cached(self, text: str) -> list[float] | None:
        # The cache is an optimisation: an unreachable cache is a miss
        if self.cache is None:
            return None
        try:
            raw = await self.cache.get_cached(text, self.model)
        except StoreError as e:
            logger.warning("embedding_cache_unavailable", operation="get", error=str(e))
            return None
        return normalize_embedding(raw, self.dimensions)

    async def _remember(self, text: str, vector: list[float]) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.store(text, self.model, vector, self.dimensions)
        except StoreError as e:
            logger.warning("embedding_cache_unavailable", operation="store", error=str(e))

    @with_error_handling(error_level=ErrorLevel.ERROR)
    async def embed_text(self, text: str) -> list[float]:
        """Embed one text, consulting the cache first when one is configured."""
        if not text.strip():
            raise ProcessingError(
                message="Cannot embed empty text",
                code=ErrorCode.INVALID_INPUT,
                details={"source": "gemini_embeddings", "operation": "embed_text", "text_length": len(text)},
            )

        cached = await self._cached(text)
        if cached is not None:
            logger.debug("embedding_cache_hit", model=self.model, text_preview=text[:50])
            return cached

        body = await self.client.post(
            f"/models/{self.model}:embedContent",
            self._request(text),
            operation="embed_text",
            model=self.model,
        )
        vector = self._canonical(body.get("embedding"), "embed_text", len(text))

        await self._remember(text, vector)
        return vector

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts in one ``batchEmbedContents`` call, preserving order."""
        if not texts:
            return []
        if not all(text.strip() for text in texts):
            raise ProcessingError(
                message="Batch contains empty texts",
                code=ErrorCode.INVALID_INPUT,
                details={"source": "gemini_embeddings", "operation": "embed_batch", "batch_size": len(texts)},
            )

        body = await self.client.post(
            f"/models/{self.model}:batchEmbedContents",
            {"requests": [self._request(text) for text in texts]},
            operation="embed_batch",
            model=self.model,
        )
        embeddings = body.get("embeddings") or []
        if len(embeddings) != len(texts):
            raise ProcessingError(
                message="Gemini returned incomplete embeddings",
                code=ErrorCode.EMBEDDING_FAILED,
                details={
                    "source": "gemini_embeddings",
                    "operation": "embed_batch",
                    "expected": len(texts),
                    "received": len(embeddings),
                },
            )
        return [
            self._canonical(raw, "embed_batch", len(text))
            for raw, text in zip(embeddings, texts, strict=True)
        ]

    def get_model_dimensions(self) -> int:
        return self.dimensions

    async def close(self) -> None:
        await self.client.close()
