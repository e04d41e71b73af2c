"""Construction of the embedding service used at startup."""

from __future__ import annotations

from typing import TYPE_CHECKING

from echoes.core.base import ServiceErrorDetails
from echoes.core.config import settings
from echoes.core.decorators import with_error_handling
from echoes.core.errors import AuthenticationError, ServiceError
from echoes.core.logging import get_logger
from echoes.infrastructure.embeddings.cache import EmbeddingCache
from echoes.infrastructure.embeddings.gemini import GeminiEmbeddingService
from echoes.infrastructure.gemini_client import GeminiHTTPClient

if TYPE_CHECKING:
    from neo4j import AsyncDriver

logger = get_logger(__name__)


class EmbeddingServiceBuilder:
    """Builder for a configured GeminiEmbeddingService.

    Services are built and injected rather than held as singletons.
    """

    def __init__(self, neo4j_driver: AsyncDriver | None = None):
        self.neo4j_driver = neo4j_driver
        self._use_cache = True
        self._api_key: str | None = None
        self._model: str | None = None

    def with_cache(self, enabled: bool = True) -> EmbeddingServiceBuilder:
        self._use_cache = enabled
        return self

    def with_api_key(self, api_key: str) -> EmbeddingServiceBuilder:
        self._api_key = api_key
        return self

    def with_model(self, model: str) -> EmbeddingServiceBuilder:
        self._model = model
        return self

    @with_error_handling(reraise=True)
    def build(self) -> GeminiEmbeddingService:
        """Build the configured embedding service.

        Raises:
            AuthenticationError: If no Google API key is configured
            ServiceError: If the configured dimensions are invalid
        """
        api_key = self._api_key or settings.google_api_key.get_secret_value()
        if not api_key:
            raise AuthenticationError(
                message="GOOGLE_API_KEY not configured",
                details=ServiceErrorDetails(
                    source="embedding_builder",
                    operation="build",
                    service_name="Gemini",
                ),
            )

        cache = None
        if self._use_cache:
            if self.neo4j_driver is None:
                logger.warning("Neo4j driver not provided, embedding cache disabled")
            else:
                logger.info("Initializing embedding cache with Neo4j backend")
                cache = EmbeddingCache(self.neo4j_driver)

        service = GeminiEmbeddingService(
            client=GeminiHTTPClient(api_key=api_key, name="gemini_embeddings"),
            model=self._model,
            cache=cache,
        )
        validate_embedding_service(service)
        logger.info("Embedding service ready", model=service.model, dimensions=service.get_model_dimensions())
        return service


def create_embedding_service(
    neo4j_driver: AsyncDriver | None = None,
    use_cache: bool = True,
    api_key: str | None = None,
    model: str | None = None,
) -> GeminiEmbeddingService:
    """Convenience wrapper around EmbeddingServiceBuilder."""
    builder = EmbeddingServiceBuilder(neo4j_driver).with_cache(use_cache)
    if api_key:
        builder.with_api_key(api_key)
    if model:
        builder.with_model(model)
    return builder.build()


def validate_embedding_service(service: GeminiEmbeddingService) -> None:
    dimensions = service.get_model_dimensions()
    if dimensions <= 0:
        raise ServiceError(
            message=f"Invalid embedding dimensions: {dimensions}",
            details=ServiceErrorDetails(
                source="embedding_validation",
                operation="validate",
                service_name=type(service).__name__,
                endpoint="get_model_dimensions",
            ),
        )
