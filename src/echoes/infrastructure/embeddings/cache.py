import hashlib

from neo4j import AsyncDriver

from echoes.core.decorators import with_session
from echoes.infrastructure.neo4j.driver import neo4j_errors
from echoes.infrastructure.neo4j.queries import EmbeddingCacheQueries


def cache_key(text: str, model: str) -> str:
    """Stable key per (model, text) so switching models never serves stale vectors."""
    return hashlib.sha256(f"{model}::{text}".encode()).hexdigest()


class EmbeddingCache:
    """Neo4j-backed cache of query embeddings, keyed by model and text hash.

    Entries older than 30 days are ignored. Only the hash of the text is
    stored, never the text itself. Neo4j failures surface as StoreError.
    """

    def __init__(self, driver: AsyncDriver):
        self.driver = driver

    @neo4j_errors("get_cached_embedding", source="embedding_cache", label="EmbeddingCache")
    @with_session()
    async def get_cached(self, session, text: str, model: str) -> list[float] | None:
        result = await session.run(EmbeddingCacheQueries.get(), key=cache_key(text, model), model=model)
        record = await result.single()
        return record["embedding"] if record else None

    @neo4j_errors("store_embedding", source="embedding_cache", label="EmbeddingCache")
    @with_session()
    async def store(self, session, text: str, model: str, embedding: list[float], dimensions: int) -> None:
        await session.run(
            EmbeddingCacheQueries.store(),
            key=cache_key(text, model),
            model=model,
            embedding=embedding,
            dimensions=dimensions,
        )
