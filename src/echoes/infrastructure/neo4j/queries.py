"""Cypher used by the memory store and the embedding cache.

All queries live here; repositories only bind parameters.
"""

from typing import LiteralString


class MemoryQueries:
    """Queries over ``(:Memory)`` nodes."""

    @staticmethod
    def create() -> LiteralString:
        return """
            CREATE (m:Memory)
            SET m = $properties
            RETURN m
            """

    @staticmethod
    def get_by_id() -> LiteralString:
        return """
            MATCH (m:Memory {id: $id})
            RETURN m
            """

    @staticmethod
    def list_for_user() -> LiteralString:
        return """
            MATCH (m:Memory {user_id: $user_id})
            RETURN m
            ORDER BY m.created_at DESC
            """

    @staticmethod
    def update_fields() -> LiteralString:
        # Idempotent overwrite; a deleted node simply matches nothing
        return """
            MATCH (m:Memory {id: $id})
            SET m += $fields
            RETURN m
            """

    @staticmethod
    def delete() -> LiteralString:
        return """
            MATCH (m:Memory {id: $id})
            DETACH DELETE m
            RETURN count(m) AS deleted
            """

    @staticmethod
    def list_unembedded() -> LiteralString:
        # Rows whose stored vector has the wrong length are re-embedded too
        return """
            MATCH (m:Memory)
            WHERE m.embedding IS NULL OR size(m.embedding) <> $dimensions
            RETURN m
            ORDER BY m.created_at ASC
            LIMIT $limit
            """


class EmbeddingCacheQueries:
    """Queries over ``(:EmbeddingCache)`` nodes."""

    @staticmethod
    def get() -> LiteralString:
        return """
            MATCH (e:EmbeddingCache {cache_key: $key, model: $model})
            WHERE e.created > datetime() - duration('P30D')
            SET e.hit_count = COALESCE(e.hit_count, 0) + 1
            RETURN e.vector AS embedding
            """

    @staticmethod
    def store() -> LiteralString:
        return """
            MERGE (e:EmbeddingCache {cache_key: $key, model: $model})
            ON CREATE SET e.hit_count = 0
            SET e.vector = $embedding,
                e.dimensions = $dimensions,
                e.created = datetime()
            """


SCHEMA_STATEMENTS: tuple[LiteralString, ...] = (
    "CREATE CONSTRAINT memory_id IF NOT EXISTS FOR (m:Memory) REQUIRE m.id IS UNIQUE",
    "CREATE INDEX memory_user IF NOT EXISTS FOR (m:Memory) ON (m.user_id)",
    "CREATE INDEX embedding_cache_key IF NOT EXISTS FOR (e:EmbeddingCache) ON (e.cache_key, e.model)",
)
