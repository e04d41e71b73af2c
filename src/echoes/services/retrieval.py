"""Semantic memory retrieval: the search and grounding entry points.

Pipeline per call: embed the query and load the user's memories
concurrently, keep the memories that carry a canonical embedding, rank them,
and report one of the RetrievalStatus outcomes. Provider and store failures
(including timeouts) become an ``unavailable`` outcome; ranking never runs on
partial data.
"""

from __future__ import annotations

import asyncio
import itertools
from collections import OrderedDict
from typing import TYPE_CHECKING
from uuid import UUID

from echoes.core.base import ApplicationError, ErrorCode
from echoes.core.config import settings
from echoes.core.constants import SESSION_CACHE_MAX_USERS
from echoes.core.errors import ProcessingError
from echoes.core.logging import get_logger
from echoes.domain.models import (
    Memory,
    RetrievalOptions,
    RetrievalOutcome,
    RetrievalStatus,
)
from echoes.services.ranking import RetrievalRanker

if TYPE_CHECKING:
    from echoes.services import EmbeddingService, MemoryStore

logger = get_logger(__name__)


class SessionMemoryCache:
    """Per-user cache of loaded memories for the current session.

    Filled on first retrieval and invalidated explicitly whenever a memory is
    created, updated or deleted. Every invalidation bumps ``epoch``; a fill
    that started under an older epoch is dropped, so a snapshot loaded before
    a change is never written back after it. Only touched from the event
    loop, so no locking is needed.
    """

    def __init__(self, max_users: int = SESSION_CACHE_MAX_USERS) -> None:
        self._memories: OrderedDict[str, list[Memory]] = OrderedDict()
        self.max_users = max_users
        self.epoch = 0

    def get(self, user_id: str) -> list[Memory] | None:
        cached = self._memories.get(user_id)
        if cached is None:
            return None
        self._memories.move_to_end(user_id)
        return list(cached)

    def put(self, user_id: str, memories: list[Memory], epoch: int | None = None) -> bool:
        """Store a loaded list; refused when ``epoch`` is stale."""
        if epoch is not None and epoch != self.epoch:
            return False
        self._memories[user_id] = list(memories)
        self._memories.move_to_end(user_id)
        while len(self._memories) > self.max_users:
            self._memories.popitem(last=False)
        return True

    def invalidate(self, user_id: str) -> None:
        self.epoch += 1
        self._memories.pop(user_id, None)

    def evict(self, user_id: str, memory_id: UUID) -> None:
        self.epoch += 1
        cached = self._memories.get(user_id)
        if cached is not None:
            self._memories[user_id] = [memory for memory in cached if memory.id != memory_id]

    def clear(self) -> None:
        self.epoch += 1
        self._memories.clear()


class MemoryRetrievalService:
    """Entry points used by the search screen and the chat assistant."""

    def __init__(
        self,
        store: MemoryStore,
        embeddings: EmbeddingService,
        ranker: RetrievalRanker | None = None,
        cache: SessionMemoryCache | None = None,
        timeout: float | None = None,
        max_users: int = SESSION_CACHE_MAX_USERS,
    ) -> None:
        self.store = store
        self.embeddings = embeddings
        self.ranker = ranker or RetrievalRanker()
        self.cache = cache or SessionMemoryCache(max_users)
        self.timeout = settings.retrieval_timeout_seconds if timeout is None else timeout
        self.max_users = max_users
        # Tokens are unique across users so a reused entry can never match an old search
        self._tokens = itertools.count(1)
        self._generations: dict[str, int] = {}
        self._last_search: OrderedDict[str, RetrievalOutcome] = OrderedDict()
        self._in_flight: dict[str, int] = {}
        self._deleted: dict[str, set[UUID]] = {}

    async def search(
        self,
        user_id: str,
        query_text: str,
        top_k: int | None = None,
        min_similarity: float | None = None,
        timeout: float | None = None,
    ) -> RetrievalOutcome:
        """Explicit search (defaults: top 20, no similarity floor).

        A newer search for the same user supersedes this one: if that happens
        while this call is waiting on I/O, its results are discarded and a
        ``superseded`` outcome is returned.
        """
        generation = next(self._tokens)
        self._generations[user_id] = generation

        options = RetrievalOptions.for_search(top_k=top_k, min_similarity=min_similarity)
        try:
            outcome = await self._retrieve(user_id, query_text, options, timeout, purpose="search")
        finally:
            current = self._generations.get(user_id)
            if current == generation:
                del self._generations[user_id]

        if current != generation:
            logger.info("search_superseded", user_id=user_id, generation=generation)
            return RetrievalOutcome(status=RetrievalStatus.SUPERSEDED, reason="superseded by a newer search")

        self._last_search[user_id] = outcome
        self._last_search.move_to_end(user_id)
        while len(self._last_search) > self.max_users:
            self._last_search.popitem(last=False)
        return outcome

    async def get_relevant_memories(
        self,
        user_id: str,
        message: str,
        timeout: float | None = None,
    ) -> RetrievalOutcome:
        """Conversational grounding (top 5, similarity >= 0.3)."""
        return await self._retrieve(user_id, message, RetrievalOptions.for_grounding(), timeout, purpose="grounding")

    def last_search(self, user_id: str) -> RetrievalOutcome | None:
        return self._last_search.get(user_id)

    def invalidate(self, user_id: str) -> None:
        """Drop cached memories after a create or update."""
        self.cache.invalidate(user_id)

    def forget(self, user_id: str, memory_id: UUID) -> None:
        """Remove a deleted memory from the cache and from materialized results.

        Retrievals already waiting on I/O for this user drop it too when they
        resume.
        """
        self.cache.evict(user_id, memory_id)
        if self._in_flight.get(user_id):
            self._deleted.setdefault(user_id, set()).add(memory_id)
        previous = self._last_search.get(user_id)
        if previous is not None:
            self._last_search[user_id] = previous.without(memory_id)

    async def _load_memories(self, user_id: str) -> list[Memory]:
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached
        epoch = self.cache.epoch
        memories = await self.store.list_memories(user_id)
        if not self.cache.put(user_id, memories, epoch=epoch):
            logger.debug("memory_snapshot_discarded", user_id=user_id)
        return memories

    async def _fetch(self, user_id: str, text: str) -> tuple[list[float], list[Memory]]:
        # Query embedding and candidate fetch are independent; join before ranking
        self._in_flight[user_id] = self._in_flight.get(user_id, 0) + 1
        try:
            query_vector, memories = await asyncio.gather(
                self.embeddings.embed_text(text),
                self._load_memories(user_id),
                return_exceptions=True,
            )
        finally:
            self._in_flight[user_id] -= 1
            deleted = self._deleted.get(user_id, set())
            if not self._in_flight[user_id]:
                del self._in_flight[user_id]
                self._deleted.pop(user_id, None)
        for result in (memories, query_vector):
            if isinstance(result, BaseException):
                raise result
        return query_vector, [memory for memory in memories if memory.id not in deleted]  # type: ignore[union-attr]

    async def _retrieve(
        self,
        user_id: str,
        text: str,
        options: RetrievalOptions,
        timeout: float | None,
        purpose: str,
    ) -> RetrievalOutcome:
        if not text.strip():
            raise ProcessingError(
                message="Query text is empty",
                code=ErrorCode.INVALID_INPUT,
                details={"source": "retrieval_service", "operation": purpose},
            )

        limit = self.timeout if timeout is None else timeout
        try:
            async with asyncio.timeout(limit):
                query_vector, memories = await self._fetch(user_id, text)
        except asyncio.TimeoutError:
            logger.warning("retrieval_timed_out", user_id=user_id, purpose=purpose, timeout=limit)
            return RetrievalOutcome.unavailable(f"timed out after {limit}s")
        except ApplicationError as e:
            logger.warning(
                "retrieval_unavailable",
                user_id=user_id,
                purpose=purpose,
                error_code=e.code.value,
                error=str(e),
            )
            return RetrievalOutcome.unavailable(e.message)
        except Exception as e:
            # Store drivers may raise their own exception types; a failed fetch is never ranked
            logger.error(
                "retrieval_failed",
                user_id=user_id,
                purpose=purpose,
                error_type=type(e).__name__,
                error=str(e),
                exc_info=e,
            )
            return RetrievalOutcome.unavailable(f"{type(e).__name__}: {e}")

        candidates = [memory for memory in memories if memory.has_embedding]
        if not candidates:
            reason = "no memories recorded" if not memories else "no memories have embeddings yet"
            logger.info(
                "retrieval_no_searchable_data",
                user_id=user_id,
                purpose=purpose,
                memory_count=len(memories),
            )
            return RetrievalOutcome(status=RetrievalStatus.NO_SEARCHABLE_DATA, reason=reason)

        expected = len(candidates[0].embedding or [])
        if len(query_vector) != expected:
            # Every score will be 0: a caller/provider bug, not a data problem
            logger.warning(
                "query_dimension_mismatch",
                user_id=user_id,
                query_dimensions=len(query_vector),
                candidate_dimensions=expected,
            )

        results = self.ranker.rank(query_vector, candidates, options)
        logger.info(
            "memories_retrieved",
            user_id=user_id,
            purpose=purpose,
            candidates=len(candidates),
            skipped_without_embedding=len(memories) - len(candidates),
            count=len(results),
            top_score=results[0].score if results else 0.0,
        )
        return RetrievalOutcome(
            status=RetrievalStatus.OK if results else RetrievalStatus.NO_MATCHES,
            results=results,
            candidate_count=len(candidates),
        )
