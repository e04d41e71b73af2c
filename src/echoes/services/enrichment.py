"""Post-processing for saved memories: summary, title, emotion and embedding."""

from __future__ import annotations

import asyncio
import re
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from echoes.core.base import ApplicationError, ErrorLevel
from echoes.core.config import settings
from echoes.core.constants import (
    BACKFILL_BATCH_SIZE,
    SUMMARY_DEFAULT_TEXT,
    SUMMARY_INPUT_LIMIT,
    SUMMARY_MIN_SENTENCE_LENGTH,
)
from echoes.core.decorators import with_error_handling
from echoes.core.logging import get_logger
from echoes.domain.models import Emotion, Memory
from echoes.domain.models.utils import ordinal_suffix

if TYPE_CHECKING:
    from echoes.services import EmbeddingService, MemoryStore, Summarizer
    from echoes.services.retrieval import MemoryRetrievalService

logger = get_logger(__name__)

# Table order matters: on a tied score the earlier emotion wins
EMOTION_KEYWORDS: dict[Emotion, tuple[str, ...]] = {
    Emotion.HAPPY: (
        "happy", "joy", "great", "wonderful", "amazing", "excellent", "fantastic", "love", "loved",
        "enjoy", "enjoyed", "fun", "excited", "thrilled", "delighted", "pleased", "satisfied",
        "content", "blessed", "grateful",
    ),
    Emotion.SAD: (
        "sad", "depressed", "unhappy", "miserable", "lonely", "heartbroken", "disappointed", "upset",
        "crying", "tears", "miss", "missed", "lost", "grief", "sorrow", "pain", "hurt", "broken",
    ),
    Emotion.ANGRY: (
        "angry", "mad", "furious", "rage", "hate", "hated", "annoyed", "irritated", "frustrated",
        "pissed", "outraged", "livid", "fuming", "seething", "bitter", "resentful",
    ),
    Emotion.ANXIOUS: (
        "anxious", "worried", "nervous", "scared", "afraid", "fear", "fearful", "terrified", "panic",
        "stress", "stressed", "overwhelmed", "concerned", "uneasy", "tense", "jittery", "paranoid",
    ),
    Emotion.EXCITED: (
        "excited", "amazing", "wow", "incredible", "unbelievable", "stunning", "mind-blowing",
        "awesome", "spectacular", "phenomenal", "extraordinary", "outstanding", "brilliant", "genius",
    ),
}

_EMOTION_PATTERNS = {
    emotion: re.compile(r"\b(?:" + "|".join(re.escape(word) for word in words) + r")\b", re.IGNORECASE)
    for emotion, words in EMOTION_KEYWORDS.items()
}

# Context clues used only when no keyword matched; checked in this order
_NEUTRAL_CLUES = ("work", "job", "busy")
_HAPPY_CLUES = ("family", "friend", "home")

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def detect_emotion(text: str) -> Emotion:
    """Keyword-based emotion tag for a transcript."""
    best, best_score = Emotion.NEUTRAL, 0
    for emotion, pattern in _EMOTION_PATTERNS.items():
        score = len(pattern.findall(text))
        if score > best_score:
            best, best_score = emotion, score

    if best_score == 0:
        lowered = text.lower()
        if any(clue in lowered for clue in _NEUTRAL_CLUES):
            return Emotion.NEUTRAL
        if any(clue in lowered for clue in _HAPPY_CLUES):
            return Emotion.HAPPY
    return best


def generate_title(created_at: datetime) -> str:
    """Date-based title, e.g. ``18th October, 2026``."""
    day = created_at.day
    return f"{day}{ordinal_suffix(day)} {created_at.strftime('%B')}, {created_at.year}"


def fallback_summary(text: str) -> str:
    """First one or two substantial sentences of the transcript."""
    sentences = [
        sentence.strip()
        for sentence in _SENTENCE_SPLIT.split(text)
        if len(sentence.strip()) > SUMMARY_MIN_SENTENCE_LENGTH
    ]
    if not sentences:
        return SUMMARY_DEFAULT_TEXT
    return ". ".join(sentences[:2]) + "."


class MemoryEnricher:
    """Computes the post-processing fields of one memory and writes them in a single update."""

    def __init__(
        self,
        store: MemoryStore,
        embeddings: EmbeddingService,
        summarizer: Summarizer | None = None,
        retrieval: MemoryRetrievalService | None = None,
    ) -> None:
        self.store = store
        self.embeddings = embeddings
        self.summarizer = summarizer
        self.retrieval = retrieval

    async def summarize(self, transcript: str) -> str:
        if self.summarizer is None:
            return fallback_summary(transcript)
        try:
            summary = await self.summarizer.summarize(transcript[:SUMMARY_INPUT_LIMIT])
        except ApplicationError as e:
            logger.warning("summary_fallback", error_code=e.code.value, error=str(e))
            return fallback_summary(transcript)
        return summary.strip() or fallback_summary(transcript)

    async def local_fields(self, memory: Memory) -> dict[str, Any]:
        return {
            "summary": await self.summarize(memory.transcript),
            "title": generate_title(memory.created_at),
            "emotion": detect_emotion(memory.transcript),
        }

    async def enrich(self, memory: Memory) -> Memory | None:
        """Write summary, title, emotion and embedding for ``memory``.

        Re-running is safe: every field is overwritten with a value derived
        from the transcript and creation date only.

        Returns:
            The updated memory, or None if it was deleted in the meantime

        Raises:
            ApplicationError: If the embedding provider fails
        """
        fields = await self.local_fields(memory)
        fields["embedding"] = await self.embeddings.embed_text(memory.transcript)
        return await self._write(memory, fields)

    async def enrich_without_embedding(self, memory: Memory) -> Memory | None:
        """Write only the locally computable fields; the memory stays unsearchable."""
        return await self._write(memory, await self.local_fields(memory))

    async def _write(self, memory: Memory, fields: dict[str, Any]) -> Memory | None:
        updated = await self.store.update_memory(memory.id, fields)
        if updated is None:
            logger.info("enrichment_target_deleted", memory_id=str(memory.id))
            return None
        if self.retrieval is not None:
            self.retrieval.invalidate(updated.user_id)
        logger.info(
            "memory_enriched",
            memory_id=str(memory.id),
            emotion=updated.emotion.value if updated.emotion else None,
            embedded=updated.has_embedding,
        )
        return updated


class EnrichmentWorker:
    """Runs enrichment off the request path with retries and a periodic backfill.

    Delivery is at-least-once: a memory whose embedding keeps failing is
    picked up again by the backfill job until it succeeds.
    """

    def __init__(
        self,
        enricher: MemoryEnricher,
        store: MemoryStore,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
        backfill_interval_minutes: int | None = None,
        batch_size: int = BACKFILL_BATCH_SIZE,
    ) -> None:
        self.enricher = enricher
        self.store = store
        self.max_attempts = settings.enrichment_max_attempts if max_attempts is None else max_attempts
        self.retry_delay = settings.enrichment_retry_delay_seconds if retry_delay is None else retry_delay
        self.backfill_interval_minutes = (
            settings.backfill_interval_minutes if backfill_interval_minutes is None else backfill_interval_minutes
        )
        self.batch_size = batch_size
        self.scheduler = AsyncIOScheduler()
        self._tasks: set[asyncio.Task[bool | None]] = set()
        self._in_flight: set[UUID] = set()

    def enqueue(self, memory: Memory) -> asyncio.Task[bool | None] | None:
        """Schedule enrichment for ``memory``; no-op if it is already in flight."""
        if memory.id in self._in_flight:
            return None
        self._in_flight.add(memory.id)
        task = asyncio.create_task(self._process(memory), name=f"enrich-{memory.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=False)
    async def _process(self, memory: Memory) -> bool:
        try:
            delay = self.retry_delay
            for attempt in range(1, self.max_attempts + 1):
                try:
                    await self.enricher.enrich(memory)
                    return True
                except ApplicationError as e:
                    logger.warning(
                        "enrichment_attempt_failed",
                        memory_id=str(memory.id),
                        attempt=attempt,
                        max_attempts=self.max_attempts,
                        error_code=e.code.value,
                    )
                    if attempt < self.max_attempts:
                        await asyncio.sleep(delay)
                        delay *= 2

            # Keep title, summary and emotion; backfill retries the embedding later
            await self.enricher.enrich_without_embedding(memory)
            logger.warning("enrichment_left_unembedded", memory_id=str(memory.id))
            return False
        finally:
            self._in_flight.discard(memory.id)

    @with_error_handling(error_level=ErrorLevel.WARNING, reraise=False)
    async def backfill(self) -> int:
        """Re-enqueue memories still missing an embedding."""
        memories = await self.store.list_unembedded(self.batch_size)
        queued = sum(1 for memory in memories if self.enqueue(memory) is not None)
        if queued:
            logger.info("backfill_enqueued", count=queued)
        else:
            logger.debug("backfill_nothing_to_do")
        return queued

    async def drain(self) -> None:
        """Wait until every scheduled enrichment has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def start(self) -> None:
        if settings.disable_backfill:
            logger.info("Enrichment backfill disabled")
            return
        self.scheduler.add_job(
            self.backfill,
            "interval",
            minutes=self.backfill_interval_minutes,
            id="embedding_backfill",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("EnrichmentWorker started - embedding backfill active")

    async def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info("EnrichmentWorker shutdown complete")

    def get_job_status(self) -> dict[str, Any]:
        """Get status of the backfill job and in-flight enrichments."""
        return {
            "scheduler_running": self.scheduler.running,
            "pending_enrichments": self.pending,
            "jobs": [
                {
                    "id": job.id,
                    "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                }
                for job in self.scheduler.get_jobs()
            ],
        }
