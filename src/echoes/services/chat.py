"""Memory-grounded conversational assistant."""

from __future__ import annotations

from collections import OrderedDict
from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import BaseModel, Field

from echoes.core.base import AIServiceErrorDetails, ApplicationError, ErrorCode
from echoes.core.config import settings
from echoes.core.constants import CHAT_SESSIONS_MAX
from echoes.core.errors import ProcessingError, ServiceError
from echoes.core.logging import get_logger
from echoes.domain.models import ChatSession, RetrievalStatus, TurnRole
from echoes.services.context import ContextComposer

if TYPE_CHECKING:
    from echoes.services import ResponseGenerator
    from echoes.services.retrieval import MemoryRetrievalService

logger = get_logger(__name__)


class ChatReply(BaseModel):
    """Assistant reply plus what it was grounded on."""

    session_id: UUID
    reply: str
    grounding_status: RetrievalStatus
    memory_ids: list[UUID] = Field(default_factory=list)


class ChatSessionRegistry:
    """In-process chat sessions keyed by (user, session id).

    Holds at most ``max_sessions``; the least recently used session is
    dropped first.
    """

    def __init__(self, max_sessions: int = CHAT_SESSIONS_MAX) -> None:
        self._sessions: OrderedDict[tuple[str, UUID], ChatSession] = OrderedDict()
        self.max_sessions = max_sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get_or_create(self, user_id: str, session_id: UUID) -> ChatSession:
        key = (user_id, session_id)
        session = self._sessions.get(key)
        if session is None:
            session = ChatSession(id=session_id, user_id=user_id)
            self._sessions[key] = session
            while len(self._sessions) > self.max_sessions:
                (evicted_user, evicted_id), _ = self._sessions.popitem(last=False)
                logger.debug("chat_session_evicted", user_id=evicted_user, session_id=str(evicted_id))
        self._sessions.move_to_end(key)
        return session

    def get(self, user_id: str, session_id: UUID) -> ChatSession | None:
        return self._sessions.get((user_id, session_id))

    def close(self, user_id: str, session_id: UUID) -> bool:
        return self._sessions.pop((user_id, session_id), None) is not None


class ChatService:
    """Answers user messages using the memories most relevant to them.

    Grounding failures never block the reply: if retrieval is unavailable
    the assistant answers from the conversation alone and the reply reports
    the grounding status.
    """

    def __init__(
        self,
        retrieval: MemoryRetrievalService,
        generator: ResponseGenerator,
        composer: ContextComposer | None = None,
        sessions: ChatSessionRegistry | None = None,
    ):
        self.retrieval = retrieval
        self.generator = generator
        self.composer = composer or ContextComposer()
        self.sessions = sessions or ChatSessionRegistry()

    async def send_message(self, user_id: str, session_id: UUID, text: str) -> ChatReply:
        if not text.strip():
            raise ProcessingError(
                message="Message is empty",
                code=ErrorCode.INVALID_INPUT,
                details={"source": "chat_service", "operation": "send_message"},
            )

        session = self.sessions.get_or_create(user_id, session_id)
        session.append(TurnRole.USER, text)

        outcome = await self.retrieval.get_relevant_memories(user_id, text)
        if outcome.status == RetrievalStatus.UNAVAILABLE:
            logger.warning("chat_grounding_unavailable", session_id=str(session_id), reason=outcome.reason)

        # The window already includes the message being answered
        block = self.composer.compose(outcome.results, session.turns)
        try:
            reply = await self.generator.generate(block.render(), text)
        except ApplicationError as e:
            raise ServiceError(
                message=f"Response generation failed: {e.message}",
                code=ErrorCode.GENERATION_FAILED,
                details=AIServiceErrorDetails(
                    source="chat_service",
                    operation="send_message",
                    service_name="gemini",
                    model_name=settings.generation_model,
                    input_length=len(text),
                ),
            ) from e

        session.append(TurnRole.ASSISTANT, reply)
        logger.info(
            "chat_reply_generated",
            session_id=str(session_id),
            grounding_status=outcome.status.value,
            memories_used=len(outcome.results),
        )
        return ChatReply(
            session_id=session_id,
            reply=reply,
            grounding_status=outcome.status,
            memory_ids=outcome.memory_ids,
        )
