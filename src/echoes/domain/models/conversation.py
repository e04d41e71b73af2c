"""Conversation models for the memory-grounded assistant."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from echoes.domain.models.utils import utc_now


class TurnRole(str, Enum):
    """Speaker of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


class ConversationTurn(BaseModel):
    """A single message in a chat session."""

    role: TurnRole
    text: str
    timestamp: datetime = Field(default_factory=utc_now)


class ChatSession(BaseModel):
    """An in-memory, append-only chat session.

    Turns are never persisted and never rewritten; the session lives as long
    as the process keeps it in its registry.
    """

    id: UUID = Field(default_factory=uuid4)
    user_id: str
    created_at: datetime = Field(default_factory=utc_now)
    turns: list[ConversationTurn] = Field(default_factory=list)

    def append(self, role: TurnRole, text: str) -> ConversationTurn:
        turn = ConversationTurn(role=role, text=text)
        self.turns.append(turn)
        return turn

    def recent_turns(self, window: int) -> list[ConversationTurn]:
        """The last ``window`` turns in chronological order."""
        if window <= 0:
            return []
        return list(self.turns[-window:])

    def to_transcript(self) -> str:
        """Readable transcript of the whole session."""
        return "\n".join(f"{turn.role.value.capitalize()}: {turn.text}" for turn in self.turns)
