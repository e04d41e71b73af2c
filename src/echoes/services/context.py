"""Grounding context for the conversational assistant."""

from collections.abc import Sequence
from datetime import datetime

from pydantic import BaseModel, Field

from echoes.core.config import settings
from echoes.domain.models import ConversationTurn, RankedResult

ASSISTANT_INSTRUCTIONS = (
    "You are a warm, attentive companion helping the user reflect on their own recorded memories. "
    "Use the memories below when they are relevant, refer to them by date, and never invent memories "
    "that are not listed. If nothing relevant is listed, answer from the conversation alone."
)


class MemoryContextEntry(BaseModel):
    """One memory as presented to the response generator (no similarity score)."""

    created_at: datetime
    day_of_week: str | None = None
    title: str
    emotion: str | None = None
    content: str

    def render(self) -> str:
        date = self.created_at.strftime("%Y-%m-%d")
        header = f"[{date}" + (f", {self.day_of_week}" if self.day_of_week else "") + f"] {self.title}"
        if self.emotion:
            header += f" (felt {self.emotion})"
        return f"{header}\n{self.content}"


class ContextBlock(BaseModel):
    """Composed grounding context handed to a ResponseGenerator."""

    instructions: str = ASSISTANT_INSTRUCTIONS
    memories: list[MemoryContextEntry] = Field(default_factory=list)
    turns: list[ConversationTurn] = Field(default_factory=list)

    @property
    def has_memories(self) -> bool:
        return bool(self.memories)

    def render(self) -> str:
        sections = [self.instructions]
        if self.memories:
            sections.append(
                "Relevant memories, most relevant first:\n\n"
                + "\n\n".join(entry.render() for entry in self.memories)
            )
        if self.turns:
            sections.append(
                "Recent conversation:\n"
                + "\n".join(f"{turn.role.value.capitalize()}: {turn.text}" for turn in self.turns)
            )
        return "\n\n".join(sections)


class ContextComposer:
    """Assembles ranked memories and recent turns into a ContextBlock.

    Args:
        prefer_summary: Use a memory's summary instead of its transcript when
            one exists
        turn_window: Number of most recent turns kept; older turns are dropped
    """

    def __init__(self, prefer_summary: bool | None = None, turn_window: int | None = None) -> None:
        self.prefer_summary = settings.prefer_summary_in_context if prefer_summary is None else prefer_summary
        self.turn_window = settings.conversation_window if turn_window is None else turn_window

    def compose(
        self,
        ranked_results: Sequence[RankedResult],
        recent_turns: Sequence[ConversationTurn],
    ) -> ContextBlock:
        entries = [self._entry(result) for result in ranked_results]
        window = list(recent_turns[-self.turn_window:]) if self.turn_window > 0 else []
        return ContextBlock(memories=entries, turns=window)

    def _entry(self, result: RankedResult) -> MemoryContextEntry:
        memory = result.memory
        content = memory.summary if self.prefer_summary and memory.summary else memory.transcript
        return MemoryContextEntry(
            created_at=memory.created_at,
            day_of_week=memory.day_of_week,
            title=memory.display_title,
            emotion=memory.emotion.value if memory.emotion else None,
            content=content,
        )
