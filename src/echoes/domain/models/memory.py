"""The recorded memory entity."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from echoes.core.config import settings
from echoes.core.constants import DEFAULT_MEMORY_TITLE
from echoes.domain.models.utils import utc_now
from echoes.domain.vectors import normalize_embedding


class Emotion(str, Enum):
    """Emotion tag assigned during post-processing."""

    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    ANXIOUS = "anxious"
    EXCITED = "excited"
    NEUTRAL = "neutral"


# Fields that may change after creation; everything else is fixed at save time
MUTABLE_FIELDS = frozenset({"transcript", "summary", "title", "emotion", "embedding"})


class Memory(BaseModel):
    """A single recorded memory, owned by exactly one user.

    ``embedding`` always holds either a canonical vector or None: any value
    assigned to it goes through ``normalize_embedding`` during validation, so
    malformed stored vectors turn into "no embedding" instead of failing the
    whole record.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str
    created_at: datetime = Field(default_factory=utc_now)
    transcript: str
    summary: str | None = None
    title: str | None = None
    emotion: Emotion | None = None
    duration_seconds: int = Field(default=0, ge=0)
    day_of_week: str | None = None
    embedding: list[float] | None = None

    @field_validator("embedding", mode="before")
    @classmethod
    def normalize_stored_embedding(cls, value: Any) -> list[float] | None:
        return normalize_embedding(
            value,
            settings.embedding_dimensions,
            truncate_oversized=settings.truncate_oversized_embeddings,
        )

    @field_validator("emotion", mode="before")
    @classmethod
    def coerce_emotion(cls, value: Any) -> Emotion | None:
        # Unknown tags from older rows are treated as untagged
        if value is None or isinstance(value, Emotion):
            return value
        try:
            return Emotion(str(value).lower())
        except ValueError:
            return None

    @field_validator("created_at")
    @classmethod
    def ensure_timezone(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=UTC)

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None

    @property
    def display_title(self) -> str:
        return self.title or DEFAULT_MEMORY_TITLE

    def with_updates(self, fields: dict[str, Any]) -> "Memory":
        """Return a copy with ``fields`` applied and re-validated.

        Raises:
            ValueError: If a field outside MUTABLE_FIELDS is given
        """
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")
        return Memory.model_validate({**self.model_dump(), **fields})

    def to_properties(self) -> dict[str, Any]:
        """Convert to a Neo4j-compatible property dict."""
        props = self.model_dump(mode="json", exclude={"created_at"})
        props["created_at"] = self.created_at.timestamp()
        return props

    @classmethod
    def from_properties(cls, props: dict[str, Any]) -> "Memory":
        """Create an instance from stored node properties."""
        data = dict(props)
        created_at = data.get("created_at")
        if isinstance(created_at, int | float):
            data["created_at"] = datetime.fromtimestamp(created_at, UTC)
        return cls.model_validate(data)

    def __str__(self) -> str:
        return f"Memory(id={str(self.id)[:8]}, title={self.display_title!r}, embedded={self.has_embedding})"
