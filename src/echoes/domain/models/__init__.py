"""Domain models for Echoes."""

from .conversation import ChatSession, ConversationTurn, TurnRole
from .memory import MUTABLE_FIELDS, Emotion, Memory
from .retrieval import (
    RankedResult,
    Relevance,
    RetrievalOptions,
    RetrievalOutcome,
    RetrievalStatus,
)
from .utils import utc_now

__all__ = [
    "MUTABLE_FIELDS",
    "ChatSession",
    "ConversationTurn",
    "Emotion",
    "Memory",
    "RankedResult",
    "Relevance",
    "RetrievalOptions",
    "RetrievalOutcome",
    "RetrievalStatus",
    "TurnRole",
    "utc_now",
]
