"""Embedding normalization and cosine similarity.

Both functions are pure and never raise on malformed input: the normalizer
answers ``None`` for anything it cannot turn into a canonical vector, and the
similarity function answers ``0.0`` whenever its preconditions fail. Callers
compare against thresholds, so zero is a safe "no relation" value.
"""

import json
import math
import numbers
from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np

from echoes.core.constants import EMBEDDING_DIMENSIONS
from echoes.core.logging import get_logger

logger = get_logger(__name__)


def _is_component(value: Any) -> bool:
    """A vector component: a real, finite number that is not a bool."""
    if isinstance(value, bool | np.bool_) or not isinstance(value, numbers.Real):
        return False
    return math.isfinite(value)


def _as_sequence(value: Any) -> list[Any] | None:
    if isinstance(value, np.ndarray):
        return value.tolist() if value.ndim == 1 else None
    if isinstance(value, Sequence) and not isinstance(value, str | bytes | bytearray):
        return list(value)
    return None


def _fit_dimensions(items: list[Any], dimensions: int, truncate_oversized: bool) -> list[float] | None:
    if len(items) < dimensions:
        return None
    if len(items) > dimensions:
        if not truncate_oversized:
            return None
        # Oversized legacy rows: keep the prefix, but make the drift visible
        logger.warning(
            "oversized_embedding_truncated",
            original_dimensions=len(items),
            dimensions=dimensions,
        )
        items = items[:dimensions]
    if not all(_is_component(item) for item in items):
        return None
    return [float(item) for item in items]


def normalize_embedding(
    value: Any,
    dimensions: int = EMBEDDING_DIMENSIONS,
    *,
    truncate_oversized: bool = True,
) -> list[float] | None:
    """Turn a stored embedding of unknown shape into a canonical vector.

    Accepted shapes, in order of precedence:

    1. a numeric sequence of exactly ``dimensions`` components;
    2. a longer numeric sequence, truncated to its first ``dimensions``
       components (rejected instead when ``truncate_oversized`` is False);
    3. JSON text encoding such a sequence;
    4. a mapping or object with a ``values`` field holding such a sequence
       (the Gemini ``embedding`` response shape).

    Shorter sequences, non-numeric or non-finite components, unparseable text
    and every other shape give ``None``.

    Args:
        value: Raw value read from storage or returned by a provider
        dimensions: Canonical vector length
        truncate_oversized: Whether oversized vectors are truncated or rejected

    Returns:
        The canonical vector, or None when the value is absent or invalid
    """
    if value is None:
        return None

    candidate: Any = value
    if isinstance(candidate, str | bytes | bytearray):
        try:
            candidate = json.loads(candidate)
        except (ValueError, UnicodeDecodeError):
            candidate = None
    elif isinstance(candidate, Mapping):
        candidate = candidate.get("values")
    elif _as_sequence(candidate) is None and hasattr(candidate, "values") and not callable(candidate.values):
        candidate = candidate.values

    items = _as_sequence(candidate) if candidate is not None else None
    vector = _fit_dimensions(items, dimensions, truncate_oversized) if items is not None else None

    if vector is None:
        logger.debug(
            "invalid_embedding_rejected",
            value_type=type(value).__name__,
            length=len(items) if items is not None else None,
        )
    return vector


def cosine_similarity(a: Any, b: Any) -> float:
    """Cosine similarity between two numeric vectors.

    Returns 0.0 when the vectors differ in length, are empty, contain
    non-numeric or non-finite components, or when either has zero magnitude.
    Otherwise returns dot(a, b) / (|a| * |b|) clipped to [-1, 1].
    """
    seq_a = _as_sequence(a)
    seq_b = _as_sequence(b)
    if not seq_a or not seq_b or len(seq_a) != len(seq_b):
        return 0.0
    if not all(_is_component(x) for x in seq_a) or not all(_is_component(x) for x in seq_b):
        return 0.0

    vec_a = np.asarray(seq_a, dtype=np.float64)
    vec_b = np.asarray(seq_b, dtype=np.float64)

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.clip(np.dot(vec_a, vec_b) / (norm_a * norm_b), -1.0, 1.0))
