"""Cosine similarity and thresholded top-K ranking"""

import math
from collections.abc import Iterable, Sequence
from typing import Protocol, TypeVar


class HasEmbedding(Protocol):
    embedding: list[float]


C = TypeVar("C", bound=HasEmbedding)


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """
    Normalized dot product of two vectors

    Returns 0.0 when either vector is missing, the lengths differ, or either
    vector has zero magnitude. The result is clamped to [-1, 1].
    """
    if not a or not b or len(a) != len(b):
        return 0.0

    dot = math.fsum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(math.fsum(x * x for x in a))
    norm_b = math.sqrt(math.fsum(y * y for y in b))

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


def rank(
    query_vector: Sequence[float],
    candidates: Iterable[C],
    threshold: float = 0.3,
    top_k: int = 50,
) -> list[tuple[C, float]]:
    """
    Score candidates against the query and keep the best ones

    Candidates scoring below ``threshold`` are dropped; the rest are sorted
    by descending similarity (ties keep input order) and truncated to
    ``top_k``.

    Returns:
        list of (candidate, similarity) pairs
    """
    scored = [
        (candidate, score)
        for candidate in candidates
        if (score := cosine_similarity(query_vector, candidate.embedding)) >= threshold
    ]
    # sorted() is stable, also with reverse=True
    scored = sorted(scored, key=lambda pair: pair[1], reverse=True)
    return scored[:top_k]
