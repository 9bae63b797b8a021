"""Cosine-similarity ranking of chunk vectors against a query vector."""

import heapq
import logging
import math
from abc import ABC, abstractmethod
from typing import List, Sequence, Tuple

from claim_rag.core.exceptions import DimensionMismatch
from claim_rag.models.document import Chunk, ScoredChunk, Vector

logger = logging.getLogger(__name__)


def _magnitude(vector: Sequence[float]) -> float:
    return math.sqrt(math.fsum(x * x for x in vector))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Compute dot(a, b) / (||a|| * ||b||).

    A zero-magnitude operand scores 0.0 instead of NaN.

    Args:
        a: First vector.
        b: Second vector.

    Returns:
        Similarity in [-1, 1].

    Raises:
        DimensionMismatch: If the vectors differ in length.
    """
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))

    magnitude_a = _magnitude(a)
    magnitude_b = _magnitude(b)
    if magnitude_a == 0.0 or magnitude_b == 0.0:
        return 0.0

    dot_product = math.fsum(x * y for x, y in zip(a, b))
    return dot_product / (magnitude_a * magnitude_b)


def select_top_k(scored: Sequence[ScoredChunk], top_k: int) -> List[ScoredChunk]:
    """
    Pick the highest-scoring chunks, ties kept in original order.

    Uses a bounded heap (O(N log K)); the (-score, chunk_index) key makes
    the result identical to a stable descending sort truncated to top_k.

    Args:
        scored: Scored chunks in document order.
        top_k: Number of chunks to keep.

    Returns:
        At most top_k chunks, sorted by descending score.
    """
    if top_k <= 0:
        return []
    return heapq.nsmallest(
        min(top_k, len(scored)),
        scored,
        key=lambda item: (-item.score, item.chunk_index),
    )


def rank(
    query_vector: Vector,
    chunk_vectors: Sequence[Tuple[Chunk, Vector]],
    top_k: int,
) -> List[ScoredChunk]:
    """
    Score every chunk against the query and return the top-K.

    Args:
        query_vector: Embedded query.
        chunk_vectors: (chunk, vector) pairs in document order.
        top_k: Number of chunks to return.

    Returns:
        min(top_k, len(chunk_vectors)) scored chunks, best first.

    Raises:
        DimensionMismatch: If any chunk vector's length differs from the query's.
    """
    if top_k <= 0:
        return []

    scored = [
        ScoredChunk(
            chunk=chunk,
            score=cosine_similarity(query_vector, vector),
            chunk_index=idx,
        )
        for idx, (chunk, vector) in enumerate(chunk_vectors)
    ]
    top = select_top_k(scored, top_k)

    logger.info(
        f"Ranked {len(scored)} chunks, top scores: "
        f"{[round(item.score, 4) for item in top]}"
    )
    return top


class Retriever(ABC):
    """Source of ranked chunks for an embedded query."""

    @abstractmethod
    async def retrieve(self, query_vector: Vector, top_k: int) -> List[ScoredChunk]:
        pass


class InMemoryRetriever(Retriever):
    """Ranks a single document's locally embedded chunks."""

    def __init__(self, chunk_vectors: Sequence[Tuple[Chunk, Vector]]) -> None:
        self.chunk_vectors = list(chunk_vectors)

    async def retrieve(self, query_vector: Vector, top_k: int) -> List[ScoredChunk]:
        return rank(query_vector, self.chunk_vectors, top_k)
