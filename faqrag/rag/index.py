"""Vector index interface and the cosine scoring shared by implementations."""
import math
from typing import List, Optional, Protocol, Sequence

import numpy as np

from faqrag.errors import DimensionMismatch, InvalidParameter
from faqrag.rag.models import EmbeddedChunk, RetrievalResult


class VectorIndex(Protocol):
    """Interface for all vector indexes.

    Implementations store embedded chunks in insertion order and answer exact
    top-k cosine queries, breaking ties by insertion order.
    """

    @property
    def dimension(self) -> Optional[int]:
        ...

    def count(self) -> int:
        ...

    def insert(self, embedded_chunk: EmbeddedChunk) -> None:
        ...

    def insert_many(self, embedded_chunks: Sequence[EmbeddedChunk]) -> None:
        ...

    def query(self, vector: Sequence[float], k: int) -> List[RetrievalResult]:
        ...

    def rebuild(self) -> None:
        """Drop every stored entry."""
        ...


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> Optional[float]:
    """Cosine of the angle between two vectors.

    Returns:
        Similarity in [-1, 1], or None when either vector has zero magnitude

    Raises:
        DimensionMismatch: If the vectors differ in length
    """
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b), operation="cosine_similarity")

    norm_a = math.sqrt(math.fsum(x * x for x in a))
    norm_b = math.sqrt(math.fsum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return None

    dot = math.fsum(x * y for x, y in zip(a, b))
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


def check_top_k(k: int) -> None:
    if k <= 0:
        raise InvalidParameter(f"k must be positive, got {k}", operation="query")


def check_dimension(expected: Optional[int], actual: int, operation: str) -> None:
    if expected is not None and actual != expected:
        raise DimensionMismatch(expected, actual, operation=operation)


def as_query_vector(vector: Sequence[float]) -> np.ndarray:
    return np.asarray(vector, dtype=np.float64).reshape(-1)


def rank_scores(scores: np.ndarray, valid: np.ndarray, k: int) -> List[int]:
    """Positions of the k best valid scores, best first.

    The sort is stable, so equal scores keep insertion order.
    """
    candidates = np.flatnonzero(valid)
    if candidates.size == 0:
        return []
    order = np.argsort(-scores[candidates], kind="stable")
    return candidates[order[:k]].tolist()
