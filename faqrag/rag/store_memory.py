"""In-memory vector index with exact cosine search.

Built once per run from an ingestion pass, then queried read-only. Each query
is a linear scan over every stored vector.
"""
from typing import List, Optional, Sequence
import numpy as np
import structlog

from faqrag.rag.index import (
    as_query_vector,
    check_dimension,
    check_top_k,
    rank_scores,
)
from faqrag.rag.models import EmbeddedChunk, RetrievalResult

logger = structlog.get_logger()


class InMemoryVectorIndex:
    """Append-only list of embedded chunks scored with numpy."""

    def __init__(self, dimension: Optional[int] = None):
        """Initialize an empty index.

        Args:
            dimension: Fixed vector length; taken from the first insert if None
        """
        self._dimension = dimension
        self._entries: List[EmbeddedChunk] = []
        # Stacked vectors and norms, rebuilt lazily after inserts
        self._matrix: Optional[np.ndarray] = None
        self._norms: Optional[np.ndarray] = None

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def count(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def insert(self, embedded_chunk: EmbeddedChunk) -> None:
        """Append one embedded chunk (no deduplication).

        Raises:
            DimensionMismatch: If the vector length differs from the index's
        """
        check_dimension(
            self._dimension,
            embedded_chunk.dimension,
            operation="insert",
        )
        if self._dimension is None:
            self._dimension = embedded_chunk.dimension
            logger.debug("index_dimension_fixed", dimension=self._dimension)

        self._entries.append(embedded_chunk)
        self._matrix = None
        self._norms = None

    def insert_many(self, embedded_chunks: Sequence[EmbeddedChunk]) -> None:
        """Append embedded chunks in order; a bad vector rejects the batch."""
        expected = self._dimension
        if expected is None and embedded_chunks:
            expected = embedded_chunks[0].dimension
        for embedded_chunk in embedded_chunks:
            check_dimension(expected, embedded_chunk.dimension, operation="insert")

        for embedded_chunk in embedded_chunks:
            self.insert(embedded_chunk)

        logger.info(
            "vectors_added",
            count=len(embedded_chunks),
            total_vectors=len(self._entries),
        )

    def rebuild(self) -> None:
        """Drop every entry; the dimension stays fixed."""
        logger.info("rebuilding_index", vector_count=len(self._entries))
        self._entries = []
        self._matrix = None
        self._norms = None

    def _ensure_matrix(self) -> None:
        if self._matrix is None:
            self._matrix = np.array(
                [e.vector for e in self._entries], dtype=np.float64
            ).reshape(len(self._entries), self._dimension)
            self._norms = np.linalg.norm(self._matrix, axis=1)

    def query(self, vector: Sequence[float], k: int) -> List[RetrievalResult]:
        """Return the k entries most similar to vector, best first.

        Args:
            vector: Query embedding
            k: Maximum number of results

        Returns:
            Up to min(k, count) results by descending cosine similarity;
            zero-magnitude vectors never match

        Raises:
            InvalidParameter: If k is not positive
            DimensionMismatch: If the query length differs from the index's
        """
        check_top_k(k)
        query = as_query_vector(vector)
        check_dimension(self._dimension, query.shape[0], operation="query")

        if not self._entries:
            return []

        query_norm = np.linalg.norm(query)
        if query_norm == 0.0:
            logger.debug("zero_query_vector")
            return []

        self._ensure_matrix()
        valid = self._norms > 0.0
        denominators = np.where(valid, self._norms * query_norm, 1.0)
        scores = np.clip(self._matrix @ query / denominators, -1.0, 1.0)

        positions = rank_scores(scores, valid, k)
        results = [
            RetrievalResult(chunk=self._entries[i].chunk, score=float(scores[i]))
            for i in positions
        ]

        logger.debug(
            "vector_search_completed",
            top_k=k,
            results_found=len(results),
        )

        return results
