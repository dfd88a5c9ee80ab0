"""Retriever for semantic search over the FAQ index.

Thin layer over a vector index: it hides scores from the answer step and
optionally embeds the question first.
"""
from typing import List, Optional, Sequence
import structlog

from faqrag.errors import InvalidParameter
from faqrag.llm_client import EmbeddingGateway
from faqrag.rag.index import VectorIndex
from faqrag.rag.models import Chunk, RetrievalResult

logger = structlog.get_logger()


class Retriever:
    """Semantic retriever for RAG pipeline."""

    def __init__(
        self,
        index: VectorIndex,
        embedder: Optional[EmbeddingGateway] = None,
        top_k: int = 5,
    ):
        """Initialize the retriever.

        Args:
            index: Vector index to search
            embedder: Embedding gateway used by retrieve_for_query
            top_k: Default number of results
        """
        if top_k <= 0:
            raise InvalidParameter(
                f"top_k must be positive, got {top_k}",
                operation="retriever_init",
            )
        self.index = index
        self.embedder = embedder
        self.top_k = top_k

    def retrieve_results(
        self, query_vector: Sequence[float], k: Optional[int] = None
    ) -> List[RetrievalResult]:
        """Scored results for a query vector, best first."""
        return self.index.query(query_vector, self.top_k if k is None else k)

    def retrieve(
        self, query_vector: Sequence[float], k: Optional[int] = None
    ) -> List[Chunk]:
        """Top-k chunks for a query vector, best first."""
        return [result.chunk for result in self.retrieve_results(query_vector, k)]

    async def retrieve_for_query(
        self, question: str, k: Optional[int] = None
    ) -> List[RetrievalResult]:
        """Embed a question and retrieve its nearest chunks.

        Args:
            question: User question text
            k: Number of results to return (overrides default)

        Returns:
            List of RetrievalResult objects, best first

        Raises:
            InvalidParameter: If no embedding gateway was configured
            EmbeddingFailed: If the question cannot be embedded
            DimensionMismatch: If the embedding does not fit the index
        """
        if self.embedder is None:
            raise InvalidParameter(
                "Retriever has no embedding gateway configured",
                operation="retrieve_for_query",
            )

        if not question or not question.strip():
            logger.warning("empty_query_provided")
            return []

        k = self.top_k if k is None else k
        logger.info("retrieval_started", query_length=len(question), top_k=k)

        query_vector = await self.embedder.embed(question)
        results = self.retrieve_results(query_vector, k)

        logger.info(
            "retrieval_completed",
            query_length=len(question),
            results_returned=len(results),
            top_score=results[0].score if results else None,
        )

        return results
