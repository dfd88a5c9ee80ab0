"""Exception hierarchy for the retrieval pipeline.

Every error carries the name of the failing operation and, where one exists,
the offending identifier (record id, file path, model name) so the caller can
log it and exit.
"""
from typing import Optional


class RAGError(Exception):
    """Base class for all pipeline errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        identifier: Optional[str] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.identifier = identifier

    def __str__(self) -> str:
        message = super().__str__()
        context = []
        if self.operation:
            context.append(f"operation={self.operation}")
        if self.identifier is not None:
            context.append(f"id={self.identifier}")
        if context:
            return f"{message} ({', '.join(context)})"
        return message


class InvalidParameter(RAGError, ValueError):
    """Bad chunking, retrieval or concurrency configuration."""


class MalformedInput(RAGError, ValueError):
    """An ingestion record could not be parsed or is missing fields."""


class DimensionMismatch(RAGError, ValueError):
    """A vector's length differs from the index dimensionality."""

    def __init__(
        self,
        expected: int,
        actual: int,
        operation: Optional[str] = None,
        identifier: Optional[str] = None,
    ):
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}",
            operation=operation,
            identifier=identifier,
        )
        self.expected = expected
        self.actual = actual


class GatewayFailure(RAGError, RuntimeError):
    """An embedding or generation provider call failed."""


class EmbeddingFailed(GatewayFailure):
    """The embedding provider failed or returned an empty vector."""


class GenerationFailed(GatewayFailure):
    """The generation provider failed or returned a malformed response."""


class GenerationTimeout(RAGError, TimeoutError):
    """Answer generation did not finish before the deadline."""
