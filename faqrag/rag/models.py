"""Typed records that flow through the retrieval pipeline."""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Tuple


@dataclass(frozen=True)
class Chunk:
    """A bounded substring of a source record plus the record's metadata."""

    content: str
    source_id: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.content:
            raise ValueError("Chunk content must be non-empty")
        # Freeze the mapping so chunks stay immutable after creation
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))


@dataclass(frozen=True)
class EmbeddedChunk:
    """A chunk together with its embedding vector."""

    chunk: Chunk
    vector: Tuple[float, ...]

    def __post_init__(self):
        object.__setattr__(self, "vector", tuple(float(x) for x in self.vector))

    @property
    def dimension(self) -> int:
        return len(self.vector)


@dataclass(frozen=True)
class RetrievalResult:
    """A retrieved chunk and its cosine similarity to the query."""

    chunk: Chunk
    score: float

    @property
    def source(self) -> str:
        """Get a formatted source string for display."""
        return f"record {self.chunk.source_id}"
