"""Text chunking with overlap for RAG pipeline.

Implements recursive character splitting: text is cut on the highest-priority
separator that keeps pieces small, then pieces are merged into overlapping
windows. Character-based to avoid tokenizer dependencies.
"""
from typing import List, Sequence
import structlog

from faqrag.errors import InvalidParameter

logger = structlog.get_logger()

# Paragraph, line, sentence, word, then hard character slicing
DEFAULT_SEPARATORS = ("\n\n", "\n", ". ", "! ", "? ", " ", "")


def _split_keep_separator(text: str, separator: str) -> List[str]:
    """Split text on separator, leaving the separator on the preceding piece."""
    parts = text.split(separator)
    pieces = [part + separator for part in parts[:-1]]
    if parts[-1]:
        pieces.append(parts[-1])
    return [p for p in pieces if p]


class TextChunker:
    """Recursive character text chunker with overlap support."""

    def __init__(
        self,
        chunk_size: int,
        chunk_overlap: int,
        separators: Sequence[str] = DEFAULT_SEPARATORS,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Maximum size of each chunk in characters
            chunk_overlap: Characters shared by consecutive chunks
            separators: Split points in priority order; must end with ""

        Raises:
            InvalidParameter: If sizes are out of range
        """
        if chunk_size <= 0:
            raise InvalidParameter(
                f"Chunk size must be positive, got {chunk_size}",
                operation="chunker_init",
            )
        if chunk_overlap < 0:
            raise InvalidParameter(
                f"Overlap must not be negative, got {chunk_overlap}",
                operation="chunker_init",
            )
        if chunk_overlap >= chunk_size:
            raise InvalidParameter(
                f"Overlap ({chunk_overlap}) must be less than "
                f"chunk size ({chunk_size})",
                operation="chunker_init",
            )
        if not separators or separators[-1] != "":
            raise InvalidParameter(
                "Separators must end with the empty string",
                operation="chunker_init",
            )

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = tuple(separators)

        logger.debug(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    @property
    def piece_budget(self) -> int:
        """Largest piece the merge step can always advance past."""
        return self.chunk_size - self.chunk_overlap

    def split(self, text: str) -> List[str]:
        """Split text into overlapping chunks.

        Args:
            text: Text to chunk

        Returns:
            Chunks in text order; whitespace-only chunks are dropped
        """
        if not text:
            return []

        if len(text) <= self.chunk_size:
            return [text] if text.strip() else []

        pieces = self._split_pieces(text, self.separators)
        windows = self._merge_pieces(text, pieces)
        chunks = [w for w in windows if w.strip()]

        logger.debug(
            "text_chunked",
            text_length=len(text),
            piece_count=len(pieces),
            chunk_count=len(chunks),
        )

        return chunks

    def _split_pieces(self, text: str, separators: Sequence[str]) -> List[str]:
        """Recursively split text into pieces no longer than the piece budget.

        The pieces concatenate back to ``text`` exactly.
        """
        budget = self.piece_budget
        if len(text) <= budget:
            return [text]

        # First separator present in the text; "" always matches
        for i, separator in enumerate(separators):
            if separator == "" or separator in text:
                remaining = separators[i + 1:]
                break

        if separator == "":
            return [text[i:i + budget] for i in range(0, len(text), budget)]

        pieces = []
        for piece in _split_keep_separator(text, separator):
            if len(piece) <= budget:
                pieces.append(piece)
            else:
                pieces.extend(self._split_pieces(piece, remaining))
        return pieces

    def _merge_pieces(self, text: str, pieces: List[str]) -> List[str]:
        """Merge pieces into windows of up to chunk_size with fixed overlap."""
        boundaries = []
        offset = 0
        for piece in pieces:
            offset += len(piece)
            boundaries.append(offset)

        windows = []
        start = 0
        cursor = 0
        text_length = len(text)

        while True:
            limit = start + self.chunk_size
            # Furthest boundary that still fits in the window
            while cursor + 1 < len(boundaries) and boundaries[cursor + 1] <= limit:
                cursor += 1
            end = boundaries[cursor]

            windows.append(text[start:end])
            if end >= text_length:
                break

            start = end - self.chunk_overlap
            cursor += 1

        return windows

    def get_chunk_stats(self, chunks: List[str]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: Chunk strings

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
                "overlap": self.chunk_overlap,
            }

        chunk_sizes = [len(c) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
        }


def split_text(text: str, chunk_size: int, chunk_overlap: int) -> List[str]:
    """Split text with a one-off chunker (convenience function)."""
    return TextChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap).split(text)
