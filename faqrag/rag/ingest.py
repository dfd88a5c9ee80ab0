"""Ingest pipeline for indexing FAQ records.

Orchestrates:
- Record loading
- Text chunking
- Concurrent embedding generation (bounded)
- Vector index insertion in original chunk order
"""
import asyncio
from pathlib import Path
from typing import Any, Dict, List, Sequence
import structlog

from faqrag.errors import EmbeddingFailed, InvalidParameter
from faqrag.llm_client import EmbeddingGateway
from faqrag.rag.chunker import TextChunker
from faqrag.rag.index import VectorIndex
from faqrag.rag.models import Chunk, EmbeddedChunk
from faqrag.rag.records import Record, load_records

logger = structlog.get_logger()


class IngestPipeline:
    """Pipeline for ingesting FAQ records into a vector index."""

    def __init__(
        self,
        index: VectorIndex,
        embedder: EmbeddingGateway,
        chunker: TextChunker,
        concurrency: int = 4,
    ):
        """Initialize the ingest pipeline.

        Args:
            index: Vector index that receives the embedded chunks
            embedder: Embedding gateway
            chunker: Configured text chunker
            concurrency: Maximum embedding calls in flight
        """
        if concurrency <= 0:
            raise InvalidParameter(
                f"Concurrency must be positive, got {concurrency}",
                operation="ingest_init",
            )

        self.index = index
        self.embedder = embedder
        self.chunker = chunker
        self.concurrency = concurrency

        self.stats = self._empty_stats()

        logger.debug(
            "ingest_pipeline_initialized",
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
            concurrency=self.concurrency,
        )

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            "records_processed": 0,
            "chunks_created": 0,
            "embeddings_generated": 0,
            "skipped": False,
        }

    def chunk_records(self, records: Sequence[Record]) -> List[Chunk]:
        """Chunk every record, keeping record order and chunk order."""
        chunks = []
        for record in records:
            pieces = self.chunker.split(record.text)
            if not pieces:
                logger.warning("no_chunks_created", record_id=record.id)
                continue

            base_metadata = record.metadata
            for chunk_index, content in enumerate(pieces):
                chunks.append(
                    Chunk(
                        content=content,
                        source_id=record.id,
                        metadata={**base_metadata, "chunk_index": chunk_index},
                    )
                )
        return chunks

    async def embed_chunks(self, chunks: Sequence[Chunk]) -> List[EmbeddedChunk]:
        """Embed chunks concurrently, returning results in input order.

        Raises:
            EmbeddingFailed: If any chunk fails; the whole batch is abandoned
        """
        if not chunks:
            return []

        semaphore = asyncio.Semaphore(self.concurrency)

        async def embed_one(chunk: Chunk) -> EmbeddedChunk:
            async with semaphore:
                try:
                    vector = await self.embedder.embed(chunk.content)
                except EmbeddingFailed:
                    logger.error(
                        "embedding_generation_failed",
                        record_id=chunk.source_id,
                        text_preview=chunk.content[:100],
                    )
                    raise
                except Exception as e:
                    logger.error(
                        "embedding_generation_failed",
                        record_id=chunk.source_id,
                        text_preview=chunk.content[:100],
                        error=str(e),
                    )
                    raise EmbeddingFailed(
                        f"Failed to generate embedding: {e}",
                        operation="ingest",
                        identifier=chunk.source_id,
                    ) from e

                if not vector:
                    raise EmbeddingFailed(
                        "Empty embedding returned",
                        operation="ingest",
                        identifier=chunk.source_id,
                    )
                return EmbeddedChunk(chunk=chunk, vector=tuple(vector))

        tasks = [asyncio.ensure_future(embed_one(chunk)) for chunk in chunks]
        try:
            # gather preserves input order regardless of completion order
            embedded = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        self.stats["embeddings_generated"] += len(embedded)
        return list(embedded)

    async def ingest_records(
        self, records: Sequence[Record], rebuild: bool = False
    ) -> Dict[str, Any]:
        """Chunk, embed and index records.

        Args:
            records: Records to ingest
            rebuild: Clear the index first instead of skipping a non-empty one

        Returns:
            Dictionary with ingestion statistics
        """
        self.stats = self._empty_stats()

        if rebuild:
            self.index.rebuild()
        elif self.index.count() > 0:
            logger.info("index_not_empty_skipping_ingest", vector_count=self.index.count())
            self.stats["skipped"] = True
            return self.stats

        logger.info("starting_ingest", record_count=len(records), rebuild=rebuild)

        chunks = self.chunk_records(records)
        logger.info(
            "records_chunked",
            **self.chunker.get_chunk_stats([c.content for c in chunks]),
        )

        embedded = await self.embed_chunks(chunks)
        self.index.insert_many(embedded)

        self.stats["records_processed"] = len(records)
        self.stats["chunks_created"] = len(chunks)

        logger.info("ingest_completed", stats=self.stats)

        return self.stats

    async def ingest_file(self, path: Path, rebuild: bool = False) -> Dict[str, Any]:
        """Load records from a file and ingest them.

        Raises:
            FileNotFoundError: If the file does not exist
            MalformedInput: If any record is malformed
        """
        records = load_records(path)
        return await self.ingest_records(records, rebuild=rebuild)
