"""FAISS vector index persisted to disk.

Handles:
- Exact inner-product search over L2-normalised vectors (cosine similarity)
- Chunk text and metadata in SQLite, keyed by FAISS vector ID
- Index and metadata persistence with dimension validation on load
"""
import json
from pathlib import Path
from typing import List, Optional, Dict, Any, Sequence
import numpy as np
import faiss
import structlog

from faqrag import db
from faqrag.errors import DimensionMismatch
from faqrag.rag.index import as_query_vector, check_dimension, check_top_k
from faqrag.rag.models import Chunk, EmbeddedChunk, RetrievalResult

logger = structlog.get_logger()


class FAISSVectorIndex:
    """FAISS-based persistent vector index with SQLite chunk storage."""

    def __init__(
        self,
        index_dir: Path,
        embedding_model: str,
        dimension: Optional[int] = None,
    ):
        """Initialize the FAISS vector index.

        Args:
            index_dir: Directory holding the index, metadata and chunk database
            embedding_model: Embedding model name, recorded in metadata
            dimension: Expected embedding dimension (taken from data if None)
        """
        self.index_dir = Path(index_dir)
        self.embedding_model = embedding_model

        self.index_path = self.index_dir / "vectors.index"
        self.metadata_path = self.index_dir / "metadata.json"
        self.db_path = self.index_dir / "faqrag.sqlite"

        self.index: Optional[faiss.Index] = None
        self._configured_dimension: Optional[int] = dimension
        self._dimension: Optional[int] = dimension
        self.metadata: Dict[str, Any] = {}

        logger.debug(
            "faiss_store_initialized",
            index_dir=str(self.index_dir),
            embedding_model=self.embedding_model,
        )

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def init_new_index(self, dimension: int) -> None:
        """Initialize a new empty FAISS index."""
        self._dimension = dimension

        # Flat index: exact search, every query scans all vectors
        self.index = faiss.IndexFlatIP(self._dimension)

        self.metadata = {
            "embedding_model": self.embedding_model,
            "embedding_dimension": self._dimension,
            "index_type": "IndexFlatIP",
            "metric": "cosine",
            "vector_count": 0,
        }

        logger.info(
            "faiss_index_initialized",
            dimension=self._dimension,
            index_type="IndexFlatIP",
        )

    def load_index(self) -> None:
        """Load existing FAISS index from disk.

        Raises:
            FileNotFoundError: If index files don't exist
            DimensionMismatch: If the stored dimension differs from the expected one
            RuntimeError: If loading fails
        """
        if not self.index_path.exists():
            raise FileNotFoundError(f"Index not found: {self.index_path}")

        if not self.metadata_path.exists():
            raise FileNotFoundError(f"Metadata not found: {self.metadata_path}")

        try:
            with open(self.metadata_path, "r") as f:
                self.metadata = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise RuntimeError(f"Failed to load metadata: {e}") from e

        stored_model = self.metadata.get("embedding_model")
        stored_dim = self.metadata.get("embedding_dimension")

        if self._dimension is not None and stored_dim != self._dimension:
            raise DimensionMismatch(
                self._dimension,
                stored_dim,
                operation="load_index",
                identifier=stored_model,
            )

        if stored_model != self.embedding_model:
            logger.warning(
                "embedding_model_changed",
                stored_model=stored_model,
                current_model=self.embedding_model,
            )

        try:
            self.index = faiss.read_index(str(self.index_path))
        except RuntimeError as e:
            raise RuntimeError(f"Failed to load FAISS index: {e}") from e

        self._dimension = stored_dim
        db.init_database(self.db_path)

        logger.info(
            "faiss_index_loaded",
            dimension=self._dimension,
            vector_count=self.index.ntotal,
            model=stored_model,
        )

    def save(self) -> None:
        """Save FAISS index and metadata to disk; a no-op before the first insert.

        Raises:
            RuntimeError: If writing fails
        """
        if self.index is None:
            logger.info("no_index_to_save", index_dir=str(self.index_dir))
            return

        self.index_dir.mkdir(parents=True, exist_ok=True)

        self.metadata["vector_count"] = self.index.ntotal

        try:
            faiss.write_index(self.index, str(self.index_path))
        except RuntimeError as e:
            raise RuntimeError(f"Failed to save FAISS index: {e}") from e

        try:
            with open(self.metadata_path, "w") as f:
                json.dump(self.metadata, f, indent=2)
        except OSError as e:
            raise RuntimeError(f"Failed to save metadata: {e}") from e

        logger.info(
            "faiss_index_saved",
            index_path=str(self.index_path),
            vector_count=self.index.ntotal,
        )

    def init_or_load(self) -> None:
        """Load the index from disk if present, otherwise start empty.

        An empty index gets its FAISS structure on first insert, once the
        dimension is known.
        """
        if self.index_path.exists() and self.metadata_path.exists():
            logger.info("existing_index_detected", path=str(self.index_path))
            self.load_index()
        else:
            logger.info("no_index_found_initializing_new")
            db.init_database(self.db_path)
            if self._dimension is not None:
                self.init_new_index(self._dimension)

        # Rows written by a run that never saved its vectors
        stale_rows = db.delete_chunks_from(self.db_path, self.count())
        if stale_rows:
            logger.warning("stale_chunk_rows_removed", count=stale_rows)

    def rebuild(self) -> None:
        """Clear the index and chunk table (for reingestion)."""
        logger.warning("rebuilding_index", index_dir=str(self.index_dir))

        for path in (self.index_path, self.metadata_path):
            if path.exists():
                path.unlink()
                logger.info("deleted_existing_file", path=str(path))

        db.init_database(self.db_path)
        db.clear_all_chunks(self.db_path)

        self.index = None
        self.metadata = {}
        # A new embedding model may change the dimension
        self._dimension = self._configured_dimension
        if self._dimension is not None:
            self.init_new_index(self._dimension)

    def count(self) -> int:
        return 0 if self.index is None else self.index.ntotal

    def insert(self, embedded_chunk: EmbeddedChunk) -> None:
        self.insert_many([embedded_chunk])

    def insert_many(self, embedded_chunks: Sequence[EmbeddedChunk]) -> None:
        """Append embedded chunks in order.

        Raises:
            DimensionMismatch: If any vector length differs from the index's
        """
        if not embedded_chunks:
            return

        expected = self._dimension or embedded_chunks[0].dimension
        for embedded_chunk in embedded_chunks:
            check_dimension(
                expected,
                embedded_chunk.dimension,
                operation="insert",
            )

        if self.index is None:
            db.init_database(self.db_path)
            self.init_new_index(expected)

        vectors = np.array([e.vector for e in embedded_chunks], dtype=np.float32)
        norms = np.linalg.norm(vectors, axis=1)
        # Zero vectors stay zero; their rows are excluded at query time
        safe_norms = np.where(norms > 0.0, norms, 1.0)
        normalised = np.ascontiguousarray(vectors / safe_norms[:, None], dtype=np.float32)

        start_id = self.index.ntotal
        self.index.add(normalised)

        db.insert_chunks(
            self.db_path,
            [
                (
                    start_id + offset,
                    e.chunk.source_id,
                    e.chunk.content,
                    float(norms[offset]),
                    dict(e.chunk.metadata),
                )
                for offset, e in enumerate(embedded_chunks)
            ],
        )

        logger.info(
            "vectors_added",
            count=len(embedded_chunks),
            total_vectors=self.index.ntotal,
        )

    def query(self, vector: Sequence[float], k: int) -> List[RetrievalResult]:
        """Return the k stored chunks most similar to vector, best first.

        Searches the whole flat index and re-sorts so that equal scores keep
        insertion order.

        Raises:
            InvalidParameter: If k is not positive
            DimensionMismatch: If the query length differs from the index's
        """
        check_top_k(k)
        query = as_query_vector(vector)
        check_dimension(self._dimension, query.shape[0], operation="query")

        if self.count() == 0:
            return []

        query_norm = np.linalg.norm(query)
        if query_norm == 0.0:
            logger.debug("zero_query_vector")
            return []

        normalised = (query / query_norm).astype(np.float32).reshape(1, -1)
        scores, ids = self.index.search(normalised, self.index.ntotal)
        scores, ids = scores[0], ids[0]

        excluded = set(db.get_zero_norm_vector_ids(self.db_path))
        keep = np.array(
            [vid >= 0 and int(vid) not in excluded for vid in ids], dtype=bool
        )
        scores, ids = scores[keep], ids[keep]

        # Sort by id, then stably by descending score
        by_id = np.argsort(ids, kind="stable")
        scores, ids = scores[by_id], ids[by_id]
        order = np.argsort(-scores, kind="stable")[:k]
        top_ids = [int(ids[i]) for i in order]
        top_scores = [float(np.clip(scores[i], -1.0, 1.0)) for i in order]

        rows = db.get_chunks_by_vector_ids(self.db_path, top_ids)
        results = []
        for vector_id, score in zip(top_ids, top_scores):
            row = rows.get(vector_id)
            if row is None:
                raise RuntimeError(
                    f"Vector {vector_id} has no chunk row in {self.db_path}"
                )
            chunk = Chunk(
                content=row["content"],
                source_id=row["source_id"],
                metadata=row["metadata"],
            )
            results.append(RetrievalResult(chunk=chunk, score=score))

        logger.debug(
            "vector_search_completed",
            top_k=k,
            results_found=len(results),
        )

        return results

    def record_ingestion_run(
        self,
        chunk_size: int,
        chunk_overlap: int,
        total_chunks: int,
        total_records: int,
        source_path: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Persist the parameters of an ingestion run next to the index."""
        db.init_database(self.db_path)
        return db.insert_index_metadata(
            self.db_path,
            embedding_model=self.embedding_model,
            embedding_dimension=self._dimension,
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            total_chunks=total_chunks,
            total_records=total_records,
            source_path=source_path,
            metadata=metadata,
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector index."""
        if self.index is None:
            return {
                "initialized": False,
                "vector_count": 0,
                "dimension": self._dimension,
            }

        return {
            "initialized": True,
            "vector_count": self.index.ntotal,
            "dimension": self._dimension,
            "embedding_model": self.embedding_model,
            "index_exists_on_disk": self.index_path.exists(),
            "chunk_rows": db.get_chunk_count(self.db_path),
            "metadata": self.metadata,
            "last_ingestion": (
                db.get_latest_index_metadata(self.db_path)
                if self.db_path.exists()
                else None
            ),
        }
