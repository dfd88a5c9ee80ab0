"""SQLite helpers for the persistent index.

Stores:
- Text chunks keyed by their FAISS vector ID
- Metadata about ingestion runs
"""
import sqlite3
import json
from pathlib import Path
from typing import Optional, List, Dict, Any, Sequence, Tuple
from datetime import datetime, timezone
import structlog

logger = structlog.get_logger()


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Get a connection to the SQLite database.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_database(db_path: Path) -> None:
    """Initialize the database schema.

    Creates tables if they don't exist:
    - index_metadata: tracks ingestion runs and configuration
    - chunks: stores chunk text and metadata by FAISS vector ID
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS index_metadata (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                indexed_at TEXT NOT NULL,
                embedding_model TEXT NOT NULL,
                embedding_dimension INTEGER,
                chunk_size INTEGER NOT NULL,
                chunk_overlap INTEGER NOT NULL,
                total_chunks INTEGER NOT NULL,
                total_records INTEGER NOT NULL,
                source_path TEXT NOT NULL,
                metadata_json TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS chunks (
                vector_id INTEGER PRIMARY KEY,
                source_id TEXT NOT NULL,
                content TEXT NOT NULL,
                vector_norm REAL NOT NULL,
                metadata_json TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_chunks_source_id
            ON chunks(source_id)
        """)

        conn.commit()
        logger.debug("database_initialized", db_path=str(db_path))

    except Exception as e:
        conn.rollback()
        logger.error("database_init_failed", error=str(e))
        raise
    finally:
        conn.close()


def insert_index_metadata(
    db_path: Path,
    embedding_model: str,
    embedding_dimension: Optional[int],
    chunk_size: int,
    chunk_overlap: int,
    total_chunks: int,
    total_records: int,
    source_path: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> int:
    """Record a new ingestion run.

    Returns:
        ID of the inserted metadata row
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("""
            INSERT INTO index_metadata (
                indexed_at, embedding_model, embedding_dimension,
                chunk_size, chunk_overlap, total_chunks, total_records,
                source_path, metadata_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            datetime.now(timezone.utc).isoformat(),
            embedding_model,
            embedding_dimension,
            chunk_size,
            chunk_overlap,
            total_chunks,
            total_records,
            source_path,
            json.dumps(metadata) if metadata else None,
        ))

        conn.commit()
        row_id = cursor.lastrowid
        logger.info("index_metadata_inserted", id=row_id, total_chunks=total_chunks)
        return row_id

    except Exception as e:
        conn.rollback()
        logger.error("index_metadata_insert_failed", error=str(e))
        raise
    finally:
        conn.close()


def insert_chunks(
    db_path: Path,
    rows: Sequence[Tuple[int, str, str, float, Dict[str, Any]]],
) -> int:
    """Insert chunk rows in one transaction.

    Args:
        db_path: Database file
        rows: (vector_id, source_id, content, vector_norm, metadata) tuples

    Returns:
        Number of rows inserted
    """
    if not rows:
        return 0

    created_at = datetime.now(timezone.utc).isoformat()
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.executemany("""
            INSERT INTO chunks (
                vector_id, source_id, content, vector_norm,
                metadata_json, created_at
            ) VALUES (?, ?, ?, ?, ?, ?)
        """, [
            (
                vector_id,
                source_id,
                content,
                vector_norm,
                json.dumps(metadata) if metadata else None,
                created_at,
            )
            for vector_id, source_id, content, vector_norm, metadata in rows
        ])

        conn.commit()
        return len(rows)

    except Exception as e:
        conn.rollback()
        logger.error("chunk_insert_failed", error=str(e), count=len(rows))
        raise
    finally:
        conn.close()


def get_chunks_by_vector_ids(db_path: Path, vector_ids: List[int]) -> Dict[int, Dict[str, Any]]:
    """Retrieve chunks by their FAISS vector IDs.

    Returns:
        Mapping of vector_id to chunk dictionary
    """
    if not vector_ids:
        return {}

    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        placeholders = ",".join("?" * len(vector_ids))
        cursor.execute(f"""
            SELECT vector_id, source_id, content, vector_norm, metadata_json
            FROM chunks
            WHERE vector_id IN ({placeholders})
        """, vector_ids)

        chunks = {}
        for row in cursor.fetchall():
            chunk = dict(row)
            chunk["metadata"] = (
                json.loads(chunk["metadata_json"]) if chunk["metadata_json"] else {}
            )
            chunks[chunk["vector_id"]] = chunk

        return chunks

    except Exception as e:
        logger.error("chunks_retrieval_failed", error=str(e))
        raise
    finally:
        conn.close()


def get_zero_norm_vector_ids(db_path: Path) -> List[int]:
    """Vector IDs whose stored vector has zero magnitude."""
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("SELECT vector_id FROM chunks WHERE vector_norm = 0")
        return [row[0] for row in cursor.fetchall()]
    finally:
        conn.close()


def get_latest_index_metadata(db_path: Path) -> Optional[Dict[str, Any]]:
    """Get the most recent ingestion run metadata.

    Returns:
        Dictionary with metadata fields, or None if nothing was ingested
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("""
            SELECT * FROM index_metadata
            ORDER BY id DESC
            LIMIT 1
        """)

        row = cursor.fetchone()
        if row:
            metadata = dict(row)
            if metadata["metadata_json"]:
                metadata["metadata"] = json.loads(metadata["metadata_json"])
            return metadata
        return None

    except Exception as e:
        logger.error("index_metadata_retrieval_failed", error=str(e))
        raise
    finally:
        conn.close()


def clear_all_chunks(db_path: Path) -> int:
    """Delete all chunks from the database.

    Used when rebuilding the index from scratch.

    Returns:
        Number of chunks deleted
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("SELECT COUNT(*) FROM chunks")
        count = cursor.fetchone()[0]

        cursor.execute("DELETE FROM chunks")
        conn.commit()

        logger.info("chunks_cleared", count=count)
        return count

    except Exception as e:
        conn.rollback()
        logger.error("chunks_clear_failed", error=str(e))
        raise
    finally:
        conn.close()


def get_chunk_count(db_path: Path) -> int:
    """Get the total number of chunks in the database."""
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("SELECT COUNT(*) FROM chunks")
        return cursor.fetchone()[0]

    except Exception as e:
        logger.error("chunk_count_failed", error=str(e))
        raise
    finally:
        conn.close()


def delete_chunks_from(db_path: Path, first_vector_id: int) -> int:
    """Delete chunks whose vector ID is at or above first_vector_id.

    Returns:
        Number of chunks deleted
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute(
            "DELETE FROM chunks WHERE vector_id >= ?",
            (first_vector_id,),
        )
        conn.commit()
        return cursor.rowcount

    except Exception as e:
        conn.rollback()
        logger.error("chunks_delete_failed", error=str(e), first_vector_id=first_vector_id)
        raise
    finally:
        conn.close()
