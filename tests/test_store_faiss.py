"""Tests for the persistent FAISS vector index."""
import numpy as np
import pytest

from faqrag.errors import DimensionMismatch
from faqrag.rag.models import Chunk, EmbeddedChunk
from faqrag.rag.store_faiss import FAISSVectorIndex
from faqrag.rag.store_memory import InMemoryVectorIndex


def embedded(source_id, vector, **metadata):
    chunk = Chunk(content=f"chunk {source_id}", source_id=source_id, metadata=metadata)
    return EmbeddedChunk(chunk=chunk, vector=vector)


@pytest.fixture
def faiss_index(tmp_path):
    index = FAISSVectorIndex(index_dir=tmp_path, embedding_model="test-embed")
    index.init_or_load()
    return index


def test_new_index_is_empty(faiss_index):
    assert faiss_index.count() == 0
    assert faiss_index.dimension is None
    assert faiss_index.query([1.0, 0.0], k=3) == []


def test_save_and_reload_round_trip(tmp_path, faiss_index):
    faiss_index.insert_many([
        embedded("1", [1.0, 0.0, 0.0], tags=["a"]),
        embedded("2", [0.0, 1.0, 0.0]),
    ])
    faiss_index.save()

    reloaded = FAISSVectorIndex(index_dir=tmp_path, embedding_model="test-embed")
    reloaded.init_or_load()
    results = reloaded.query([0.9, 0.1, 0.0], k=2)

    assert reloaded.count() == 2
    assert reloaded.dimension == 3
    assert [r.chunk.source_id for r in results] == ["1", "2"]
    assert results[0].chunk.metadata["tags"] == ["a"]
    assert results[0].chunk.content == "chunk 1"


def test_ranking_matches_in_memory_index(faiss_index):
    rng = np.random.default_rng(11)
    vectors = rng.normal(size=(25, 6)).tolist()
    items = [embedded(str(i), v) for i, v in enumerate(vectors)]
    memory = InMemoryVectorIndex()
    memory.insert_many(items)
    faiss_index.insert_many(items)
    query = rng.normal(size=6).tolist()

    faiss_results = faiss_index.query(query, k=5)
    memory_results = memory.query(query, k=5)

    assert [r.chunk.source_id for r in faiss_results] == [
        r.chunk.source_id for r in memory_results
    ]
    for f, m in zip(faiss_results, memory_results):
        assert f.score == pytest.approx(m.score, abs=1e-5)


def test_ties_keep_insertion_order(faiss_index):
    faiss_index.insert_many([embedded(name, [3.0, 4.0]) for name in ("a", "b", "c", "d")])

    results = faiss_index.query([6.0, 8.0], k=3)

    assert [r.chunk.source_id for r in results] == ["a", "b", "c"]


def test_zero_vectors_are_excluded(faiss_index):
    faiss_index.insert_many([embedded("zero", [0.0, 0.0]), embedded("real", [1.0, 1.0])])

    results = faiss_index.query([1.0, 0.0], k=5)

    assert [r.chunk.source_id for r in results] == ["real"]
    assert faiss_index.query([0.0, 0.0], k=5) == []


def test_dimension_mismatch_on_query_and_insert(faiss_index):
    faiss_index.insert(embedded("a", [1.0, 0.0, 0.0]))

    with pytest.raises(DimensionMismatch):
        faiss_index.query([1.0, 0.0], k=1)
    with pytest.raises(DimensionMismatch):
        faiss_index.insert(embedded("b", [1.0, 0.0]))
    assert faiss_index.count() == 1


def test_load_rejects_a_different_dimension(tmp_path, faiss_index):
    faiss_index.insert(embedded("a", [1.0, 0.0, 0.0]))
    faiss_index.save()

    other = FAISSVectorIndex(index_dir=tmp_path, embedding_model="test-embed", dimension=4)

    with pytest.raises(DimensionMismatch):
        other.init_or_load()


def test_rebuild_clears_vectors_and_chunks(tmp_path, faiss_index):
    faiss_index.insert(embedded("a", [1.0, 0.0]))
    faiss_index.save()

    faiss_index.rebuild()
    faiss_index.insert(embedded("b", [0.0, 1.0]))

    assert faiss_index.count() == 1
    assert [r.chunk.source_id for r in faiss_index.query([0.0, 1.0], k=5)] == ["b"]
    assert not (tmp_path / "vectors.index").exists()


def test_stats_include_last_ingestion(faiss_index):
    faiss_index.insert(embedded("a", [1.0, 0.0]))
    faiss_index.save()
    faiss_index.record_ingestion_run(
        chunk_size=500,
        chunk_overlap=150,
        total_chunks=1,
        total_records=1,
        source_path="faqs.json",
    )

    stats = faiss_index.get_stats()

    assert stats["vector_count"] == 1
    assert stats["chunk_rows"] == 1
    assert stats["dimension"] == 2
    assert stats["last_ingestion"]["total_chunks"] == 1
    assert stats["last_ingestion"]["chunk_size"] == 500


def test_save_before_any_insert_writes_nothing(tmp_path, faiss_index):
    faiss_index.save()

    assert not (tmp_path / "vectors.index").exists()


def test_rebuild_accepts_a_new_dimension(tmp_path, faiss_index):
    faiss_index.insert(embedded("a", [1.0, 0.0]))
    faiss_index.save()

    reopened = FAISSVectorIndex(index_dir=tmp_path, embedding_model="other-embed")
    reopened.init_or_load()
    assert reopened.dimension == 2

    reopened.rebuild()
    reopened.insert(embedded("b", [1.0, 0.0, 0.0]))

    assert reopened.dimension == 3
    assert [r.chunk.source_id for r in reopened.query([1.0, 0.0, 0.0], k=1)] == ["b"]


def test_unsaved_rows_are_dropped_when_no_index_on_disk(tmp_path, faiss_index):
    faiss_index.insert(embedded("a", [1.0, 0.0]))

    reopened = FAISSVectorIndex(index_dir=tmp_path, embedding_model="test-embed")
    reopened.init_or_load()
    reopened.insert(embedded("b", [0.0, 1.0]))

    assert reopened.count() == 1
    assert reopened.get_stats()["chunk_rows"] == 1
    assert [r.chunk.source_id for r in reopened.query([0.0, 1.0], k=2)] == ["b"]


def test_unsaved_rows_past_the_saved_index_are_dropped(tmp_path, faiss_index):
    faiss_index.insert(embedded("a", [1.0, 0.0]))
    faiss_index.save()
    faiss_index.insert(embedded("lost", [0.0, 1.0]))

    reopened = FAISSVectorIndex(index_dir=tmp_path, embedding_model="test-embed")
    reopened.init_or_load()
    reopened.insert(embedded("b", [0.0, 1.0]))

    results = reopened.query([0.0, 1.0], k=2)
    assert reopened.count() == 2
    assert [r.chunk.source_id for r in results] == ["b", "a"]
