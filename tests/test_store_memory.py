"""Tests for cosine scoring and the in-memory vector index."""
import numpy as np
import pytest

from faqrag.errors import DimensionMismatch, InvalidParameter
from faqrag.rag.index import cosine_similarity
from faqrag.rag.models import Chunk, EmbeddedChunk
from faqrag.rag.store_memory import InMemoryVectorIndex


def embedded(source_id, vector):
    return EmbeddedChunk(chunk=Chunk(content=f"chunk {source_id}", source_id=source_id), vector=vector)


@pytest.fixture
def random_vectors():
    rng = np.random.default_rng(7)
    return rng.normal(size=(40, 8)).tolist()


class TestCosineSimilarity:
    def test_bounded_and_symmetric(self, random_vectors):
        for a in random_vectors[:10]:
            for b in random_vectors[10:20]:
                ab = cosine_similarity(a, b)
                assert -1.0 <= ab <= 1.0
                assert ab == cosine_similarity(b, a)

    def test_parallel_and_opposite_vectors(self):
        assert cosine_similarity([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == 0.0

    def test_zero_magnitude_has_no_similarity(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) is None
        assert cosine_similarity([1.0, 1.0], [0.0, 0.0]) is None

    def test_length_mismatch(self):
        with pytest.raises(DimensionMismatch):
            cosine_similarity([1.0], [1.0, 2.0])


class TestInMemoryVectorIndex:
    def test_top_k_matches_brute_force(self, random_vectors):
        index = InMemoryVectorIndex()
        index.insert_many([embedded(str(i), v) for i, v in enumerate(random_vectors)])
        query = [0.3, -1.2, 0.5, 0.0, 2.0, -0.4, 0.9, 1.1]

        results = index.query(query, k=5)

        expected = sorted(
            range(len(random_vectors)),
            key=lambda i: (-cosine_similarity(query, random_vectors[i]), i),
        )[:5]
        assert [r.chunk.source_id for r in results] == [str(i) for i in expected]
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)
        for result, i in zip(results, expected):
            assert result.score == pytest.approx(cosine_similarity(query, random_vectors[i]))

    def test_ties_keep_insertion_order(self):
        index = InMemoryVectorIndex()
        for source_id in ("first", "second", "third"):
            index.insert(embedded(source_id, [1.0, 1.0]))
        index.insert(embedded("worse", [1.0, 0.0]))

        results = index.query([2.0, 2.0], k=3)

        assert [r.chunk.source_id for r in results] == ["first", "second", "third"]

    def test_k_larger_than_collection_returns_everything(self):
        index = InMemoryVectorIndex()
        index.insert(embedded("a", [1.0, 0.0]))
        index.insert(embedded("b", [0.0, 1.0]))

        results = index.query([1.0, 0.1], k=10)

        assert [r.chunk.source_id for r in results] == ["a", "b"]

    def test_zero_vectors_are_never_selected(self):
        index = InMemoryVectorIndex()
        index.insert(embedded("zero", [0.0, 0.0]))
        index.insert(embedded("real", [0.0, -1.0]))

        results = index.query([0.0, 1.0], k=2)

        assert [r.chunk.source_id for r in results] == ["real"]
        assert results[0].score == pytest.approx(-1.0)
        assert index.query([0.0, 0.0], k=2) == []

    def test_query_dimension_mismatch(self):
        index = InMemoryVectorIndex()
        index.insert(embedded("a", [1.0, 0.0, 0.0]))

        with pytest.raises(DimensionMismatch):
            index.query([1.0, 0.0], k=1)
        with pytest.raises(DimensionMismatch):
            index.query([1.0, 0.0, 0.0, 0.0], k=1)

    def test_insert_dimension_mismatch(self):
        index = InMemoryVectorIndex(dimension=3)

        with pytest.raises(DimensionMismatch):
            index.insert(embedded("a", [1.0, 0.0]))
        assert index.count() == 0

    def test_duplicates_are_kept(self):
        index = InMemoryVectorIndex()
        item = embedded("a", [1.0, 0.0])
        index.insert(item)
        index.insert(item)

        assert index.count() == 2

    def test_empty_index_and_invalid_k(self):
        index = InMemoryVectorIndex()

        assert index.query([1.0, 2.0], k=3) == []
        with pytest.raises(InvalidParameter):
            index.query([1.0, 2.0], k=0)

    def test_rebuild_clears_entries_but_keeps_dimension(self):
        index = InMemoryVectorIndex()
        index.insert(embedded("a", [1.0, 0.0]))

        index.rebuild()

        assert index.count() == 0
        assert index.dimension == 2
