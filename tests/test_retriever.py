"""Tests for the retriever and the end-to-end question answering flow."""
import json

import pytest
import pytest_asyncio

from faqrag.errors import InvalidParameter
from faqrag.rag.answer import AnswerSynthesizer
from faqrag.rag.ingest import IngestPipeline
from faqrag.rag.models import Chunk, EmbeddedChunk
from faqrag.rag.records import parse_records
from faqrag.rag.retriever import Retriever
from faqrag.rag.store_memory import InMemoryVectorIndex

from tests.fakes import SCENARIO_RECORDS, HangingGenerator


@pytest.fixture
def small_index():
    index = InMemoryVectorIndex()
    for source_id, vector in (("a", [1.0, 0.0]), ("b", [0.7, 0.7]), ("c", [0.0, 1.0])):
        index.insert(EmbeddedChunk(chunk=Chunk(content=source_id, source_id=source_id), vector=vector))
    return index


def test_retrieve_projects_chunks_in_rank_order(small_index):
    retriever = Retriever(small_index, top_k=2)

    chunks = retriever.retrieve([0.0, 1.0])

    assert [c.source_id for c in chunks] == ["c", "b"]
    assert chunks == [r.chunk for r in small_index.query([0.0, 1.0], 2)]


def test_explicit_k_overrides_default(small_index):
    retriever = Retriever(small_index, top_k=1)

    assert len(retriever.retrieve([1.0, 0.0], k=3)) == 3


def test_top_k_must_be_positive(small_index):
    with pytest.raises(InvalidParameter):
        Retriever(small_index, top_k=0)

    with pytest.raises(InvalidParameter):
        Retriever(small_index).retrieve([1.0, 0.0], k=0)


@pytest.mark.asyncio
async def test_retrieve_for_query_requires_embedder(small_index):
    with pytest.raises(InvalidParameter):
        await Retriever(small_index).retrieve_for_query("question")


@pytest.mark.asyncio
async def test_blank_question_returns_nothing(small_index, embedder):
    assert await Retriever(small_index, embedder=embedder).retrieve_for_query("  ") == []


@pytest_asyncio.fixture
async def scenario_index(embedder, chunker):
    index = InMemoryVectorIndex()
    records = parse_records(json.dumps(SCENARIO_RECORDS))
    await IngestPipeline(index, embedder, chunker).ingest_records(records)
    return index


@pytest.mark.asyncio
async def test_vacation_question_end_to_end(scenario_index, embedder, generator):
    # One chunk per record with chunk_size=500, chunk_overlap=150
    assert scenario_index.count() == 2

    retriever = Retriever(scenario_index, embedder=embedder, top_k=2)
    results = await retriever.retrieve_for_query("How many vacation days do I get?")

    assert [r.chunk.source_id for r in results] == ["2", "1"]
    assert results[0].score > results[1].score

    synthesizer = AnswerSynthesizer(generator, domain="company HR policies")
    answer = await synthesizer.answer(
        "How many vacation days do I get?",
        [r.chunk for r in results],
    )

    assert "20 days" in answer


@pytest.mark.asyncio
async def test_end_to_end_times_out_instead_of_hanging(scenario_index, embedder):
    retriever = Retriever(scenario_index, embedder=embedder, top_k=2)
    results = await retriever.retrieve_for_query("How many vacation days do I get?")
    synthesizer = AnswerSynthesizer(HangingGenerator(), domain="HR", timeout=0.05)

    with pytest.raises(TimeoutError):
        await synthesizer.answer("How many vacation days do I get?", [r.chunk for r in results])
