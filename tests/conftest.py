"""Shared fixtures for the test suite."""
import json
import logging
from pathlib import Path

import pytest
import structlog

from faqrag.rag.chunker import TextChunker
from faqrag.rag.store_memory import InMemoryVectorIndex

from tests.fakes import SCENARIO_RECORDS, FaqAnswerGenerator, KeywordEmbedder


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def generator() -> FaqAnswerGenerator:
    return FaqAnswerGenerator()


@pytest.fixture
def chunker() -> TextChunker:
    return TextChunker(chunk_size=500, chunk_overlap=150)


@pytest.fixture
def memory_index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


@pytest.fixture
def faq_file(tmp_path: Path) -> Path:
    """NDJSON file holding the two scenario records."""
    path = tmp_path / "faqs.jsonl"
    path.write_text("\n".join(json.dumps(r) for r in SCENARIO_RECORDS) + "\n")
    return path


@pytest.fixture
def reset_logging():
    """Undo the logging setup done by the CLI."""
    yield
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in list(root.handlers):
        if type(handler) is logging.StreamHandler:
            root.removeHandler(handler)
