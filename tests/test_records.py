"""Tests for FAQ record loading."""
import json
from datetime import datetime, timezone

import pytest

from faqrag.errors import MalformedInput
from faqrag.rag.records import Record, load_records, parse_records


def test_parses_ndjson_and_skips_blank_lines():
    text = (
        '{"id": "1", "question": "Q1?", "answer": "A1."}\n'
        "\n"
        '{"id": 2, "question": "Q2?", "answer": "A2.", "tags": ["b", "a"]}\n'
    )

    records = parse_records(text)

    assert [r.id for r in records] == ["1", "2"]
    assert records[1].tags == frozenset({"a", "b"})


def test_parses_json_array():
    text = json.dumps([
        {"id": "x", "question": "Q?", "answer": "A."},
        {"id": "y", "question": "Q?", "answer": "A."},
    ])

    assert [r.id for r in parse_records(text)] == ["x", "y"]


def test_updated_at_accepts_zulu_suffix():
    text = '{"id": "1", "question": "Q?", "answer": "A.", "updated_at": "2024-03-01T09:00:00Z"}'

    record = parse_records(text)[0]

    assert record.updated_at == datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def test_record_text_and_metadata():
    record = Record(
        id="7",
        question="Can I work remotely?",
        answer="Yes, three days a week.",
        tags=frozenset({"remote", "policy"}),
    )

    assert record.text == "Question: Can I work remotely?\nAnswer: Yes, three days a week."
    assert record.metadata == {"id": "7", "tags": ["policy", "remote"], "updated_at": None}


@pytest.mark.parametrize(
    "line",
    [
        '{"id": "1", "question": "Q?"}',
        '{"question": "Q?", "answer": "A."}',
        '{"id": "1", "question": "", "answer": "A."}',
        '{"id": true, "question": "Q?", "answer": "A."}',
        '{"id": "1", "question": "Q?", "answer": "A.", "tags": "hr"}',
        '{"id": "1", "question": "Q?", "answer": "A.", "tags": ""}',
        '{"id": "1", "question": "Q?", "answer": "A.", "tags": {}}',
        '{"id": "1", "question": "Q?", "answer": "A.", "tags": 0}',
        '{"id": "1", "question": "Q?", "answer": "A.", "updated_at": "yesterday"}',
        '["not", "an", "object"]',
        '{"id": "1", "question": "Q?", "answer": ',
    ],
)
def test_malformed_records_fail(line):
    with pytest.raises(MalformedInput):
        parse_records(line)


def test_malformed_line_is_reported_with_location():
    text = '{"id": "1", "question": "Q?", "answer": "A."}\n{broken\n'

    with pytest.raises(MalformedInput) as excinfo:
        parse_records(text, source="faqs.jsonl")

    assert "faqs.jsonl:2" in str(excinfo.value)


def test_missing_field_names_the_record():
    with pytest.raises(MalformedInput) as excinfo:
        parse_records('{"id": "42", "question": "Q?"}')

    assert excinfo.value.identifier == "42"
    assert "answer" in str(excinfo.value)


def test_load_records_from_file(faq_file):
    records = load_records(faq_file)

    assert [r.id for r in records] == ["1", "2"]
    assert records[1].answer == "Employees get 20 days per year."


def test_load_records_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_records(tmp_path / "nope.json")


def test_load_records_rejects_non_utf8(tmp_path):
    path = tmp_path / "latin1.jsonl"
    path.write_bytes('{"id": "1", "question": "Café?", "answer": "A."}\n'.encode("latin-1"))

    with pytest.raises(MalformedInput) as excinfo:
        load_records(path)

    assert excinfo.value.identifier == str(path)
