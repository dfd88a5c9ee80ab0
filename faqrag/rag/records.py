"""FAQ record loading.

Accepts either a JSON array of records or newline-delimited JSON. Each record
needs an ``id``, a ``question`` and an ``answer``; ``tags`` and ``updated_at``
are optional. Any malformed record fails the whole load.
"""
import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import structlog

from faqrag.errors import MalformedInput

logger = structlog.get_logger()


@dataclass(frozen=True)
class Record:
    """One question/answer entry as read from the source file."""

    id: str
    question: str
    answer: str
    tags: FrozenSet[str] = frozenset()
    updated_at: Optional[datetime] = None

    @property
    def text(self) -> str:
        """Text that gets chunked and embedded for this record."""
        return f"Question: {self.question}\nAnswer: {self.answer}"

    @property
    def metadata(self) -> Dict[str, Any]:
        """Metadata carried onto every chunk of this record."""
        return {
            "id": self.id,
            "tags": sorted(self.tags),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


def _parse_timestamp(value: Any, where: str, record_id: str) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedInput(
            f"{where}: updated_at must be an ISO-8601 string",
            operation="load_records",
            identifier=record_id,
        )
    text = value.strip()
    # fromisoformat only learned the "Z" suffix in 3.11
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise MalformedInput(
            f"{where}: invalid updated_at {value!r}",
            operation="load_records",
            identifier=record_id,
        ) from e


def parse_record(raw: Any, where: str = "record") -> Record:
    """Validate one decoded JSON value and build a Record.

    Args:
        raw: Decoded JSON value
        where: Human-readable location used in error messages

    Raises:
        MalformedInput: If the value is not an object or a field is invalid
    """
    if not isinstance(raw, dict):
        raise MalformedInput(
            f"{where}: expected a JSON object, got {type(raw).__name__}",
            operation="load_records",
        )

    record_id = raw.get("id")
    if isinstance(record_id, bool) or not isinstance(record_id, (str, int)):
        raise MalformedInput(
            f"{where}: missing or invalid 'id'",
            operation="load_records",
        )
    record_id = str(record_id)
    if not record_id.strip():
        raise MalformedInput(
            f"{where}: 'id' must not be blank",
            operation="load_records",
        )

    fields = {}
    for name in ("question", "answer"):
        value = raw.get(name)
        if not isinstance(value, str) or not value.strip():
            raise MalformedInput(
                f"{where}: missing or empty '{name}'",
                operation="load_records",
                identifier=record_id,
            )
        fields[name] = value

    tags = raw.get("tags")
    if tags is None:
        tags = []
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        raise MalformedInput(
            f"{where}: 'tags' must be a list of strings",
            operation="load_records",
            identifier=record_id,
        )

    return Record(
        id=record_id,
        question=fields["question"],
        answer=fields["answer"],
        tags=frozenset(tags),
        updated_at=_parse_timestamp(raw.get("updated_at"), where, record_id),
    )


def _decode(text: str, source: str) -> List[Tuple[str, Any]]:
    """Decode file content into (location, value) pairs."""
    if text.lstrip().startswith("["):
        try:
            items = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedInput(
                f"{source}: invalid JSON array: {e}",
                operation="load_records",
            ) from e
        return [(f"{source}[{i}]", item) for i, item in enumerate(items)]

    decoded = []
    for line_no, line in enumerate(text.splitlines(), 1):
        if not line.strip():
            continue
        try:
            decoded.append((f"{source}:{line_no}", json.loads(line)))
        except json.JSONDecodeError as e:
            raise MalformedInput(
                f"{source}:{line_no}: invalid JSON: {e}",
                operation="load_records",
            ) from e
    return decoded


def parse_records(text: str, source: str = "<string>") -> List[Record]:
    """Parse NDJSON or JSON-array content into records."""
    return [parse_record(raw, where) for where, raw in _decode(text, source)]


def load_records(path: Path) -> List[Record]:
    """Load and validate all records from a file.

    Args:
        path: Path to a JSON array or NDJSON file

    Returns:
        Records in file order

    Raises:
        FileNotFoundError: If the file does not exist
        MalformedInput: If any record is malformed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Records file not found: {path}")

    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise MalformedInput(
            f"{path.name}: file is not valid UTF-8: {e}",
            operation="load_records",
            identifier=str(path),
        ) from e

    records = parse_records(text, source=path.name)

    logger.info("records_loaded", path=str(path), count=len(records))
    return records
