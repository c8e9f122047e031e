"""
Utility functions for the import pipeline.

Includes id/time helpers, slicing, backoff arithmetic and NDJSON/JSON readers.
"""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Sequence, TypeVar

T = TypeVar("T")


def generate_id() -> str:
    """Generate a UUID string for import and event identification."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield contiguous, ordered slices of at most `size` items."""
    if size <= 0:
        raise ValueError("size must be > 0")
    for start in range(0, len(items), size):
        yield items[start : start + size]


def calculate_retry_delay(attempt: int, base_delay_ms: int) -> float:
    """
    Exponential backoff delay before retry number `attempt` (0-based).

    Returns:
        Delay in seconds (`base_delay_ms * 2**attempt` milliseconds)
    """
    return max(0, base_delay_ms * (2**attempt)) / 1000.0


def stamp_item(
    item: Dict[str, Any], *, import_id: str, batch_id: str, updated_at: datetime
) -> Dict[str, Any]:
    """Copy `item` with run metadata; caller-supplied keys of the same name are overwritten."""
    return {
        **item,
        "updatedAt": updated_at.isoformat(),
        "importId": import_id,
        "batchId": batch_id,
    }


def iter_ndjson(path: Path) -> Iterator[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{line_no}: invalid JSON ({e.msg})") from e


def load_items(path: Path) -> List[Dict[str, Any]]:
    """Read records from a JSON array file or an NDJSON file."""
    text = path.read_text(encoding="utf-8").lstrip()
    if text.startswith("["):
        data = json.loads(text)
        if not all(isinstance(row, dict) for row in data):
            raise ValueError(f"{path}: every array element must be a JSON object")
        return data
    return list(iter_ndjson(path))
