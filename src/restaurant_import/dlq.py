"""
File-based dead-letter queue (NDJSON) for records still unprocessed after retries.

One line per failed batch:
    {"ts": ..., "error": "...", "metadata": {"table", "importId", "batchId", ...}, "items": [...]}
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Sequence

from loguru import logger

from .utils import utc_now


@dataclass(frozen=True)
class DLQRecord:
    ts: str
    error: str
    items: List[Dict[str, Any]]
    metadata: Dict[str, Any] = field(default_factory=dict)


class DeadLetterQueue:
    def __init__(self, path: str | Path, *, mkdirs: bool = True):
        self.path = Path(path)
        if mkdirs:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def _append(self, line: str) -> None:
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    async def save(
        self,
        items: Sequence[Dict[str, Any]],
        error: BaseException | str,
        metadata: Dict[str, Any] | None = None,
    ) -> None:
        record = {
            "ts": utc_now().isoformat(),
            "error": str(error),
            "metadata": dict(metadata or {}),
            "items": list(items),
        }
        line = json.dumps(record, default=str)
        async with self._lock:
            await asyncio.to_thread(self._append, line)
        logger.warning(f"DLQ: saved {len(items)} items to {self.path} ({record['error']})")

    def _read(self, max_records: int) -> List[DLQRecord]:
        out: List[DLQRecord] = []
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                if len(out) >= max_records:
                    break
                line = line.strip()
                if not line:
                    continue
                raw = json.loads(line)
                out.append(
                    DLQRecord(
                        ts=raw.get("ts", ""),
                        error=raw.get("error", ""),
                        items=raw.get("items", []),
                        metadata=raw.get("metadata", {}),
                    )
                )
        return out

    async def replay(self, max_records: int = 100) -> List[DLQRecord]:
        """Read up to `max_records` records, oldest first. Missing file -> []."""
        if not self.path.exists():
            return []
        async with self._lock:
            return await asyncio.to_thread(self._read, max_records)
