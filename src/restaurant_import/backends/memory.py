from __future__ import annotations

import asyncio
import copy
from typing import Callable, Dict, List, Optional, Sequence

from loguru import logger

from .base import Record, record_key

# Decides which items of one call come back unprocessed: (call_no, items) -> unprocessed
UnprocessedPolicy = Callable[[int, Sequence[Record]], Sequence[Record]]


class MemoryBackend:
    """In-process key-value tables with last-write-wins overwrite.

    Used for local runs and tests. `unprocessed` and `fail_calls` script throttling and
    backend errors so retry behaviour can be exercised without a real store.
    """

    def __init__(
        self,
        key_fields: Sequence[str] = ("id",),
        *,
        unprocessed: Optional[UnprocessedPolicy] = None,
        fail_calls: Sequence[int] = (),
    ):
        if not key_fields:
            raise ValueError("key_fields must not be empty")
        self._key_fields = tuple(key_fields)
        self._unprocessed = unprocessed
        self._fail_calls = set(fail_calls)
        self._tables: Dict[str, Dict[tuple, Record]] = {}
        self._lock = asyncio.Lock()
        self.calls: List[List[Record]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def table(self, name: str) -> Dict[tuple, Record]:
        return self._tables.get(name, {})

    async def batch_write(self, table: str, items: Sequence[Record]) -> List[Record]:
        async with self._lock:
            self.calls.append([dict(i) for i in items])
            call_no = len(self.calls)
            if call_no in self._fail_calls:
                raise ConnectionError(f"scripted backend failure on call {call_no}")

            # keys first: a record without one fails the call before anything is stored
            keyed = [(record_key(item, self._key_fields), item) for item in items]
            rejected = list(self._unprocessed(call_no, items)) if self._unprocessed else []
            rejected_ids = {id(r) for r in rejected}
            store = self._tables.setdefault(table, {})
            for key, item in keyed:
                if id(item) in rejected_ids:
                    continue
                store[key] = copy.deepcopy(item)

            logger.debug(
                f"memory[{table}] call={call_no} wrote={len(items) - len(rejected)} "
                f"unprocessed={len(rejected)} rows={len(store)}"
            )
            return rejected

    async def aclose(self) -> None:
        return None
