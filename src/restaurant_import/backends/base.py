from __future__ import annotations

from typing import Any, Dict, List, Protocol, Sequence, runtime_checkable

Record = Dict[str, Any]


@runtime_checkable
class StorageBackend(Protocol):
    """Key-value table writer.

    `batch_write` persists a slice of records with overwrite semantics and returns the
    records it did NOT persist (e.g. throttled). Raising means the whole call failed.
    """

    async def batch_write(self, table: str, items: Sequence[Record]) -> List[Record]: ...

    async def aclose(self) -> None: ...


def record_key(item: Record, key_fields: Sequence[str]) -> tuple:
    try:
        return tuple(item[k] for k in key_fields)
    except KeyError as e:
        raise KeyError(f"record is missing key field {e.args[0]!r}") from None
