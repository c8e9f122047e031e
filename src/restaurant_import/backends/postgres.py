"""PostgreSQL key-value backend: one JSONB document per record key."""

from __future__ import annotations

import json
from typing import List, Sequence

from loguru import logger
from psycopg import sql as psql
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from ..errors import map_backend_error
from .base import Record, record_key

KV_COLUMNS = ("pk", "doc", "import_id", "batch_id")


def upsert_statement(table: str) -> psql.Composed:
    """INSERT ... ON CONFLICT (pk) DO UPDATE: replays overwrite rather than duplicate."""
    ins_cols = psql.SQL(", ").join(psql.Identifier(c) for c in KV_COLUMNS)
    ins_vals = psql.SQL(", ").join(psql.Placeholder(c) for c in KV_COLUMNS)
    setlist = psql.SQL(", ").join(
        psql.SQL("{} = EXCLUDED.{}").format(psql.Identifier(c), psql.Identifier(c))
        for c in KV_COLUMNS[1:]
    )
    return psql.SQL(
        "INSERT INTO {} ({}) VALUES ({}) ON CONFLICT ({}) DO UPDATE SET {}, updated_at = now()"
    ).format(psql.Identifier(table), ins_cols, ins_vals, psql.Identifier("pk"), setlist)


def create_table_statement(table: str) -> psql.Composed:
    return psql.SQL(
        "CREATE TABLE IF NOT EXISTS {} ("
        "pk TEXT PRIMARY KEY, "
        "doc JSONB NOT NULL, "
        "import_id TEXT, "
        "batch_id TEXT, "
        "updated_at TIMESTAMPTZ NOT NULL DEFAULT now())"
    ).format(psql.Identifier(table))


def encode_key(item: Record, key_fields: Sequence[str]) -> str:
    return json.dumps(list(record_key(item, key_fields)), default=str, separators=(",", ":"))


class PostgresBackend:
    """
    Async psycopg pool writer. A statement either commits the whole slice or raises,
    so this backend never reports unprocessed records.
    """

    def __init__(
        self,
        dsn: str,
        key_fields: Sequence[str] = ("id",),
        *,
        pool_max: int = 4,
        create_tables: bool = True,
        pool: AsyncConnectionPool | None = None,
    ):
        self._key_fields = tuple(key_fields)
        self._create_tables = create_tables
        self._known_tables: set[str] = set()
        self.pool = pool or AsyncConnectionPool(
            conninfo=dsn, max_size=pool_max, kwargs={"autocommit": False}, open=False
        )
        self._opened = pool is not None

    async def _ensure_open(self) -> None:
        if not self._opened:
            await self.pool.open()
            self._opened = True

    def _row(self, item: Record) -> dict:
        return {
            "pk": encode_key(item, self._key_fields),
            "doc": Jsonb(item),
            "import_id": item.get("importId"),
            "batch_id": item.get("batchId"),
        }

    async def batch_write(self, table: str, items: Sequence[Record]) -> List[Record]:
        if not items:
            return []
        rows = [self._row(item) for item in items]
        try:
            await self._ensure_open()
            async with self.pool.connection() as conn:
                async with conn.cursor() as cur:
                    if self._create_tables and table not in self._known_tables:
                        await cur.execute(create_table_statement(table))
                        self._known_tables.add(table)
                    await cur.executemany(upsert_statement(table), rows)
                await conn.commit()
        except Exception as e:
            raise map_backend_error(e) from e
        logger.debug(f"postgres[{table}] upserted {len(rows)} rows")
        return []

    async def aclose(self) -> None:
        if self._opened:
            await self.pool.close()
            self._opened = False
