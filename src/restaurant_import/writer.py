"""
Batch writer: one bounded slice of records per call, with exponential-backoff retries.

Retry rules for a batch chain (attempts are 1-based, `MAX_RETRIES` caps them):
- the backend returns some records unprocessed (throttling): only those are resubmitted
- the backend call raises: the whole pending set is resubmitted
- the delay before retry n (0-based) is `RETRY_DELAY_MS * 2**n`; nothing sleeps after the
  final attempt

Every chain resolves to a WriteOutcome with success + failure == records handed in.
Successes from intermediate attempts are kept; failures are whatever the last attempt
left pending.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from time import monotonic
from typing import Awaitable, Callable, List, Optional, Sequence

from loguru import logger

from .backends.base import Record, StorageBackend
from .metrics.registry import (
    BATCH_WRITE_ATTEMPTS_TOTAL,
    BATCH_WRITE_ITEMS_TOTAL,
    BATCH_WRITE_LATENCY,
)
from .errors import AccountingError
from .models import BatchContext, WriteOutcome
from .utils import calculate_retry_delay, stamp_item, utc_now

SleepFn = Callable[[float], Awaitable[None]]


class BatchWriter:
    def __init__(
        self,
        backend: StorageBackend,
        *,
        max_retries: int = 3,
        retry_delay_ms: int = 100,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.backend = backend
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self._sleep = sleep
        self._clock = clock

    def stamp(self, items: Sequence[Record], ctx: BatchContext) -> List[Record]:
        updated_at = self._clock()
        return [
            stamp_item(item, import_id=ctx.import_id, batch_id=ctx.batch_id, updated_at=updated_at)
            for item in items
        ]

    async def write(self, items: Sequence[Record], ctx: BatchContext) -> WriteOutcome:
        """Stamp and write `items`, retrying until written or `max_retries` attempts are spent."""
        submitted = len(items)
        if not submitted:
            return WriteOutcome(success_count=0, failure_count=0, attempts=0)

        pending = self.stamp(items, ctx)
        success = 0
        last_error: Optional[str] = None
        attempt = 0

        while True:
            attempt += 1
            t0 = monotonic()
            error: Optional[Exception] = None
            try:
                unprocessed = list(await self.backend.batch_write(ctx.table, pending))
            except Exception as exc:
                error = exc
            BATCH_WRITE_LATENCY.labels(table=ctx.table).observe(monotonic() - t0)

            if error is not None:
                BATCH_WRITE_ATTEMPTS_TOTAL.labels(table=ctx.table, outcome="error").inc()
                last_error = f"{type(error).__name__}: {error}"
                logger.error(
                    f"Error writing batch {ctx.batch_id} to {ctx.table} "
                    f"(attempt {attempt}/{self.max_retries}): {last_error}"
                )
                if attempt < self.max_retries:
                    logger.info(f"Retrying entire batch {ctx.batch_id}, attempt {attempt + 1}")
                    await self._backoff(attempt - 1)
                    continue
                return self._finish(ctx, submitted, success, pending, attempt, last_error)

            # a backend can never hand back more than it was given
            unprocessed = unprocessed[: len(pending)]
            success += len(pending) - len(unprocessed)

            if not unprocessed:
                BATCH_WRITE_ATTEMPTS_TOTAL.labels(table=ctx.table, outcome="ok").inc()
                return self._finish(ctx, submitted, success, [], attempt, last_error)

            BATCH_WRITE_ATTEMPTS_TOTAL.labels(table=ctx.table, outcome="partial").inc()
            pending = unprocessed
            last_error = f"{len(pending)} items unprocessed"
            if attempt < self.max_retries:
                logger.warning(
                    f"Retrying {len(pending)} unprocessed items for batch {ctx.batch_id}, "
                    f"attempt {attempt + 1}"
                )
                await self._backoff(attempt - 1)
                continue
            return self._finish(ctx, submitted, success, pending, attempt, last_error)

    async def _backoff(self, retry_index: int) -> None:
        await self._sleep(calculate_retry_delay(retry_index, self.retry_delay_ms))

    def _finish(
        self,
        ctx: BatchContext,
        submitted: int,
        success: int,
        failed: Sequence[Record],
        attempts: int,
        last_error: Optional[str],
    ) -> WriteOutcome:
        outcome = WriteOutcome(
            success_count=success,
            failure_count=len(failed),
            attempts=attempts,
            failed_items=tuple(failed),
            last_error=last_error if failed else None,
        )
        if outcome.total != submitted:
            raise AccountingError(
                f"Batch {ctx.batch_id} resolved {outcome.total} of {submitted} items "
                f"({success} written, {len(failed)} failed)"
            )

        if success:
            BATCH_WRITE_ITEMS_TOTAL.labels(table=ctx.table, result="written").inc(success)
        if failed:
            BATCH_WRITE_ITEMS_TOTAL.labels(table=ctx.table, result="failed").inc(len(failed))
            logger.error(
                f"Max retries ({self.max_retries}) reached for batch {ctx.batch_id}: "
                f"{len(failed)}/{submitted} items not written ({last_error})"
            )
        else:
            logger.debug(
                f"Batch {ctx.batch_id} wrote {success} items to {ctx.table} in {attempts} attempt(s)"
            )
        return outcome
