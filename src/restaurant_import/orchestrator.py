"""
Import orchestrator: validates a request, drives the batch writer slice by slice and
reports progress and outcome.

Run lifecycle:
    validate -> [write batch -> PROGRESS] * n -> metrics -> COMPLETED -> (raise on failures)

Events and metrics go through a per-run SideEffectDispatcher: they are queued without
waiting for delivery, delivered in order, and flushed before `run` returns or raises.
"""

from __future__ import annotations

from time import monotonic
from typing import Any, Awaitable, Callable, Iterable, Optional

from loguru import logger

from .dispatch import SideEffectDispatcher
from .dlq import DeadLetterQueue
from .errors import PartialWriteFailure, ValidationError
from .events import EventPublisher
from .metrics import MetricsReporter, MetricUnit
from .models import (
    BatchContext,
    EventStatus,
    EventType,
    ImportRequest,
    ImportResult,
    RunTotals,
    StatusEvent,
)
from .utils import chunked, generate_id
from .writer import BatchWriter

OPERATION = "CREATE"


class ImportOrchestrator:
    def __init__(
        self,
        writer: BatchWriter,
        publisher: EventPublisher,
        reporter: MetricsReporter,
        *,
        allowed_tables: Iterable[str],
        batch_size: int = 25,
        event_source: str = "restaurant-import",
        dlq: Optional[DeadLetterQueue] = None,
        side_effect_capacity: int = 1000,
        drain_timeout: float = 10.0,
        side_effect_timeout: Optional[float] = 5.0,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self.writer = writer
        self.publisher = publisher
        self.reporter = reporter
        self.allowed_tables = frozenset(allowed_tables)
        self.batch_size = batch_size
        self.event_source = event_source
        self.dlq = dlq
        self._side_effect_capacity = side_effect_capacity
        self._drain_timeout = drain_timeout
        self._side_effect_timeout = side_effect_timeout

    # --------------------------- validation

    def validate(self, request: ImportRequest) -> None:
        """Raise ValidationError before anything is written or emitted."""
        if request.table not in self.allowed_tables:
            raise ValidationError(
                f"Invalid table name: {request.table}. "
                f"Must be one of: {', '.join(sorted(self.allowed_tables))}"
            )
        if not request.items:
            raise ValidationError("Items must be a non-empty array")

    # --------------------------- run

    async def run(self, request: ImportRequest) -> ImportResult:
        self.validate(request)

        import_id = request.import_id or generate_id()
        ctx = BatchContext(
            table=request.table,
            batch_id=request.batch_id,
            trace_id=request.trace_id,
            import_id=import_id,
        )
        total_items = len(request.items)
        logger.info(
            f"Starting import for table {ctx.table}, batch {ctx.batch_id}, importId {import_id} "
            f"({total_items} items)"
        )
        t0 = monotonic()

        # a full queue sheds its oldest effect so the writer never waits on delivery
        async with SideEffectDispatcher(
            self._side_effect_capacity,
            overflow_strategy="drop_oldest",
            drain_timeout=self._drain_timeout,
            effect_timeout=self._side_effect_timeout,
            name=import_id,
        ) as dispatcher:
            try:
                totals = await self._write_batches(request.items, ctx, dispatcher)
            except Exception as exc:
                logger.exception(f"Import {import_id} failed: {exc}")
                await self._metric(dispatcher, "ImportFailure", total_items, ctx.table)
                await self._event(
                    dispatcher,
                    self._status_event(
                        EventType.FAILED,
                        EventStatus.FAILED,
                        ctx,
                        error=str(exc) or type(exc).__name__,
                        totalItems=total_items,
                    ),
                )
                raise

            latency_ms = (monotonic() - t0) * 1000.0
            await self._metric(dispatcher, "ImportSuccess", totals.success_count, ctx.table)
            if totals.failure_count > 0:
                await self._metric(dispatcher, "ImportFailure", totals.failure_count, ctx.table)

            final_status = EventStatus.SUCCESS if totals.failure_count == 0 else EventStatus.FAILED
            await self._event(
                dispatcher,
                self._status_event(
                    EventType.COMPLETED,
                    final_status,
                    ctx,
                    status=final_status.value,
                    successCount=totals.success_count,
                    failureCount=totals.failure_count,
                    totalItems=total_items,
                ),
            )
            logger.info(
                f"Import completed: {totals.success_count} succeeded, "
                f"{totals.failure_count} failed"
            )

            if totals.failure_count > 0:
                # leaving the dispatcher block flushes every queued event/metric first
                raise PartialWriteFailure(import_id, totals.failure_count, total_items)

            await self._metric(dispatcher, "TotalRecordsImported", total_items, ctx.table)
            await self._metric(
                dispatcher, "ImportLatency", latency_ms, ctx.table, unit="Milliseconds"
            )

        logger.success(f"Import {import_id} wrote {totals.success_count} items to {ctx.table}")
        return ImportResult(
            import_id=import_id,
            batch_id=ctx.batch_id,
            total_items=total_items,
            success_count=totals.success_count,
            failure_count=totals.failure_count,
            latency_ms=latency_ms,
        )

    async def _write_batches(
        self, items: list[dict[str, Any]], ctx: BatchContext, dispatcher: SideEffectDispatcher
    ) -> RunTotals:
        totals = RunTotals(total_items=len(items))
        batch_count = (len(items) + self.batch_size - 1) // self.batch_size

        for number, batch in enumerate(chunked(items, self.batch_size), start=1):
            logger.info(f"Processing batch {number} of {batch_count}")
            outcome = await self.writer.write(batch, ctx)
            totals.add(outcome, len(batch))

            if outcome.failed_items and self.dlq is not None:
                await self._dead_letter(dispatcher, outcome.failed_items, outcome.last_error, ctx)

            await self._event(
                dispatcher,
                self._status_event(
                    EventType.PROGRESS,
                    EventStatus.PENDING,
                    ctx,
                    successCount=totals.success_count,
                    failureCount=totals.failure_count,
                    remainingItems=totals.remaining_items,
                ),
            )
        return totals

    # --------------------------- side effects

    def _status_event(
        self, event_type: EventType, event_status: EventStatus, ctx: BatchContext, **counts: Any
    ) -> StatusEvent:
        return StatusEvent(
            event_type=event_type,
            trace_id=ctx.trace_id,
            correlation_id=ctx.import_id,
            source=self.event_source,
            status=event_status,
            payload={
                "operation": OPERATION,
                "table": ctx.table,
                "batchId": ctx.batch_id,
                "importId": ctx.import_id,
                **counts,
            },
        )

    async def _submit(
        self, dispatcher: SideEffectDispatcher, label: str, run: Callable[[], Awaitable[Any]]
    ) -> None:
        try:
            await dispatcher.submit(label, run)
        except Exception as exc:
            logger.error(f"Could not queue side effect {label!r} (ignored): {exc}")

    async def _event(self, dispatcher: SideEffectDispatcher, event: StatusEvent) -> None:
        await self._submit(dispatcher, event.event_type.value, lambda: self.publisher.publish(event))

    async def _metric(
        self,
        dispatcher: SideEffectDispatcher,
        name: str,
        value: float,
        table: str,
        unit: MetricUnit = "Count",
    ) -> None:
        await self._submit(dispatcher, name, lambda: self.reporter.report(name, value, table, unit))

    async def _dead_letter(
        self,
        dispatcher: SideEffectDispatcher,
        items: tuple[dict[str, Any], ...],
        error: Optional[str],
        ctx: BatchContext,
    ) -> None:
        metadata = {"table": ctx.table, "importId": ctx.import_id, "batchId": ctx.batch_id}
        await self._submit(
            dispatcher,
            "dlq",
            lambda: self.dlq.save(list(items), error or "unprocessed", metadata),
        )
