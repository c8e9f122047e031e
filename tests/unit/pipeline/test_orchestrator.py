"""
Unit tests for ImportOrchestrator: validation, batching, events, metrics and failure paths.
"""

import asyncio
import uuid

import pytest

from restaurant_import.backends import MemoryBackend
from restaurant_import.dlq import DeadLetterQueue
from restaurant_import.errors import PartialWriteFailure, ValidationError
from restaurant_import.models import ImportRequest

PROGRESS = "RESTAURANT_IMPORT_PROGRESS"
COMPLETED = "RESTAURANT_IMPORT_COMPLETED"
FAILED = "RESTAURANT_IMPORT_FAILED"


def _request(items, table="restaurants-dev", import_id="import-xyz"):
    return ImportRequest(
        table=table,
        items=items,
        batch_id="batch-7",
        trace_id="trace-7",
        import_id=import_id,
    )


ABC = [{"id": "A"}, {"id": "B"}, {"id": "C"}]


@pytest.mark.asyncio
async def test_unknown_table_rejected_without_side_effects(make_orchestrator, channel, reporter):
    backend = MemoryBackend()
    orch = make_orchestrator(backend)

    with pytest.raises(ValidationError, match="Invalid table name"):
        await orch.run(_request(ABC, table="users-prod"))

    assert backend.call_count == 0
    assert channel.sent == []
    assert reporter.calls == []


@pytest.mark.asyncio
async def test_empty_items_rejected_without_side_effects(make_orchestrator, channel, reporter):
    backend = MemoryBackend()
    orch = make_orchestrator(backend)

    with pytest.raises(ValidationError, match="non-empty"):
        await orch.run(_request([]))

    assert backend.call_count == 0
    assert channel.sent == []
    assert reporter.calls == []


@pytest.mark.asyncio
async def test_three_items_two_batches_success(make_orchestrator, channel, reporter):
    backend = MemoryBackend()
    orch = make_orchestrator(backend, batch_size=2)

    result = await orch.run(_request(ABC))

    assert [[i["id"] for i in c] for c in backend.calls] == [["A", "B"], ["C"]]

    progress = channel.of_type(PROGRESS)
    assert [e.detail_json["payload"]["remainingItems"] for e in progress] == [1, 0]
    assert [e.detail_json["payload"]["successCount"] for e in progress] == [2, 3]

    completed = channel.of_type(COMPLETED)
    assert len(completed) == 1
    payload = completed[0].detail_json["payload"]
    assert payload["status"] == "SUCCESS"
    assert (payload["successCount"], payload["failureCount"], payload["totalItems"]) == (3, 0, 3)
    assert channel.sent[-1].detail_type == COMPLETED
    assert channel.of_type(FAILED) == []

    assert (result.success_count, result.failure_count, result.total_items) == (3, 0, 3)
    assert reporter.value("ImportSuccess") == 3
    assert "ImportFailure" not in reporter.names()
    assert reporter.value("TotalRecordsImported") == 3
    latency = [c for c in reporter.calls if c[0] == "ImportLatency"][0]
    assert latency[3] == "Milliseconds"
    assert all(c[2] == "restaurants-dev" for c in reporter.calls)


@pytest.mark.asyncio
async def test_permanent_failure_of_one_item(make_orchestrator, channel, reporter):
    backend = MemoryBackend(
        unprocessed=lambda call, items: [i for i in items if i["id"] == "C"]
    )
    orch = make_orchestrator(backend, batch_size=2, max_retries=3)

    with pytest.raises(PartialWriteFailure) as exc_info:
        await orch.run(_request(ABC))

    assert exc_info.value.failure_count == 1
    assert exc_info.value.total_items == 3

    completed = channel.of_type(COMPLETED)
    assert len(completed) == 1
    payload = completed[0].detail_json["payload"]
    assert payload["status"] == "FAILED"
    assert (payload["successCount"], payload["failureCount"]) == (2, 1)
    assert completed[0].detail_json["status"] == "FAILED"

    # events and metrics were all delivered before the raise; COMPLETED stays last
    assert [e.detail_type for e in channel.sent] == [PROGRESS, PROGRESS, COMPLETED]
    assert reporter.value("ImportSuccess") == 2
    assert reporter.value("ImportFailure") == 1
    assert "TotalRecordsImported" not in reporter.names()

    # batch [C] was tried MAX_RETRIES times
    assert [len(c) for c in backend.calls] == [2, 1, 1, 1]


@pytest.mark.asyncio
async def test_conservation_across_batches(make_orchestrator, channel):
    backend = MemoryBackend(unprocessed=lambda call, items: items[:1] if call % 2 else [])
    orch = make_orchestrator(backend, batch_size=3, max_retries=2)
    items = [{"id": str(i)} for i in range(10)]

    result = await orch.run(_request(items))

    assert result.success_count + result.failure_count == 10
    final = channel.of_type(COMPLETED)[0].detail_json["payload"]
    assert final["successCount"] + final["failureCount"] == final["totalItems"] == 10


@pytest.mark.asyncio
async def test_import_id_generated_when_missing(make_orchestrator, channel):
    backend = MemoryBackend()
    orch = make_orchestrator(backend)

    result = await orch.run(_request(ABC, import_id=None))

    uuid.UUID(result.import_id)
    stored = backend.table("restaurants-dev")
    assert {row["importId"] for row in stored.values()} == {result.import_id}
    assert {e.detail_json["correlation_id"] for e in channel.sent} == {result.import_id}


@pytest.mark.asyncio
async def test_supplied_import_id_threads_through_events(make_orchestrator, channel):
    orch = make_orchestrator()

    result = await orch.run(_request(ABC, import_id="caller-import"))

    assert result.import_id == "caller-import"
    for envelope in channel.sent:
        detail = envelope.detail_json
        assert detail["correlation_id"] == "caller-import"
        assert detail["trace_id"] == "trace-7"
        assert detail["payload"]["importId"] == "caller-import"
        assert detail["payload"]["batchId"] == "batch-7"
        assert detail["payload"]["operation"] == "CREATE"
        assert detail["source"] == "restaurant-import"


@pytest.mark.asyncio
async def test_unexpected_error_emits_failed_event_and_reraises(make_orchestrator, channel, reporter):
    orch = make_orchestrator(batch_size=2)

    async def explode(batch, ctx):
        raise RuntimeError("boom")

    orch.writer.write = explode

    with pytest.raises(RuntimeError, match="boom"):
        await orch.run(_request(ABC))

    failed = channel.of_type(FAILED)
    assert len(failed) == 1
    payload = failed[0].detail_json["payload"]
    assert payload["error"] == "boom"
    assert payload["totalItems"] == 3
    assert channel.sent[-1].detail_type == FAILED
    assert channel.of_type(COMPLETED) == []
    assert reporter.calls == [("ImportFailure", 3, "restaurants-dev", "Count")]


@pytest.mark.asyncio
async def test_observability_failures_do_not_change_outcome(make_orchestrator):
    class BrokenReporter:
        async def report(self, *args, **kwargs):
            raise RuntimeError("metrics down")

    class BrokenChannel:
        async def send(self, envelope):
            raise ConnectionError("bus down")

    orch = make_orchestrator()
    orch.reporter = BrokenReporter()
    orch.publisher.channel = BrokenChannel()

    result = await orch.run(_request(ABC))

    assert (result.success_count, result.failure_count) == (3, 0)


@pytest.mark.asyncio
async def test_events_delivered_in_order_before_return(make_orchestrator, channel):
    delivered = []

    async def slow_subscriber(envelope):
        await asyncio.sleep(0.01)
        delivered.append(envelope.detail_json["payload"].get("remainingItems", "final"))

    channel.subscribe(slow_subscriber)
    orch = make_orchestrator(batch_size=1)

    await orch.run(_request([{"id": str(i)} for i in range(4)]))

    assert delivered == [3, 2, 1, 0, "final"]


@pytest.mark.asyncio
async def test_unprocessed_items_dead_lettered(make_orchestrator, tmp_path):
    dlq = DeadLetterQueue(tmp_path / "dlq.ndjson")
    backend = MemoryBackend(
        unprocessed=lambda call, items: [i for i in items if i["id"] == "C"]
    )
    orch = make_orchestrator(backend, batch_size=2, dlq=dlq)

    with pytest.raises(PartialWriteFailure):
        await orch.run(_request(ABC))

    records = await dlq.replay(10)
    assert len(records) == 1
    assert [i["id"] for i in records[0].items] == ["C"]
    assert records[0].metadata == {
        "table": "restaurants-dev",
        "importId": "import-xyz",
        "batchId": "batch-7",
    }
    assert "unprocessed" in records[0].error


@pytest.mark.asyncio
async def test_hung_channel_does_not_stall_writes(make_orchestrator):
    class HungChannel:
        async def send(self, envelope):
            await asyncio.sleep(3600)

    backend = MemoryBackend()
    orch = make_orchestrator(
        backend, batch_size=1, side_effect_capacity=2, side_effect_timeout=0.05
    )
    orch.publisher.channel = HungChannel()

    result = await asyncio.wait_for(orch.run(_request([{"id": str(i)} for i in range(6)])), 5)

    assert backend.call_count == 6
    assert (result.success_count, result.failure_count) == (6, 0)
