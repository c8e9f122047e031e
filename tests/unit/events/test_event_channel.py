"""
Unit tests for event channels (in-memory fan-out and EventBridge delivery).
"""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from restaurant_import.errors import ObservabilityError
from restaurant_import.events import EventBridgeChannel, EventEnvelope, InMemoryEventChannel


def _envelope(detail_type="RESTAURANT_IMPORT_PROGRESS", bus=None):
    return EventEnvelope(
        source="restaurant-import",
        detail_type=detail_type,
        detail='{"payload": {"remainingItems": 3}}',
        time=datetime(2025, 3, 1, tzinfo=timezone.utc),
        event_bus_name=bus,
    )


@pytest.mark.asyncio
async def test_subscribers_receive_in_registration_order():
    channel = InMemoryEventChannel()
    seen = []

    async def first(env):
        seen.append(("first", env.detail_type))

    async def second(env):
        seen.append(("second", env.detail_type))

    channel.subscribe(first)
    channel.subscribe(second)
    channel.subscribe(first)  # duplicate ignored
    await channel.send(_envelope())

    assert channel.subscriber_count == 2
    assert seen == [
        ("first", "RESTAURANT_IMPORT_PROGRESS"),
        ("second", "RESTAURANT_IMPORT_PROGRESS"),
    ]
    assert channel.sent[0].detail_json["payload"]["remainingItems"] == 3


@pytest.mark.asyncio
async def test_subscriber_error_isolated():
    channel = InMemoryEventChannel()
    got = []

    async def broken(env):
        raise RuntimeError("consumer crashed")

    async def healthy(env):
        got.append(env)

    channel.subscribe(broken)
    channel.subscribe(healthy)
    await channel.send(_envelope())

    assert len(got) == 1
    assert len(channel.sent) == 1


@pytest.mark.asyncio
async def test_unsubscribe_and_filter_by_type():
    channel = InMemoryEventChannel()
    got = []

    async def sub(env):
        got.append(env)

    channel.subscribe(sub)
    await channel.send(_envelope())
    channel.unsubscribe(sub)
    channel.unsubscribe(sub)  # no-op
    await channel.send(_envelope("RESTAURANT_IMPORT_COMPLETED"))

    assert len(got) == 1
    assert [e.detail_type for e in channel.of_type("RESTAURANT_IMPORT_COMPLETED")] == [
        "RESTAURANT_IMPORT_COMPLETED"
    ]


@pytest.mark.asyncio
async def test_eventbridge_put_events_entry():
    client = Mock()
    client.put_events.return_value = {"FailedEntryCount": 0, "Entries": [{"EventId": "1"}]}
    channel = EventBridgeChannel("imports-bus", client=client)

    await channel.send(_envelope())

    entries = client.put_events.call_args.kwargs["Entries"]
    assert len(entries) == 1
    entry = entries[0]
    assert entry["Source"] == "restaurant-import"
    assert entry["DetailType"] == "RESTAURANT_IMPORT_PROGRESS"
    assert entry["EventBusName"] == "imports-bus"
    assert entry["Detail"] == '{"payload": {"remainingItems": 3}}'


@pytest.mark.asyncio
async def test_eventbridge_rejected_entry_raises():
    client = Mock()
    client.put_events.return_value = {
        "FailedEntryCount": 1,
        "Entries": [{"ErrorCode": "InternalFailure", "ErrorMessage": "oops"}],
    }
    channel = EventBridgeChannel("imports-bus", client=client)

    with pytest.raises(ObservabilityError, match="InternalFailure"):
        await channel.send(_envelope())
