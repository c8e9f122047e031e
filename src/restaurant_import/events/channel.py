"""
Delivery channels for import status events.

The in-memory channel is an in-process pub/sub bus (local runs, tests, and in-process
consumers of PROGRESS/COMPLETED/FAILED). The EventBridge channel delivers to an AWS
event bus.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol

import boto3
from loguru import logger

from ..errors import ObservabilityError


@dataclass(frozen=True)
class EventEnvelope:
    """Channel-level wrapper around one status event.

    Attributes:
        source: Producer id (e.g. "restaurant-import")
        detail_type: Event type, e.g. "RESTAURANT_IMPORT_PROGRESS"
        detail: JSON-encoded status event
        time: Event timestamp
        event_bus_name: Target bus, when the channel routes by name
    """

    source: str
    detail_type: str
    detail: str
    time: datetime
    event_bus_name: Optional[str] = None

    @property
    def detail_json(self) -> dict[str, Any]:
        return json.loads(self.detail)

    def to_entry(self) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "Source": self.source,
            "DetailType": self.detail_type,
            "Detail": self.detail,
            "Time": self.time,
        }
        if self.event_bus_name:
            entry["EventBusName"] = self.event_bus_name
        return entry


class EventChannel(Protocol):
    async def send(self, envelope: EventEnvelope) -> None:
        """Deliver one envelope; raise on failure (the publisher absorbs it)."""
        ...


class EventSubscriber(Protocol):
    """Async callable receiving envelopes from the in-memory channel."""

    async def __call__(self, envelope: EventEnvelope) -> None: ...


class InMemoryEventChannel:
    """In-process event channel with subscriber fan-out.

    Every envelope is recorded in `sent` and handed to subscribers in registration order.
    One subscriber's failure does not affect others.

    Example:
        channel = InMemoryEventChannel()

        async def on_event(envelope: EventEnvelope):
            if envelope.detail_type == "RESTAURANT_IMPORT_FAILED":
                await page_oncall(envelope.detail_json)

        channel.subscribe(on_event)
    """

    def __init__(self) -> None:
        self._subs: list[EventSubscriber] = []
        self.sent: list[EventEnvelope] = []

    def subscribe(self, callback: EventSubscriber) -> None:
        if callback not in self._subs:
            self._subs.append(callback)
            logger.debug(f"Event subscriber added (total: {len(self._subs)})")

    def unsubscribe(self, callback: EventSubscriber) -> None:
        """No-op if callback not found."""
        try:
            self._subs.remove(callback)
            logger.debug(f"Event subscriber removed (total: {len(self._subs)})")
        except ValueError:
            pass

    async def send(self, envelope: EventEnvelope) -> None:
        self.sent.append(envelope)
        # Iterate over copy to allow unsubscribe during iteration
        for callback in list(self._subs):
            try:
                await callback(envelope)
            except Exception as exc:
                logger.debug(f"Event subscriber error (ignored): {type(exc).__name__}: {exc}")

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)

    def of_type(self, detail_type: str) -> list[EventEnvelope]:
        return [e for e in self.sent if e.detail_type == detail_type]


def create_events_client(region: Optional[str] = None, endpoint_url: Optional[str] = None):
    client_kwargs: dict[str, Any] = {"service_name": "events"}
    if region:
        client_kwargs["region_name"] = region
    if endpoint_url:
        client_kwargs["endpoint_url"] = endpoint_url
    return boto3.client(**client_kwargs)


class EventBridgeChannel:
    """PutEvents onto a named bus. Rejected entries are reported as ObservabilityError."""

    def __init__(self, event_bus_name: str, client: Any = None):
        self.event_bus_name = event_bus_name
        self.client = client or create_events_client()

    def _put(self, envelope: EventEnvelope) -> dict:
        entry = envelope.to_entry()
        entry.setdefault("EventBusName", self.event_bus_name)
        return self.client.put_events(Entries=[entry])

    async def send(self, envelope: EventEnvelope) -> None:
        response = await asyncio.to_thread(self._put, envelope)
        failed = response.get("FailedEntryCount", 0)
        if failed:
            entries = response.get("Entries") or [{}]
            code = entries[0].get("ErrorCode", "unknown")
            raise ObservabilityError(
                f"EventBridge rejected {envelope.detail_type} on {self.event_bus_name}: {code}"
            )
