from __future__ import annotations

from datetime import datetime
from typing import Optional

from loguru import logger

from ..models import StatusEvent
from .channel import EventChannel, EventEnvelope


class EventPublisher:
    """Translates status events into channel envelopes; delivery is best-effort."""

    def __init__(self, channel: EventChannel, *, event_bus_name: Optional[str] = None):
        self.channel = channel
        self.event_bus_name = event_bus_name

    def envelope(self, event: StatusEvent) -> EventEnvelope:
        return EventEnvelope(
            source=event.source,
            detail_type=event.event_type.value,
            detail=event.to_json(),
            time=datetime.fromisoformat(event.timestamp),
            event_bus_name=self.event_bus_name,
        )

    async def publish(self, event: StatusEvent) -> bool:
        """Deliver `event`. Returns False (and logs) instead of raising on failure."""
        try:
            await self.channel.send(self.envelope(event))
        except Exception as exc:
            logger.error(
                f"Error sending {event.event_type.value} event "
                f"(importId={event.correlation_id}): {type(exc).__name__}: {exc}"
            )
            return False
        logger.debug(f"Published {event.event_type.value} event {event.event_id}")
        return True
