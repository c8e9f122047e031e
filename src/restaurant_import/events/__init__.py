"""Status event publishing: envelopes, channels and the best-effort publisher."""

from .channel import EventBridgeChannel, EventChannel, EventEnvelope, InMemoryEventChannel
from .publisher import EventPublisher

__all__ = [
    "EventEnvelope",
    "EventChannel",
    "InMemoryEventChannel",
    "EventBridgeChannel",
    "EventPublisher",
]
