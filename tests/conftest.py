"""
Pytest configuration and shared fakes for the import pipeline.
"""

import asyncio
import sys
from datetime import datetime, timezone

import pytest

from restaurant_import.backends import MemoryBackend
from restaurant_import.events import EventPublisher, InMemoryEventChannel
from restaurant_import.models import BatchContext
from restaurant_import.orchestrator import ImportOrchestrator
from restaurant_import.writer import BatchWriter

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

FIXED_NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class RecordingSleep:
    """Stands in for asyncio.sleep; records requested delays without waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class RecordingReporter:
    def __init__(self):
        self.calls = []

    async def report(self, metric_name, value, table, unit="Count"):
        self.calls.append((metric_name, value, table, unit))

    def names(self):
        return [c[0] for c in self.calls]

    def value(self, metric_name):
        return next(c[1] for c in self.calls if c[0] == metric_name)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def channel():
    return InMemoryEventChannel()


@pytest.fixture
def ctx():
    return BatchContext(
        table="restaurants-dev",
        batch_id="batch-001",
        trace_id="trace-abc",
        import_id="import-123",
    )


@pytest.fixture
def make_orchestrator(channel, reporter, recording_sleep, fixed_clock):
    """Build an orchestrator around a MemoryBackend (or any backend passed in)."""

    def _make(
        backend=None,
        *,
        batch_size=2,
        max_retries=3,
        retry_delay_ms=100,
        dlq=None,
        side_effect_capacity=1000,
        side_effect_timeout=1.0,
    ):
        backend = backend or MemoryBackend()
        writer = BatchWriter(
            backend,
            max_retries=max_retries,
            retry_delay_ms=retry_delay_ms,
            sleep=recording_sleep,
            clock=fixed_clock,
        )
        return ImportOrchestrator(
            writer,
            EventPublisher(channel),
            reporter,
            allowed_tables={"restaurants-dev", "dishes-dev"},
            batch_size=batch_size,
            dlq=dlq,
            side_effect_capacity=side_effect_capacity,
            drain_timeout=2.0,
            side_effect_timeout=side_effect_timeout,
        )

    return _make
