"""
Explicit wiring of the import pipeline from settings.

Every collaborator is built here (or passed in) instead of living in module-level
client singletons, so tests and embedders can swap any of them.
"""

from __future__ import annotations

from typing import Optional

from loguru import logger

from .backends import MemoryBackend, StorageBackend
from .config import ImportSettings, get_settings
from .dlq import DeadLetterQueue
from .errors import ConfigurationError
from .events import EventBridgeChannel, EventChannel, EventPublisher, InMemoryEventChannel
from .metrics import CloudWatchMetricsReporter, MetricsReporter, PrometheusMetricsReporter
from .orchestrator import ImportOrchestrator
from .writer import BatchWriter, SleepFn


def build_backend(settings: ImportSettings) -> StorageBackend:
    if settings.STORAGE_BACKEND == "dynamodb":
        from .backends.dynamodb import DynamoDBBackend

        return DynamoDBBackend(region=settings.AWS_REGION, endpoint_url=settings.AWS_ENDPOINT_URL)
    if settings.STORAGE_BACKEND == "postgres":
        if not settings.POSTGRES_DSN:
            raise ConfigurationError("POSTGRES_DSN is required when STORAGE_BACKEND=postgres")
        from .backends.postgres import PostgresBackend

        return PostgresBackend(settings.POSTGRES_DSN, settings.key_fields)
    return MemoryBackend(settings.key_fields)


def build_channel(settings: ImportSettings) -> EventChannel:
    if settings.EVENT_BACKEND == "eventbridge":
        if not settings.EVENT_BUS_NAME:
            raise ConfigurationError("EVENT_BUS_NAME environment variable is not set")
        from .events.channel import create_events_client

        return EventBridgeChannel(
            settings.EVENT_BUS_NAME,
            client=create_events_client(settings.AWS_REGION, settings.AWS_ENDPOINT_URL),
        )
    return InMemoryEventChannel()


def build_reporter(settings: ImportSettings) -> MetricsReporter:
    if settings.METRICS_BACKEND == "cloudwatch":
        from .metrics.reporter import create_cloudwatch_client

        return CloudWatchMetricsReporter(
            settings.metrics_namespace,
            client=create_cloudwatch_client(settings.AWS_REGION, settings.AWS_ENDPOINT_URL),
        )
    return PrometheusMetricsReporter()


def build_orchestrator(
    settings: Optional[ImportSettings] = None,
    *,
    backend: Optional[StorageBackend] = None,
    channel: Optional[EventChannel] = None,
    reporter: Optional[MetricsReporter] = None,
    sleep: Optional[SleepFn] = None,
) -> ImportOrchestrator:
    settings = settings or get_settings()
    writer_kwargs = {"sleep": sleep} if sleep is not None else {}
    writer = BatchWriter(
        backend or build_backend(settings),
        max_retries=settings.MAX_RETRIES,
        retry_delay_ms=settings.RETRY_DELAY_MS,
        **writer_kwargs,
    )
    publisher = EventPublisher(
        channel or build_channel(settings), event_bus_name=settings.EVENT_BUS_NAME
    )
    dlq = DeadLetterQueue(settings.DLQ_PATH) if settings.DLQ_PATH else None

    logger.debug(
        f"Import pipeline wired: storage={settings.STORAGE_BACKEND} "
        f"events={settings.EVENT_BACKEND} metrics={settings.METRICS_BACKEND} "
        f"batch_size={settings.BATCH_SIZE} max_retries={settings.MAX_RETRIES}"
    )
    return ImportOrchestrator(
        writer,
        publisher,
        reporter or build_reporter(settings),
        allowed_tables=settings.allowed_tables,
        batch_size=settings.BATCH_SIZE,
        event_source=settings.EVENT_SOURCE,
        dlq=dlq,
        side_effect_capacity=settings.SIDE_EFFECT_QUEUE_CAPACITY,
        drain_timeout=settings.SIDE_EFFECT_DRAIN_TIMEOUT_SEC,
        side_effect_timeout=settings.SIDE_EFFECT_TIMEOUT_SEC,
    )
