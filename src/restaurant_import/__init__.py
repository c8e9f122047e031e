"""
Restaurant Import Pipeline

Bulk import of opaque records into a key-value table: bounded batch writes,
exponential-backoff retries for unprocessed items, status events and metrics.

Usage:
    from restaurant_import import ImportRequest, build_orchestrator

    orchestrator = build_orchestrator()
    result = await orchestrator.run(
        ImportRequest(table="restaurants-dev", items=[...], batch_id="b-1", trace_id="t-1")
    )

    # Trigger-style entry point
    from restaurant_import import handler
    response = handler({"detail": {...}})
"""

from .config import ImportSettings, get_settings
from .errors import (
    BackendError,
    AccountingError,
    ConfigurationError,
    ImportPipelineError,
    ObservabilityError,
    PartialWriteFailure,
    TransientBackendError,
    ValidationError,
)
from .factory import build_orchestrator
from .trigger import handle_event, handler
from .models import (
    EventStatus,
    EventType,
    ImportRequest,
    ImportResult,
    RunTotals,
    StatusEvent,
    WriteOutcome,
)
from .orchestrator import ImportOrchestrator
from .writer import BatchWriter

__version__ = "1.0.0"
__all__ = [
    "ImportSettings",
    "get_settings",
    "ImportPipelineError",
    "ValidationError",
    "PartialWriteFailure",
    "BackendError",
    "TransientBackendError",
    "ObservabilityError",
    "ConfigurationError",
    "AccountingError",
    "ImportRequest",
    "ImportResult",
    "RunTotals",
    "StatusEvent",
    "WriteOutcome",
    "EventType",
    "EventStatus",
    "BatchWriter",
    "ImportOrchestrator",
    "build_orchestrator",
    "handle_event",
    "handler",
]
