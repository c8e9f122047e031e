"""
Trigger entry point.

Accepts `{detail: {event_id, trace_id, correlation_id?, payload: {table, items, batchId}}}`
and returns `{statusCode: 200, body: json}` on success. Validation errors, residual
failures and unexpected errors are re-raised so the invoking infrastructure redrives
the import.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from loguru import logger

from .config import ImportSettings
from .factory import build_orchestrator
from .models import ImportRequest
from .orchestrator import ImportOrchestrator


async def handle_event(
    event: dict[str, Any],
    orchestrator: Optional[ImportOrchestrator] = None,
    settings: Optional[ImportSettings] = None,
) -> dict[str, Any]:
    request = ImportRequest.from_trigger(event)
    owned = orchestrator is None
    orchestrator = orchestrator or build_orchestrator(settings)
    try:
        result = await orchestrator.run(request)
    finally:
        if owned:
            await orchestrator.writer.backend.aclose()
    return result.to_response()


def handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """Synchronous (Lambda-style) wrapper around `handle_event`."""
    request_id = getattr(context, "aws_request_id", None)
    with logger.contextualize(request_id=request_id):
        return asyncio.run(handle_event(event))
