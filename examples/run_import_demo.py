"""
Demo script for the import pipeline.

Imports 60 generated restaurants into an in-memory table while the backend throttles
part of each call, and prints status events as they are delivered.
"""

import asyncio
import json

from loguru import logger

from restaurant_import.backends import MemoryBackend
from restaurant_import.config import ImportSettings
from restaurant_import.events import EventEnvelope, InMemoryEventChannel
from restaurant_import.factory import build_orchestrator
from restaurant_import.models import ImportRequest
from restaurant_import.utils import generate_id


def throttle_odd_calls(call_no, items):
    # every odd call leaves its last two items unprocessed
    return list(items[-2:]) if call_no % 2 else []


async def on_event(envelope: EventEnvelope):
    payload = envelope.detail_json["payload"]
    if envelope.detail_type == "RESTAURANT_IMPORT_PROGRESS":
        logger.info(
            f"Progress: ok={payload['successCount']} failed={payload['failureCount']} "
            f"remaining={payload['remainingItems']}"
        )
    else:
        logger.info(f"{envelope.detail_type}: {json.dumps(payload)}")


async def main():
    settings = ImportSettings(_env_file=None, BATCH_SIZE=25, RETRY_DELAY_MS=20)
    channel = InMemoryEventChannel()
    channel.subscribe(on_event)
    backend = MemoryBackend(unprocessed=throttle_odd_calls)
    orchestrator = build_orchestrator(settings, backend=backend, channel=channel)

    items = [{"id": f"r{i:03d}", "name": f"Restaurant {i}", "rating": 4.0} for i in range(60)]
    request = ImportRequest(
        table="restaurants-dev", items=items, batch_id="demo-upload", trace_id=generate_id()
    )

    logger.info(f"Starting import of {len(items)} items")
    result = await orchestrator.run(request)
    logger.info(
        f"Import {result.import_id} done: {result.success_count}/{result.total_items} written "
        f"in {result.latency_ms:.1f}ms over {backend.call_count} backend calls"
    )


if __name__ == "__main__":
    asyncio.run(main())
