"""DynamoDB storage backend (boto3 `batch_write_item`)."""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from typing import Any, List, Optional, Sequence

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config
from loguru import logger

from ..errors import map_backend_error
from .base import Record

# Per-request ceiling of BatchWriteItem
MAX_BATCH_ITEMS = 25


def _to_dynamo_value(item: Record) -> Record:
    # DynamoDB numbers must be Decimal; round-trip through JSON keeps nested values plain
    return json.loads(json.dumps(item, default=str), parse_float=Decimal)


def _from_dynamo_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo_value(v) for v in value]
    return value


def create_dynamodb_client(region: Optional[str] = None, endpoint_url: Optional[str] = None):
    client_kwargs: dict[str, Any] = {
        "service_name": "dynamodb",
        "config": Config(retries={"max_attempts": 1, "mode": "standard"}),
    }
    if region:
        client_kwargs["region_name"] = region
    if endpoint_url:
        client_kwargs["endpoint_url"] = endpoint_url
    return boto3.client(**client_kwargs)


class DynamoDBBackend:
    """
    Writes records with `PutRequest`s; throttled records come back in `UnprocessedItems`.

    SDK-level retries are disabled so the batch writer's backoff is the only retry loop.
    """

    def __init__(self, client: Any = None, *, region: str | None = None, endpoint_url: str | None = None):
        self.client = client or create_dynamodb_client(region, endpoint_url)
        self._ser = TypeSerializer()
        self._de = TypeDeserializer()
        logger.info(f"DynamoDB backend initialized (region={region}, endpoint={endpoint_url})")

    def _serialize(self, item: Record) -> dict:
        return {k: self._ser.serialize(v) for k, v in _to_dynamo_value(item).items()}

    def _deserialize(self, image: dict) -> Record:
        return _from_dynamo_value({k: self._de.deserialize(v) for k, v in image.items()})

    def _write(self, table: str, items: Sequence[Record]) -> List[Record]:
        if len(items) > MAX_BATCH_ITEMS:
            raise ValueError(f"BatchWriteItem accepts at most {MAX_BATCH_ITEMS} items, got {len(items)}")
        requests = [{"PutRequest": {"Item": self._serialize(item)}} for item in items]
        response = self.client.batch_write_item(RequestItems={table: requests})
        unprocessed = (response.get("UnprocessedItems") or {}).get(table, [])
        return [self._deserialize(req["PutRequest"]["Item"]) for req in unprocessed]

    async def batch_write(self, table: str, items: Sequence[Record]) -> List[Record]:
        if not items:
            return []
        try:
            return await asyncio.to_thread(self._write, table, items)
        except ValueError:
            raise
        except Exception as e:
            raise map_backend_error(e) from e

    async def aclose(self) -> None:
        close = getattr(self.client, "close", None)
        if close:
            close()
