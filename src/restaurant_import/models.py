"""
Data models for the import pipeline.

Records themselves are opaque mappings: the pipeline stamps them with run metadata and
writes them without inspecting their contents.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from .errors import ValidationError
from .utils import generate_id, utc_now


class EventType(str, Enum):
    PROGRESS = "RESTAURANT_IMPORT_PROGRESS"
    COMPLETED = "RESTAURANT_IMPORT_COMPLETED"
    FAILED = "RESTAURANT_IMPORT_FAILED"


class EventStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class TriggerPayload(BaseModel):
    table: str
    items: list[dict[str, Any]]
    batch_id: str = Field(alias="batchId")

    model_config = ConfigDict(populate_by_name=True)


class TriggerDetail(BaseModel):
    event_id: Optional[str] = None
    trace_id: str
    correlation_id: Optional[str] = None
    payload: TriggerPayload


class TriggerEvent(BaseModel):
    """`{detail: {event_id, trace_id, correlation_id?, payload: {table, items, batchId}}}`"""

    detail: TriggerDetail


class ImportRequest(BaseModel):
    """One trigger invocation: write `items` into `table`."""

    table: str
    items: list[dict[str, Any]]
    batch_id: str
    trace_id: str
    import_id: Optional[str] = None

    @classmethod
    def from_trigger(cls, event: dict[str, Any]) -> "ImportRequest":
        try:
            trigger = TriggerEvent.model_validate(event)
        except PydanticValidationError as exc:
            raise ValidationError(f"Malformed import trigger: {exc}") from exc
        detail = trigger.detail
        return cls(
            table=detail.payload.table,
            items=detail.payload.items,
            batch_id=detail.payload.batch_id,
            trace_id=detail.trace_id,
            import_id=detail.correlation_id or None,
        )


@dataclass(frozen=True)
class WriteOutcome:
    """Result of one batch write chain; success + failure == items handed to the chain."""

    success_count: int
    failure_count: int
    attempts: int = 1
    failed_items: tuple[dict[str, Any], ...] = ()
    last_error: Optional[str] = None

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count


@dataclass
class RunTotals:
    total_items: int
    success_count: int = 0
    failure_count: int = 0
    processed_items: int = 0
    batches: int = 0

    def add(self, outcome: WriteOutcome, batch_len: int) -> None:
        self.success_count += outcome.success_count
        self.failure_count += outcome.failure_count
        self.processed_items += batch_len
        self.batches += 1

    @property
    def remaining_items(self) -> int:
        return max(0, self.total_items - self.processed_items)


class StatusEvent(BaseModel):
    event_id: str = Field(default_factory=generate_id)
    event_type: EventType
    trace_id: str
    correlation_id: str
    timestamp: str = Field(default_factory=lambda: utc_now().isoformat())
    source: str
    version: str = "1.0"
    status: EventStatus
    payload: dict[str, Any]

    def to_json(self) -> str:
        return self.model_dump_json()


class ImportResult(BaseModel):
    import_id: str
    batch_id: str
    total_items: int
    success_count: int
    failure_count: int
    latency_ms: float = 0.0

    def to_response(self) -> dict[str, Any]:
        """HTTP-style synchronous response for the invoking infrastructure."""
        return {
            "statusCode": 200,
            "body": json.dumps(
                {
                    "message": "Import completed successfully",
                    "importId": self.import_id,
                    "batchId": self.batch_id,
                    "totalItems": self.total_items,
                    "successCount": self.success_count,
                    "failureCount": self.failure_count,
                }
            ),
        }


@dataclass
class BatchContext:
    """Identifiers threaded through every write of one run."""

    table: str
    batch_id: str
    trace_id: str
    import_id: str
