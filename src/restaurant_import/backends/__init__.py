"""Storage backends for the batch writer."""

from .base import Record, StorageBackend, record_key
from .memory import MemoryBackend

__all__ = [
    "Record",
    "StorageBackend",
    "record_key",
    "MemoryBackend",
]
