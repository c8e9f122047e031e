"""Ordered fire-and-forget delivery of observability side effects."""

from .dispatcher import DispatchStats, SideEffect, SideEffectDispatcher
from .queue import BoundedQueue, OverflowStrategy

__all__ = [
    "BoundedQueue",
    "OverflowStrategy",
    "SideEffect",
    "DispatchStats",
    "SideEffectDispatcher",
]
