from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Generic, Literal, Optional, TypeVar

T = TypeVar("T")
OverflowStrategy = Literal["block", "drop_oldest"]
WatermarkCallback = Callable[[], Awaitable[None]]


class BoundedQueue(Generic[T]):
    """Bounded FIFO queue with high/low watermarks, overflow strategies and join()."""

    def __init__(
        self,
        capacity: int,
        high_watermark: int | None = None,
        low_watermark: int | None = None,
        *,
        overflow_strategy: OverflowStrategy = "block",
        on_high: Optional[WatermarkCallback] = None,
        on_low: Optional[WatermarkCallback] = None,
        drop_callback: Optional[Callable[[T], Awaitable[None]]] = None,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")

        self._capacity = capacity
        self._q: asyncio.Queue[T] = asyncio.Queue(maxsize=capacity)
        self._size = 0  # mirrored for watermark checks

        self._high_wm = (
            high_watermark if high_watermark is not None else max(1, int(0.8 * capacity))
        )
        self._low_wm = low_watermark if low_watermark is not None else int(0.5 * capacity)
        self._overflow = overflow_strategy
        self._on_high = on_high
        self._on_low = on_low
        self._drop_cb = drop_callback

        self._high_fired = False  # avoid duplicate signals
        self._lock = asyncio.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def size(self) -> int:
        return self._size

    async def put(self, item: T) -> None:
        """Put item according to overflow policy; emits high watermark once per crossing."""
        if self._overflow == "drop_oldest" and self._q.full():
            oldest = self._q.get_nowait()
            self._q.task_done()
            async with self._lock:
                self._size -= 1
            if self._drop_cb:
                await self._drop_cb(oldest)

        await self._q.put(item)
        async with self._lock:
            self._size += 1
            await self._maybe_signal_high()

    async def get(self) -> T:
        """Get the next item; emits low watermark when recovering."""
        item = await self._q.get()

        async with self._lock:
            self._size -= 1
            await self._maybe_signal_low()
        return item

    def task_done(self) -> None:
        self._q.task_done()

    async def join(self) -> None:
        """Wait until every item put so far has been marked done."""
        await self._q.join()

    async def _maybe_signal_high(self) -> None:
        if not self._high_fired and self._size >= self._high_wm:
            self._high_fired = True
            if self._on_high:
                await self._on_high()

    async def _maybe_signal_low(self) -> None:
        if self._high_fired and self._size <= self._low_wm:
            self._high_fired = False
            if self._on_low:
                await self._on_low()
