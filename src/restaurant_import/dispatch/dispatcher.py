"""
Fire-and-forget dispatcher for observability side effects.

The import orchestrator hands status events and metrics to `SideEffectDispatcher.submit`
and carries on writing. One background task delivers them in submission order, so
PROGRESS events keep batch order and the terminal event stays last. Failures are logged
and skipped; they never reach the submitter.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from .queue import BoundedQueue, OverflowStrategy

_STOP = object()


@dataclass(frozen=True)
class SideEffect:
    label: str
    run: Callable[[], Awaitable[Any]]


@dataclass
class DispatchStats:
    submitted: int = 0
    delivered: int = 0
    failed: int = 0
    dropped: int = 0


class SideEffectDispatcher:
    """Ordered, bounded, error-isolated delivery of side effects.

    With `overflow_strategy="drop_oldest"` a submit never waits on the worker, and
    `effect_timeout` caps how long one effect may hold up the ones queued behind it.

    Example:
        async with SideEffectDispatcher(name=import_id) as dispatcher:
            await dispatcher.submit("progress", lambda: publisher.publish(event))
            ...
        # leaving the block drains pending effects (bounded by drain_timeout)
    """

    def __init__(
        self,
        capacity: int = 1000,
        *,
        overflow_strategy: OverflowStrategy = "block",
        drain_timeout: float = 10.0,
        effect_timeout: Optional[float] = None,
        name: str = "import",
    ):
        self.name = name
        self.drain_timeout = drain_timeout
        self.effect_timeout = effect_timeout
        self.stats = DispatchStats()
        self._queue: BoundedQueue[Any] = BoundedQueue(
            capacity,
            overflow_strategy=overflow_strategy,
            on_high=self._on_high,
            on_low=self._on_low,
            drop_callback=self._on_drop,
        )
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return self._queue.size

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"side-effects-{self.name}")

    async def submit(self, label: str, run: Callable[[], Awaitable[Any]]) -> None:
        """Queue a side effect; returns once queued, not once delivered."""
        if not self.running:
            self.start()
        self.stats.submitted += 1
        await self._queue.put(SideEffect(label, run))

    async def drain(self) -> bool:
        """Wait for queued effects; False if `drain_timeout` elapsed first."""
        if not self.running:
            return self.pending == 0
        try:
            await asyncio.wait_for(self._queue.join(), timeout=self.drain_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                f"[{self.name}] side effects not drained within {self.drain_timeout}s "
                f"({self.pending} pending)"
            )
            return False

    async def stop(self) -> None:
        if not self.running:
            return
        drained = await self.drain()
        if drained:
            await self._queue.put(_STOP)
            await self._task
        else:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.debug(
            f"[{self.name}] dispatcher stopped: delivered={self.stats.delivered} "
            f"failed={self.stats.failed} dropped={self.stats.dropped}"
        )

    async def __aenter__(self) -> "SideEffectDispatcher":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _run(self) -> None:
        while True:
            effect = await self._queue.get()
            try:
                if effect is _STOP:
                    return
                if self.effect_timeout is None:
                    await effect.run()
                else:
                    await asyncio.wait_for(effect.run(), timeout=self.effect_timeout)
                self.stats.delivered += 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.stats.failed += 1
                logger.error(
                    f"[{self.name}] side effect {effect.label!r} failed (ignored): "
                    f"{type(exc).__name__}: {exc}"
                )
            finally:
                self._queue.task_done()

    async def _on_drop(self, effect: Any) -> None:
        self.stats.dropped += 1
        label = getattr(effect, "label", effect)
        logger.warning(f"[{self.name}] side-effect queue full, dropped {label!r}")

    async def _on_high(self) -> None:
        logger.warning(
            f"[{self.name}] side-effect backlog high ({self._queue.size}/{self._queue.capacity})"
        )

    async def _on_low(self) -> None:
        logger.info(f"[{self.name}] side-effect backlog recovered ({self._queue.size})")
