"""
Schedulers: the clock the delivery queue paces against.

AsyncioScheduler sleeps on the real event loop. ManualScheduler is a virtual
clock: sleeps only finish when a test calls ``advance(ms)``, so pacing can be
asserted deterministically without wall-clock waits.
"""
from __future__ import annotations

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod


class Scheduler(ABC):

    @abstractmethod
    def now_ms(self) -> float:
        ...

    @abstractmethod
    async def sleep(self, ms: float) -> None:
        """Suspend the caller for ``ms`` milliseconds. Cancellable."""
        ...


class AsyncioScheduler(Scheduler):

    def now_ms(self) -> float:
        return asyncio.get_running_loop().time() * 1000

    async def sleep(self, ms: float) -> None:
        await asyncio.sleep(max(ms, 0) / 1000)


class ManualScheduler(Scheduler):
    """Virtual clock driven by ``advance``."""

    # Event-loop turns given to woken coroutines before the clock moves on
    SETTLE_ROUNDS = 10

    def __init__(self):
        self._now = 0.0
        self._timers: list[tuple[float, int, asyncio.Future]] = []
        self._counter = itertools.count()

    def now_ms(self) -> float:
        return self._now

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, fut in self._timers if not fut.done())

    async def sleep(self, ms: float) -> None:
        if ms <= 0:
            await asyncio.sleep(0)
            return
        fut = asyncio.get_running_loop().create_future()
        heapq.heappush(self._timers, (self._now + ms, next(self._counter), fut))
        await fut

    async def settle(self):
        for _ in range(self.SETTLE_ROUNDS):
            await asyncio.sleep(0)

    async def advance(self, ms: float):
        """Move the clock forward, waking due sleepers in deadline order."""
        target = self._now + ms
        await self.settle()
        while self._timers and self._timers[0][0] <= target:
            deadline, _, fut = heapq.heappop(self._timers)
            self._now = deadline
            if not fut.done():
                fut.set_result(None)
                await self.settle()
        self._now = target
        await self.settle()
