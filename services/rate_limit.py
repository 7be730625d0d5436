"""Throughput control for writes against the history store."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

Sleep = Callable[[float], Awaitable[None]]


class FixedIntervalGate:
    """Hold the caller for a fixed interval each time :meth:`wait` is awaited.

    The committer awaits the gate between batches, so ``interval`` bounds the
    store write rate at ``batch_size / interval`` entries per second. Tests
    inject ``sleep`` to observe delays without waiting on the wall clock.
    """

    def __init__(self, interval: float, sleep: Sleep = asyncio.sleep) -> None:
        if interval < 0:
            raise ValueError("Gate interval must not be negative.")
        self.interval = interval
        self._sleep = sleep

    async def wait(self) -> None:
        if self.interval > 0:
            await self._sleep(self.interval)


class CancellationToken:
    """Cooperative cancellation flag checked between batches."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled
