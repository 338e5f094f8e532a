from __future__ import annotations

"""
File: shuttle_dispatch/scheduler.py
Purpose: Clock and timer abstractions for the simulation.
Key responsibilities:
- Provide wall/monotonic time through an injectable clock.
- Run periodic and one-shot callbacks on the event loop with cancel handles.
- Guard every callback so one failing tick never stops another timer.
"""

import asyncio
from datetime import datetime, timezone
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger("shuttle-scheduler")

Callback = Callable[[], Awaitable[None]]


class SystemClock:
    """Wall clock backed by the host."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()


async def run_guarded(fn: Callback, name: str) -> None:
    """Await a timer callback, logging instead of propagating failures."""
    try:
        await fn()
    except asyncio.CancelledError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("timer callback failed name=%s err=%s", name, exc)


class TaskHandle:
    """Cancel handle for a scheduled callback.

    Cancelling stops future firings. A callback that is already running is left to
    finish so its store writes are not cut off part-way.
    """

    def __init__(self, name: str, task: asyncio.Task | None = None) -> None:
        self.name = name
        self._task = task
        self.cancelled = False
        self.running = False

    def cancel(self) -> None:
        self.cancelled = True
        if self._task is not None and not self._task.done() and not self.running:
            self._task.cancel()

    def done(self) -> bool:
        return self._task is None or self._task.done()

    async def _fire(self, fn: Callback) -> None:
        self.running = True
        try:
            await run_guarded(fn, self.name)
        finally:
            self.running = False


class AsyncioScheduler:
    """Timers implemented as asyncio tasks on the running loop."""

    def every(self, interval_s: float, fn: Callback, name: str) -> TaskHandle:
        """Invoke fn every interval_s seconds until cancelled."""
        handle = TaskHandle(name)

        async def _loop() -> None:
            while not handle.cancelled:
                await asyncio.sleep(interval_s)
                if handle.cancelled:
                    return
                await handle._fire(fn)

        handle._task = asyncio.create_task(_loop(), name=f"timer:{name}")
        return handle

    def call_later(self, delay_s: float, fn: Callback, name: str) -> TaskHandle:
        """Invoke fn once after delay_s seconds unless cancelled first."""
        handle = TaskHandle(name)

        async def _once() -> None:
            await asyncio.sleep(delay_s)
            if not handle.cancelled:
                await handle._fire(fn)

        handle._task = asyncio.create_task(_once(), name=f"once:{name}")
        return handle
