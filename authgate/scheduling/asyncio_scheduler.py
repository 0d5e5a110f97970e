"""
Asyncio Scheduler: Task-Backed Timers

Each handle is backed by one asyncio.Task sleeping until due. The
task marks one-shot handles FIRED before awaiting the callback, so a
cancel() racing with the firing becomes a no-op instead of tearing
down a half-run callback.
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from authgate.observability.logging import StructuredLogger
from authgate.scheduling.protocols import (
    Scheduler,
    TimerCallback,
    TimerHandle,
    TimerKind,
)

logger = StructuredLogger(__name__)


class AsyncioScheduler(Scheduler):
    """
    Scheduler running on the current asyncio event loop.

    Usage:
        scheduler = AsyncioScheduler()
        handle = scheduler.schedule_once(150.0, on_kick, label="kick")
        ...
        scheduler.cancel(handle)

    Must be used from within a running event loop.
    """

    __slots__ = ("_tasks",)

    def __init__(self) -> None:
        self._tasks: dict[int, asyncio.Task[None]] = {}

    def monotonic(self) -> float:
        return time.monotonic()

    def schedule_once(
        self,
        delay: float,
        callback: TimerCallback,
        label: str = "",
    ) -> TimerHandle:
        handle = TimerHandle(
            kind=TimerKind.ONCE,
            due_at=self.monotonic() + delay,
            label=label,
        )
        self._spawn(handle, self._run_once(handle, delay, callback))
        return handle

    def schedule_repeating(
        self,
        initial_delay: float,
        period: float,
        callback: TimerCallback,
        label: str = "",
    ) -> TimerHandle:
        if period <= 0:
            raise ValueError(f"period must be > 0, got {period}")
        handle = TimerHandle(
            kind=TimerKind.REPEATING,
            due_at=self.monotonic() + initial_delay,
            period=period,
            label=label,
        )
        self._spawn(handle, self._run_repeating(handle, initial_delay, period, callback))
        return handle

    def cancel(self, handle: Optional[TimerHandle]) -> bool:
        if handle is None or not handle.mark_cancelled():
            return False

        task = self._tasks.get(handle.handle_id)
        # A running callback finishes; its loop sees CANCELLED afterwards
        if task is not None and not handle.running and not task.done():
            task.cancel()
        return True

    def shutdown(self) -> int:
        count = 0
        for task in list(self._tasks.values()):
            if not task.done():
                task.cancel()
                count += 1
        self._tasks.clear()
        return count

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks.values() if not t.done())

    def _spawn(self, handle: TimerHandle, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks[handle.handle_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(handle.handle_id, None))

    async def _run_once(
        self,
        handle: TimerHandle,
        delay: float,
        callback: TimerCallback,
    ) -> None:
        await asyncio.sleep(max(0.0, delay))
        if not handle.active:
            return
        handle.mark_fired()
        await self._invoke(handle, callback)

    async def _run_repeating(
        self,
        handle: TimerHandle,
        initial_delay: float,
        period: float,
        callback: TimerCallback,
    ) -> None:
        await asyncio.sleep(max(0.0, initial_delay))
        while handle.active:
            await self._invoke(handle, callback)
            if not handle.active:
                break
            handle.due_at += period
            await asyncio.sleep(max(0.0, handle.due_at - self.monotonic()))

    async def _invoke(self, handle: TimerHandle, callback: TimerCallback) -> None:
        handle.running = True
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(
                "Timer callback failed",
                timer=handle.label,
                handle_id=handle.handle_id,
            )
        finally:
            handle.running = False
