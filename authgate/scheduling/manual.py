"""
Manual Scheduler: Deterministic Fake Clock

Time only moves when advance() is awaited. Due callbacks run in
(due time, scheduling order) sequence, with the clock set to each
callback's due time while it runs. Used by the test suite and by
hosts that drive timers from their own tick counter.

Exceptions raised by callbacks propagate out of advance().
"""

from __future__ import annotations

import heapq
import itertools
from typing import Optional

from authgate.scheduling.protocols import (
    Scheduler,
    TimerCallback,
    TimerHandle,
    TimerKind,
)


class ManualScheduler(Scheduler):
    """
    Scheduler driven by explicit advance() calls.

    Usage:
        scheduler = ManualScheduler()
        scheduler.schedule_once(60.0, on_kick)
        await scheduler.advance(59.0)   # nothing fires
        await scheduler.advance(1.0)    # on_kick runs with monotonic() == 60.0
    """

    __slots__ = ("_now", "_queue", "_seq")

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[tuple[float, int, TimerHandle, TimerCallback]] = []
        self._seq = itertools.count()

    def monotonic(self) -> float:
        return self._now

    def schedule_once(
        self,
        delay: float,
        callback: TimerCallback,
        label: str = "",
    ) -> TimerHandle:
        handle = TimerHandle(
            kind=TimerKind.ONCE,
            due_at=self._now + max(0.0, delay),
            label=label,
        )
        self._push(handle, callback)
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
            due_at=self._now + max(0.0, initial_delay),
            period=period,
            label=label,
        )
        self._push(handle, callback)
        return handle

    def cancel(self, handle: Optional[TimerHandle]) -> bool:
        if handle is None:
            return False
        # Queue entry is skipped lazily when popped
        return handle.mark_cancelled()

    def shutdown(self) -> int:
        count = sum(1 for _, _, h, _ in self._queue if h.mark_cancelled())
        self._queue.clear()
        return count

    async def advance(self, seconds: float) -> int:
        """
        Move the clock forward, firing every callback that becomes due.

        Returns the number of callbacks invoked.
        """
        if seconds < 0:
            raise ValueError("Cannot move the clock backwards")

        target = self._now + seconds
        fired = 0

        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            if not handle.active:
                continue

            self._now = due
            handle.mark_fired()
            handle.running = True
            try:
                await callback()
            finally:
                handle.running = False
            fired += 1

            if handle.kind is TimerKind.REPEATING and handle.active:
                handle.due_at = due + (handle.period or 0.0)
                self._push(handle, callback)

        self._now = target
        return fired

    @property
    def pending(self) -> int:
        """Handles still waiting to fire."""
        return sum(1 for _, _, h, _ in self._queue if h.active)

    def _push(self, handle: TimerHandle, callback: TimerCallback) -> None:
        heapq.heappush(self._queue, (handle.due_at, next(self._seq), handle, callback))
