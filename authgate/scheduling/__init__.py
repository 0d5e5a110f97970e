"""
Scheduling module: host timer abstraction.

Provides:
- Scheduler / Clock protocols and TimerHandle
- AsyncioScheduler: task-backed timers on the running loop
- ManualScheduler: deterministic fake clock
"""

from authgate.scheduling.protocols import (
    Clock,
    HandleState,
    Scheduler,
    TimerCallback,
    TimerHandle,
    TimerKind,
)
from authgate.scheduling.asyncio_scheduler import AsyncioScheduler
from authgate.scheduling.manual import ManualScheduler

__all__ = [
    "Clock",
    "HandleState",
    "Scheduler",
    "TimerCallback",
    "TimerHandle",
    "TimerKind",
    "AsyncioScheduler",
    "ManualScheduler",
]
