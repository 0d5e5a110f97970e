"""
Scheduler Protocol: Host Timer Abstraction

The gate never touches the host's tick loop directly. It asks a
Scheduler for one-shot and repeating callbacks and receives opaque
TimerHandle objects back.

Handle lifecycle:
    PENDING   → FIRED      : one-shot callback started
    PENDING   → CANCELLED  : cancel() before firing
    FIRED / CANCELLED are final; cancel() on them is a no-op.

Repeating handles stay PENDING between firings until cancelled.
"""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Awaitable, Callable, Optional

# Timer callbacks are zero-argument coroutine functions
TimerCallback = Callable[[], Awaitable[None]]

_handle_ids = itertools.count(1)


class TimerKind(Enum):
    ONCE = auto()
    REPEATING = auto()


class HandleState(Enum):
    PENDING = auto()
    FIRED = auto()
    CANCELLED = auto()


@dataclass(eq=False)
class TimerHandle:
    """
    Opaque handle to a scheduled callback.

    Owned by exactly one session; compared by identity.
    """
    kind: TimerKind
    due_at: float
    period: Optional[float] = None
    label: str = ""
    handle_id: int = field(default_factory=lambda: next(_handle_ids))
    state: HandleState = HandleState.PENDING
    running: bool = field(default=False, repr=False)

    @property
    def active(self) -> bool:
        """True while the callback may still fire."""
        return self.state is HandleState.PENDING

    @property
    def cancelled(self) -> bool:
        return self.state is HandleState.CANCELLED

    @property
    def fired(self) -> bool:
        return self.state is HandleState.FIRED

    def mark_fired(self) -> None:
        if self.kind is TimerKind.ONCE and self.state is HandleState.PENDING:
            self.state = HandleState.FIRED

    def mark_cancelled(self) -> bool:
        """Flip to CANCELLED. Returns False if already final."""
        if self.state is not HandleState.PENDING:
            return False
        self.state = HandleState.CANCELLED
        return True


class Clock(ABC):
    """Monotonic time source in seconds."""

    @abstractmethod
    def monotonic(self) -> float:
        ...


class Scheduler(Clock):
    """
    Host scheduling primitive.

    Implementations must guarantee that cancel() is idempotent and
    never raises, and that cancelling a handle whose callback is
    currently running does not interrupt that callback.
    """

    @abstractmethod
    def schedule_once(
        self,
        delay: float,
        callback: TimerCallback,
        label: str = "",
    ) -> TimerHandle:
        """Run callback once after delay seconds."""

    @abstractmethod
    def schedule_repeating(
        self,
        initial_delay: float,
        period: float,
        callback: TimerCallback,
        label: str = "",
    ) -> TimerHandle:
        """Run callback after initial_delay, then every period seconds."""

    @abstractmethod
    def cancel(self, handle: Optional[TimerHandle]) -> bool:
        """
        Cancel a handle.

        Returns True only if a pending callback was prevented.
        """

    @abstractmethod
    def shutdown(self) -> int:
        """Cancel every outstanding handle. Returns count cancelled."""
