"""
Timer Coordinator: Kick and Reminder Timers per Identity

Each gated identity owns exactly two handles:

    kick      one-shot, fires once `kick_after` seconds after arming
    reminder  repeating, every `reminder_every` seconds

Callbacks capture only the identity key and look the session up again
when they fire; a session that has been removed or authenticated in
the meantime makes the callback a no-op. The gate handlers re-check
under the per-identity lock as well, since the guard here runs
without it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

from authgate.core.types import Identity
from authgate.observability.logging import StructuredLogger
from authgate.scheduling.protocols import Scheduler, TimerHandle

logger = StructuredLogger("authgate.timers")

ReminderPredicate = Callable[[float], bool]
SessionGuard = Callable[[Identity], bool]
KickHandler = Callable[[Identity], Awaitable[None]]
ReminderHandler = Callable[[Identity, int], Awaitable[None]]


def reminder_schedule(kick_after: float, marks: Iterable[int]) -> ReminderPredicate:
    """
    Build a predicate true only at the listed remaining-seconds marks.

    Remaining time is rounded to whole seconds so a tick landing a
    fraction early or late still matches its mark.

    Example:
        >>> due = reminder_schedule(60.0, (45, 30, 15))
        >>> due(15.0), due(20.0)
        (True, False)
    """
    wanted = frozenset(int(m) for m in marks)

    def predicate(elapsed: float) -> bool:
        return round(kick_after - elapsed) in wanted

    return predicate


@dataclass(frozen=True, slots=True)
class ArmedTimers:
    """The pair of handles armed for one identity."""
    identity: Identity
    kick: TimerHandle
    reminder: TimerHandle
    kick_after: float
    started_at: float


class TimerCoordinator:
    """
    Arms and cancels kick/reminder timers.

    Usage:
        timers = TimerCoordinator(scheduler, guard, on_kick, on_reminder)
        armed = timers.arm(identity, 150.0, 30.0, reminder_schedule(150.0, marks))
        ...
        timers.cancel(identity)   # idempotent
    """

    __slots__ = ("_scheduler", "_guard", "_on_kick", "_on_reminder", "_armed")

    def __init__(
        self,
        scheduler: Scheduler,
        guard: SessionGuard,
        on_kick: KickHandler,
        on_reminder: ReminderHandler,
    ) -> None:
        self._scheduler = scheduler
        self._guard = guard
        self._on_kick = on_kick
        self._on_reminder = on_reminder
        self._armed: dict[Identity, ArmedTimers] = {}

    def arm(
        self,
        identity: Identity,
        kick_after: float,
        reminder_every: float,
        reminder_predicate: ReminderPredicate,
        started_at: Optional[float] = None,
    ) -> ArmedTimers:
        """
        Schedule the kick and reminder for `identity`.

        Any timers already armed for it are cancelled first. Elapsed
        time for the reminder predicate is measured from `started_at`
        (defaults to now).
        """
        self.cancel(identity)

        start = self._scheduler.monotonic() if started_at is None else started_at

        async def fire_kick() -> None:
            if not self._guard(identity):
                return
            await self._on_kick(identity)

        async def fire_reminder() -> None:
            if not self._guard(identity):
                return
            elapsed = self._scheduler.monotonic() - start
            if not reminder_predicate(elapsed):
                return
            remaining = max(0, round(kick_after - elapsed))
            await self._on_reminder(identity, remaining)

        kick = self._scheduler.schedule_once(
            kick_after, fire_kick, label=f"kick:{identity.value}"
        )
        reminder = self._scheduler.schedule_repeating(
            reminder_every,
            reminder_every,
            fire_reminder,
            label=f"reminder:{identity.value}",
        )

        armed = ArmedTimers(
            identity=identity,
            kick=kick,
            reminder=reminder,
            kick_after=kick_after,
            started_at=start,
        )
        self._armed[identity] = armed
        logger.debug("Timers armed", identity=identity.value, kick_after=kick_after)
        return armed

    def cancel(self, identity: Identity) -> bool:
        """
        Cancel both handles and forget them.

        Returns False if nothing was armed. Never raises, including for
        handles that already fired.
        """
        armed = self._armed.pop(identity, None)
        if armed is None:
            return False
        self._scheduler.cancel(armed.kick)
        self._scheduler.cancel(armed.reminder)
        return True

    def armed(self, identity: Identity) -> Optional[ArmedTimers]:
        return self._armed.get(identity)

    def shutdown(self) -> int:
        """Cancel every armed pair. Returns the number of identities affected."""
        identities = list(self._armed)
        for identity in identities:
            self.cancel(identity)
        return len(identities)

    def __len__(self) -> int:
        return len(self._armed)
