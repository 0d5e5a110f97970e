"""
Session module: the per-identity authentication lifecycle.

Provides:
- SessionState / transition table
- SessionRegistry with per-identity locking
- SnapshotManager for transient state isolation
- TimerCoordinator for kick/reminder timers
- Presentation protocol (host transport seam)
- AuthGate orchestrating all of the above
"""

from authgate.session.state_machine import (
    SessionState,
    SessionTransition,
    Trigger,
    VALID_TRANSITIONS,
    next_state,
)
from authgate.session.presentation import Presentation, TitleTiming
from authgate.session.snapshot import Snapshot, SnapshotManager
from authgate.session.registry import Session, SessionRegistry
from authgate.session.timers import ArmedTimers, TimerCoordinator, reminder_schedule
from authgate.session.gate import AuthGate

__all__ = [
    "SessionState",
    "SessionTransition",
    "Trigger",
    "VALID_TRANSITIONS",
    "next_state",
    "Presentation",
    "TitleTiming",
    "Snapshot",
    "SnapshotManager",
    "Session",
    "SessionRegistry",
    "ArmedTimers",
    "TimerCoordinator",
    "reminder_schedule",
    "AuthGate",
]
