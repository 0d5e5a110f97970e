"""
Session Registry: Live Per-Identity Session Table

Holds at most one Session per identity for as long as the entity is
connected. Sessions are in-memory only; nothing here is persisted.

Locking:
    lock(identity) hands out one asyncio.Lock per identity. Every gate
    operation and every timer callback for an identity runs under it,
    so two operations on the same identity never interleave while
    different identities never block each other. Lock objects are
    reference-counted and dropped once nobody holds or awaits them.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from authgate.core.types import Result, Ok, Err, Identity
from authgate.core.errors import GateError
from authgate.credentials.protocols import CredentialRecord
from authgate.scheduling.protocols import Clock, TimerHandle
from authgate.session.snapshot import Snapshot
from authgate.session.state_machine import SessionState, Trigger, next_state


# =============================================================================
# SESSION MODEL
# =============================================================================
@dataclass(slots=True)
class Session:
    """
    Live record of one connected entity.

    AUTHENTICATED sessions never hold timer handles or a snapshot.
    """
    identity: Identity
    join_time: float
    state: SessionState = SessionState.GATED
    kick_timer: Optional[TimerHandle] = None
    reminder_timer: Optional[TimerHandle] = None
    snapshot: Optional[Snapshot] = None
    bound_record: Optional[CredentialRecord] = None
    username: Optional[str] = None

    @property
    def is_gated(self) -> bool:
        return self.state.is_gated

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


# =============================================================================
# SESSION REGISTRY
# =============================================================================
class SessionRegistry:
    """
    In-memory identity → Session map.

    Usage:
        registry = SessionRegistry(clock)

        async with registry.lock(identity):
            result = registry.create(identity)
            if result.is_ok():
                session = result.unwrap()
    """

    __slots__ = ("_clock", "_sessions", "_locks")

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._sessions: dict[Identity, Session] = {}
        self._locks: dict[Identity, _LockEntry] = {}

    # -------------------------------------------------------------------------
    # LOCKING
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def lock(self, identity: Identity) -> AsyncIterator[None]:
        """Per-identity mutual exclusion."""
        entry = self._locks.get(identity)
        if entry is None:
            entry = _LockEntry()
            self._locks[identity] = entry
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(identity) is entry:
                del self._locks[identity]

    @property
    def lock_count(self) -> int:
        """Live lock objects (for tests and metrics)."""
        return len(self._locks)

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def create(self, identity: Identity) -> Result[Session, GateError]:
        """Insert a GATED session. Err(DUPLICATE_SESSION) if present."""
        if identity in self._sessions:
            return Err(GateError.duplicate_session(identity.value))

        session = Session(identity=identity, join_time=self._clock.monotonic())
        self._sessions[identity] = session
        return Ok(session)

    def get(self, identity: Identity) -> Optional[Session]:
        return self._sessions.get(identity)

    def remove(self, identity: Identity) -> bool:
        """Drop a session. False if there was none."""
        return self._sessions.pop(identity, None) is not None

    def transition_to_authenticated(
        self,
        identity: Identity,
        username: str,
        trigger: Trigger = Trigger.LOGIN,
    ) -> Result[Session, GateError]:
        """
        Move a GATED session to AUTHENTICATED.

        Clears the snapshot and timer references; the caller must have
        cancelled the timers and consumed the snapshot first.
        """
        session = self._sessions.get(identity)
        if session is None or not session.is_gated:
            return Err(GateError.no_session(identity.value))

        target = next_state(session.state, trigger)
        if target.is_err():
            return Err(GateError.no_session(identity.value).with_context(
                reason=target.error,
            ))

        session.state = target.unwrap()
        session.username = username
        session.snapshot = None
        session.kick_timer = None
        session.reminder_timer = None
        return Ok(session)

    # -------------------------------------------------------------------------
    # QUERIES
    # -------------------------------------------------------------------------

    def is_gated(self, identity: Identity) -> bool:
        session = self._sessions.get(identity)
        return session is not None and session.is_gated

    def identities(self) -> list[Identity]:
        return list(self._sessions)

    def gated_count(self) -> int:
        return sum(1 for s in self._sessions.values() if s.is_gated)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, identity: object) -> bool:
        return identity in self._sessions
