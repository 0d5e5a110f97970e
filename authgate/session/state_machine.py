"""
Gate State Machine: Two-State Authentication Lifecycle

States:
    GATED         → Connected, movement/chat/commands restricted
    AUTHENTICATED → Proved ownership of an account (terminal)

Transitions:
    GATED → AUTHENTICATED : REGISTER (new account created)
    GATED → AUTHENTICATED : LOGIN    (existing account verified)

There is no edge back to GATED. Eviction and disconnect remove the
session outright instead of moving it to a further state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from authgate.core.types import Result, Ok, Err


# =============================================================================
# SESSION STATE ENUMERATION
# =============================================================================
class SessionState(Enum):
    """Session lifecycle states."""
    GATED = auto()
    AUTHENTICATED = auto()

    @property
    def is_terminal(self) -> bool:
        return self is SessionState.AUTHENTICATED

    @property
    def is_gated(self) -> bool:
        return self is SessionState.GATED


class Trigger(Enum):
    """What completed the challenge."""
    REGISTER = "register"
    LOGIN = "login"


# =============================================================================
# TRANSITION DEFINITIONS
# =============================================================================
@dataclass(frozen=True, slots=True)
class SessionTransition:
    """A valid state transition."""
    from_state: SessionState
    to_state: SessionState
    trigger: Trigger


VALID_TRANSITIONS: frozenset[SessionTransition] = frozenset({
    SessionTransition(SessionState.GATED, SessionState.AUTHENTICATED, Trigger.REGISTER),
    SessionTransition(SessionState.GATED, SessionState.AUTHENTICATED, Trigger.LOGIN),
})


def next_state(current: SessionState, trigger: Trigger) -> Result[SessionState, str]:
    """
    Resolve the target state for a trigger.

    Returns:
        Ok(target) for a valid transition
        Err(message) otherwise
    """
    found: Optional[SessionTransition] = None
    for t in VALID_TRANSITIONS:
        if t.from_state is current and t.trigger is trigger:
            found = t
            break

    if found is None:
        return Err(
            f"No valid transition from {current.name} "
            f"with trigger '{trigger.value}'"
        )
    return Ok(found.to_state)
