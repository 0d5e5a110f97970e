"""
Presentation Protocol: Host Transport Seam

Everything the gate shows to, or does to, a connected entity goes
through this interface: chat lines, on-screen titles, disconnects and
the transient state (position, facing, items) used for isolation.

Implementations may raise; the gate logs and ignores such failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from authgate.core.types import Identity, TransientState
from authgate.core import constants as C


@dataclass(frozen=True, slots=True)
class TitleTiming:
    """Title display timing, in host ticks."""
    fade_in: int
    stay: int
    fade_out: int

    @classmethod
    def gate(cls) -> TitleTiming:
        return cls(*C.GATE_TITLE_TIMING)

    @classmethod
    def reminder(cls) -> TitleTiming:
        return cls(*C.REMINDER_TITLE_TIMING)


class Presentation(ABC):
    """Host-side presentation transport."""

    @abstractmethod
    def send_message(self, identity: Identity, text: str) -> None:
        """Send a chat line."""

    @abstractmethod
    def send_title(
        self,
        identity: Identity,
        title: str,
        subtitle: str,
        timing: TitleTiming,
    ) -> None:
        """Show an on-screen title; empty strings clear it."""

    @abstractmethod
    def disconnect(self, identity: Identity, reason: str) -> None:
        """Kick the entity with a reason."""

    @abstractmethod
    def get_transient_state(self, identity: Identity) -> Optional[TransientState]:
        """Current transient state, or None if the entity is gone."""

    @abstractmethod
    def set_transient_state(self, identity: Identity, state: TransientState) -> bool:
        """Apply transient state. False if the entity is gone."""
