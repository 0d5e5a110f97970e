"""
Snapshot Manager: Transient State Isolation

On gate entry the entity's position, facing and held items are
captured, then the entity is parked at the holding position with
nothing in hand. On successful authentication the captured state is
re-applied exactly once.

A Snapshot is consumed by either restore() or discard(); whichever
comes first wins and the other becomes a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from authgate.core.types import Identity, TransientState, Vector3
from authgate.observability.logging import StructuredLogger
from authgate.session.presentation import Presentation

logger = StructuredLogger("authgate.snapshot")


@dataclass(eq=False)
class Snapshot:
    """Captured transient state, consumed at most once."""
    identity: Identity
    state: TransientState
    consumed: bool = field(default=False)

    def consume(self) -> bool:
        """Mark consumed. Returns False if it already was."""
        if self.consumed:
            return False
        self.consumed = True
        return True


class SnapshotManager:
    """
    Capture / restore / discard of transient state.

    Usage:
        manager = SnapshotManager(presentation, holding_position, isolate=True)
        snapshot = manager.capture(identity, current_state)
        ...
        manager.restore(identity, snapshot)
    """

    __slots__ = ("_presentation", "_holding_position", "_isolate")

    def __init__(
        self,
        presentation: Presentation,
        holding_position: Vector3,
        isolate: bool = True,
    ) -> None:
        self._presentation = presentation
        self._holding_position = holding_position
        self._isolate = isolate

    def capture(self, identity: Identity, current_state: TransientState) -> Snapshot:
        """
        Store a copy of `current_state` and isolate the entity.

        TransientState is frozen, so holding the reference is a copy.
        """
        snapshot = Snapshot(identity=identity, state=current_state)

        if self._isolate:
            isolated = TransientState(
                position=Vector3(
                    self._holding_position.x,
                    self._holding_position.y,
                    self._holding_position.z,
                    current_state.position.dimension,
                ),
                orientation=current_state.orientation,
                items=(),
            )
            try:
                applied = self._presentation.set_transient_state(identity, isolated)
            except Exception as e:
                logger.warning(
                    "Isolation failed",
                    identity=identity.value,
                    error=str(e),
                )
                applied = False
            if not applied:
                logger.debug("Entity not isolated", identity=identity.value)

        return snapshot

    def restore(self, identity: Identity, snapshot: Optional[Snapshot]) -> bool:
        """
        Re-apply the captured state.

        Returns False, without error, if the snapshot is missing or
        already consumed, or if the entity is gone.
        """
        if snapshot is None or not snapshot.consume():
            return False

        try:
            applied = self._presentation.set_transient_state(identity, snapshot.state)
        except Exception as e:
            logger.warning("Restore failed", identity=identity.value, error=str(e))
            return False
        return bool(applied)

    def discard(self, snapshot: Optional[Snapshot]) -> None:
        """Mark consumed without applying."""
        if snapshot is not None:
            snapshot.consume()
