"""
Core Type Definitions for the Authentication Gate

Fallible operations return a Result (Ok or Err) instead of raising;
callers branch on is_ok() / is_err(). The remaining types are the
small frozen values passed between the registry, the timers and the
host presentation layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Literal, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


# =============================================================================
# RESULT
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Operation succeeded with `value`."""

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Operation failed; `error` is normally an AuthGateError.

    unwrap() on an Err raises RuntimeError: check is_err() first.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        raise RuntimeError(f"unwrap() on failed result: {self.error}")

    def unwrap_or(self, default: Any) -> Any:
        return default

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Union[Ok[T], Err[E]]


# =============================================================================
# IDENTITY
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Identity:
    """
    Stable key for a connected entity.

    Derived from the entity's durable unique id (never its display
    name). Distinct from the account username: one identity may own
    several accounts, and the same account may be reached from
    different identities.
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value.strip():
            raise ValueError("Identity must be a non-empty string")

    @classmethod
    def parse(cls, raw: Any) -> Result[Identity, str]:
        """Parse identity from host-provided value."""
        try:
            return Ok(cls(value=str(raw) if raw is not None else ""))
        except ValueError as e:
            return Err(f"Invalid identity: {e}")

    def __str__(self) -> str:
        return self.value


# =============================================================================
# TRANSIENT PRESENTATION STATE
# =============================================================================
@dataclass(frozen=True, slots=True)
class Vector3:
    """World position, including the dimension it lives in."""

    x: float
    y: float
    z: float
    dimension: str = "overworld"

    def to_dict(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y, "z": self.z, "dimension": self.dimension}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Vector3:
        return cls(
            x=float(data["x"]),
            y=float(data["y"]),
            z=float(data["z"]),
            dimension=str(data.get("dimension", "overworld")),
        )


@dataclass(frozen=True, slots=True)
class Orientation:
    """Facing angles in degrees."""

    yaw: float = 0.0
    pitch: float = 0.0


@dataclass(frozen=True, slots=True)
class ItemStack:
    """One held item stack in a given inventory slot."""

    item_type: str
    amount: int = 1
    slot: int = 0

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"amount must be >= 0, got {self.amount}")


@dataclass(frozen=True, slots=True)
class TransientState:
    """
    Presentation state captured on gate entry and restored on exit.

    Items are kept as a tuple so a captured state cannot be mutated
    by the host after the fact.
    """

    position: Vector3
    orientation: Orientation = Orientation()
    items: tuple[ItemStack, ...] = ()

    def with_position(self, position: Vector3) -> TransientState:
        return TransientState(
            position=position,
            orientation=self.orientation,
            items=self.items,
        )
