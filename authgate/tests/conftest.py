"""
Shared fixtures: a recording presentation, a fake clock and a gate
wired over the in-memory backend.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import pytest

from authgate.core.config import CredentialConfig, GateConfig
from authgate.core.types import Identity, ItemStack, Orientation, TransientState, Vector3
from authgate.credentials.backends import InMemoryCredentialBackend
from authgate.credentials.store import CredentialStore
from authgate.observability.metrics import GateMetrics, MetricsCollector
from authgate.scheduling.manual import ManualScheduler
from authgate.session.gate import AuthGate
from authgate.session.presentation import Presentation, TitleTiming
from authgate.session.registry import SessionRegistry
from authgate.session.snapshot import SnapshotManager


@dataclass
class Title:
    title: str
    subtitle: str
    timing: TitleTiming


@dataclass
class RecordingPresentation(Presentation):
    """Presentation that records every call per identity."""
    states: dict[Identity, TransientState] = field(default_factory=dict)
    messages: dict[Identity, list[str]] = field(default_factory=dict)
    titles: dict[Identity, list[Title]] = field(default_factory=dict)
    disconnects: dict[Identity, str] = field(default_factory=dict)
    fail_messages: bool = False

    def join(self, identity: Identity, state: TransientState) -> None:
        self.states[identity] = state

    def send_message(self, identity: Identity, text: str) -> None:
        if self.fail_messages:
            raise ConnectionError("transport closed")
        self.messages.setdefault(identity, []).append(text)

    def send_title(
        self,
        identity: Identity,
        title: str,
        subtitle: str,
        timing: TitleTiming,
    ) -> None:
        self.titles.setdefault(identity, []).append(Title(title, subtitle, timing))

    def disconnect(self, identity: Identity, reason: str) -> None:
        self.disconnects[identity] = reason
        self.states.pop(identity, None)

    def get_transient_state(self, identity: Identity) -> Optional[TransientState]:
        return self.states.get(identity)

    def set_transient_state(self, identity: Identity, state: TransientState) -> bool:
        if identity not in self.states:
            return False
        self.states[identity] = state
        return True

    def sent(self, identity: Identity) -> list[str]:
        return self.messages.get(identity, [])

    def clear(self, identity: Identity) -> None:
        self.messages.pop(identity, None)
        self.titles.pop(identity, None)


SPAWN = TransientState(
    position=Vector3(12.0, 64.0, -7.0, "overworld"),
    orientation=Orientation(yaw=90.0, pitch=-10.0),
    items=(ItemStack("diamond_sword", 1, 0), ItemStack("bread", 12, 1)),
)


@pytest.fixture
def identity() -> Identity:
    return Identity("0f8e-alice")


@pytest.fixture
def other_identity() -> Identity:
    return Identity("77aa-bob")


@pytest.fixture
def presentation() -> RecordingPresentation:
    return RecordingPresentation()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def backend() -> InMemoryCredentialBackend:
    return InMemoryCredentialBackend()


@pytest.fixture
def credential_config() -> CredentialConfig:
    return CredentialConfig(backend="memory")


@pytest.fixture
def store(backend, credential_config) -> CredentialStore:
    return CredentialStore(backend, credential_config)


@pytest.fixture
def gate_config() -> GateConfig:
    return GateConfig()


@pytest.fixture
def metrics() -> GateMetrics:
    return GateMetrics(MetricsCollector())


@pytest.fixture
def gate(store, presentation, scheduler, gate_config, metrics) -> AuthGate:
    registry = SessionRegistry(scheduler)
    snapshots = SnapshotManager(
        presentation,
        gate_config.holding_position,
        isolate=gate_config.isolate_on_gate,
    )
    return AuthGate(
        registry,
        store,
        snapshots,
        presentation,
        scheduler,
        gate_config,
        metrics,
    )
