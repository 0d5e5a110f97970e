"""
AuthGate: Session Authentication Gate for Multiplayer Servers

Holds every newly connected entity in a restricted GATED state until
it registers or logs in to a named account, and evicts it if it does
not do so within a grace period:
- Credential Store: hashed account records on memory, filesystem or Redis
- Session Registry: one live session per identity, per-identity locks
- Timer Coordinator: kick and reminder timers on a pluggable scheduler
- Snapshot Manager: isolates gated entities and restores them afterwards
- Command Router: /register, /login, /changepassword, /logout, /account

License: MIT
"""

from __future__ import annotations

from typing import Optional

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from authgate.core.types import (
    Result,
    Ok,
    Err,
    Identity,
    Vector3,
    Orientation,
    ItemStack,
    TransientState,
)
from authgate.core.errors import (
    ErrorCode,
    AuthGateError,
    CredentialError,
    GateError,
    StorageError,
)
from authgate.core.config import AuthGateConfig
from authgate.credentials import (
    CredentialBackend,
    CredentialRecord,
    CredentialStore,
    create_backend,
    open_backend,
)
from authgate.scheduling import AsyncioScheduler, ManualScheduler, Scheduler
from authgate.session import (
    AuthGate,
    Presentation,
    SessionRegistry,
    SessionState,
    SnapshotManager,
    TitleTiming,
)
from authgate.api import CommandRouter
from authgate.observability.metrics import GateMetrics, MetricsCollector


# =============================================================================
# COMPOSITION ROOT
# =============================================================================
async def build_gate(
    config: AuthGateConfig,
    presentation: Presentation,
    scheduler: Optional[Scheduler] = None,
    backend: Optional[CredentialBackend] = None,
    metrics: Optional[GateMetrics] = None,
) -> Result[AuthGate, AuthGateError]:
    """
    Wire a gate from configuration.

    Args:
        config: Validated root configuration
        presentation: Host transport
        scheduler: Defaults to AsyncioScheduler on the running loop
        backend: Overrides the backend named in config.credentials
        metrics: Defaults to the process-wide collector, or a private
            one when config.observability.metrics_enabled is off

    Returns:
        Ok(gate) or Err(StorageError) if the backend cannot be opened
    """
    validation = config.validate()
    if validation.is_err():
        return Err(AuthGateError(
            code=ErrorCode.INTERNAL_CONFIGURATION_ERROR,
            message=validation.error,
        ))

    if backend is None:
        backend = create_backend(config.credentials)
    opened = await open_backend(backend)
    if opened.is_err():
        return opened

    if metrics is None and not config.observability.metrics_enabled:
        metrics = GateMetrics(MetricsCollector())

    scheduler = scheduler or AsyncioScheduler()
    store = CredentialStore(backend, config.credentials)
    registry = SessionRegistry(scheduler)
    snapshots = SnapshotManager(
        presentation,
        config.gate.holding_position,
        isolate=config.gate.isolate_on_gate,
    )

    return Ok(AuthGate(
        registry,
        store,
        snapshots,
        presentation,
        scheduler,
        config.gate,
        metrics,
    ))


__all__ = [
    # Version
    "__version__",
    # Types
    "Result",
    "Ok",
    "Err",
    "Identity",
    "Vector3",
    "Orientation",
    "ItemStack",
    "TransientState",
    # Errors
    "ErrorCode",
    "AuthGateError",
    "CredentialError",
    "GateError",
    "StorageError",
    # Config
    "AuthGateConfig",
    # Credentials
    "CredentialBackend",
    "CredentialRecord",
    "CredentialStore",
    # Scheduling
    "Scheduler",
    "AsyncioScheduler",
    "ManualScheduler",
    # Session
    "AuthGate",
    "Presentation",
    "SessionRegistry",
    "SessionState",
    "SnapshotManager",
    "TitleTiming",
    # Front end
    "CommandRouter",
    # Composition
    "build_gate",
]
