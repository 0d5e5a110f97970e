"""
Authentication Gate: Per-Identity Challenge Orchestration

Lifecycle:
    on_connect     → Session created GATED, state captured, timers armed
    register/login → credentials checked; success completes the gate
    kick timer     → entity evicted, session discarded
    on_disconnect  → timers cancelled, snapshot discarded, session removed

Completion order is fixed: cancel timers, restore the snapshot, then
mark AUTHENTICATED. Every operation for an identity, including timer
callbacks, runs under registry.lock(identity) and re-checks the
session state after acquiring it.

Every rejected credential operation sends exactly one line to the
entity and returns Err(code); nothing here raises for user error.
"""

from __future__ import annotations

import secrets
from typing import Any, Callable, Optional

from authgate.api import messages as M
from authgate.core import constants as C
from authgate.core.config import GateConfig
from authgate.core.errors import AuthGateError, GateError, StorageError
from authgate.core.types import Result, Ok, Err, Identity
from authgate.credentials.protocols import CredentialRecord
from authgate.credentials.store import CredentialStore
from authgate.observability.logging import StructuredLogger
from authgate.observability.metrics import GateMetrics
from authgate.scheduling.protocols import Scheduler
from authgate.session.presentation import Presentation, TitleTiming
from authgate.session.registry import Session, SessionRegistry
from authgate.session.snapshot import SnapshotManager
from authgate.session.state_machine import Trigger
from authgate.session.timers import TimerCoordinator, reminder_schedule

logger = StructuredLogger("authgate.gate")

_CLEAR_TITLE = TitleTiming(0, 0, 0)


class AuthGate:
    """
    Gate between connection and play.

    Usage:
        gate = AuthGate(registry, store, snapshots, presentation, scheduler, GateConfig())

        await gate.on_connect(identity)
        result = await gate.register(identity, "alice", "secret1", "secret1")
        if result.is_ok():
            assert gate.allow_chat(identity)
    """

    __slots__ = (
        "_registry",
        "_store",
        "_snapshots",
        "_presentation",
        "_scheduler",
        "_config",
        "_metrics",
        "_timers",
        "_reminder_due",
    )

    def __init__(
        self,
        registry: SessionRegistry,
        store: CredentialStore,
        snapshots: SnapshotManager,
        presentation: Presentation,
        scheduler: Scheduler,
        config: Optional[GateConfig] = None,
        metrics: Optional[GateMetrics] = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._snapshots = snapshots
        self._presentation = presentation
        self._scheduler = scheduler
        self._config = config or GateConfig()
        self._metrics = metrics or GateMetrics()
        self._timers = TimerCoordinator(
            scheduler,
            guard=registry.is_gated,
            on_kick=self._on_kick_timeout,
            on_reminder=self._on_reminder,
        )
        self._reminder_due = reminder_schedule(
            self._config.grace_period_s,
            self._config.reminder_marks,
        )

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def timers(self) -> TimerCoordinator:
        return self._timers

    @property
    def config(self) -> GateConfig:
        return self._config

    # -------------------------------------------------------------------------
    # CONNECT / DISCONNECT
    # -------------------------------------------------------------------------

    async def on_connect(self, identity: Identity) -> Result[Session, AuthGateError]:
        """
        Put a newly connected entity behind the gate.

        A storage failure while loading the identity binding does not
        stop the gate; the entity is treated as unbound.
        """
        async with self._registry.lock(identity):
            created = self._registry.create(identity)
            if created.is_err():
                logger.warning("Duplicate connect", identity=identity.value)
                return created
            session = created.unwrap()

            bound = await self._store.get_bound(identity)
            if bound.is_err():
                logger.error(
                    "Cannot load identity binding",
                    identity=identity.value,
                    error=bound.error.to_dict(),
                )
            else:
                session.bound_record = bound.unwrap()

            current = self._call(self._presentation.get_transient_state, identity)
            if current is not None:
                session.snapshot = self._snapshots.capture(identity, current)

            armed = self._timers.arm(
                identity,
                self._config.grace_period_s,
                self._config.reminder_interval_s,
                self._reminder_due,
                started_at=session.join_time,
            )
            session.kick_timer = armed.kick
            session.reminder_timer = armed.reminder
            self._update_gauge()

            self._call(
                self._presentation.send_title,
                identity, M.GATE_TITLE, "", TitleTiming.gate(),
            )
            self._send(identity, M.WELCOME)
            if session.bound_record is not None:
                self._send(identity, M.render(
                    M.LOGIN_BOUND_HINT, username=session.bound_record.username,
                ))
            else:
                self._send(identity, M.REGISTER_HINT)
                self._send(identity, M.LOGIN_HINT)

        logger.info(
            "Session gated",
            identity=identity.value,
            bound=session.bound_record is not None,
        )
        return Ok(session)

    async def on_disconnect(self, identity: Identity) -> bool:
        """Tear down any session for `identity`. Idempotent."""
        async with self._registry.lock(identity):
            removed = self._teardown(identity)

        if removed:
            logger.info("Session closed", identity=identity.value)
        return removed

    # -------------------------------------------------------------------------
    # CREDENTIAL SUBMISSION
    # -------------------------------------------------------------------------

    async def register(
        self,
        identity: Identity,
        username: str,
        password: str,
        confirm: str,
    ) -> Result[Session, AuthGateError]:
        """Create an account and complete the gate."""
        async with self._registry.lock(identity):
            checked = self._require_gated(identity)
            if checked.is_err():
                return self._reject(identity, checked.error, "register")
            session = checked.unwrap()

            if password != confirm:
                return self._reject(identity, GateError.password_mismatch(), "register")

            if session.bound_record is not None:
                return self._reject(
                    identity,
                    GateError.already_registered(
                        identity.value, session.bound_record.username,
                    ),
                    "register",
                )

            # Counted against the identity's stored total, kept across logouts
            created = await self._store.create(username, password, identity=identity)
            if created.is_err():
                return self._reject(identity, created.error, "register")

            record = created.unwrap()
            session.bound_record = record
            completed = self._complete(session, record.username, Trigger.REGISTER)

        if completed.is_ok():
            self._send(identity, M.REGISTER_SUCCESS)
        return completed

    async def login(
        self,
        identity: Identity,
        username: Optional[str],
        password: str,
    ) -> Result[Session, AuthGateError]:
        """
        Verify an existing account and complete the gate.

        With no username, the account bound to this identity is used.
        """
        async with self._registry.lock(identity):
            checked = self._require_gated(identity)
            if checked.is_err():
                return self._reject(identity, checked.error, "login")
            session = checked.unwrap()

            name = (username or "").strip()
            if not name and session.bound_record is not None:
                name = session.bound_record.username
            if not name:
                return self._reject(identity, GateError.account_not_found(None), "login")

            checked_password = await self._store.authenticate(name, password)
            if checked_password.is_err():
                return self._reject(identity, checked_password.error, "login")
            record, matched = checked_password.unwrap()
            if record is None:
                return self._reject(identity, GateError.account_not_found(name), "login")
            if not matched:
                return self._reject(identity, GateError.wrong_password(name), "login")

            bound = await self._store.bind(identity, record)
            if bound.is_err():
                return self._reject(identity, bound.error, "login")

            session.bound_record = record
            completed = self._complete(session, record.username, Trigger.LOGIN)

        if completed.is_ok():
            self._send(identity, M.LOGIN_SUCCESS)
        return completed

    # -------------------------------------------------------------------------
    # ACCOUNT MANAGEMENT (AUTHENTICATED ONLY)
    # -------------------------------------------------------------------------

    async def change_password(
        self,
        identity: Identity,
        old_password: str,
        new_password: str,
        confirm: str,
    ) -> Result[CredentialRecord, AuthGateError]:
        async with self._registry.lock(identity):
            checked = self._require_authenticated(identity)
            if checked.is_err():
                return self._reject(identity, checked.error, "changepassword")
            session = checked.unwrap()

            if new_password != confirm:
                return self._reject(identity, GateError.password_mismatch(), "changepassword")

            verified = await self._store.verify(session.username, old_password)
            if verified.is_err():
                return self._reject(identity, verified.error, "changepassword")
            if not verified.unwrap():
                return self._reject(
                    identity, GateError.wrong_password(session.username), "changepassword",
                )

            changed = await self._store.change_password(
                session.username, new_password, identity=identity,
            )
            if changed.is_err():
                return self._reject(identity, changed.error, "changepassword")
            session.bound_record = changed.unwrap()

        self._send(identity, M.PASSWORD_CHANGED)
        logger.info("Password changed", identity=identity.value)
        return changed

    async def logout(self, identity: Identity) -> Result[None, AuthGateError]:
        """
        Forget the identity binding and disconnect.

        The entity has to reconnect and pass through the gate again.
        """
        async with self._registry.lock(identity):
            checked = self._require_authenticated(identity)
            if checked.is_err():
                return self._reject(identity, checked.error, "logout")

            unbound = await self._store.unbind(identity)
            if unbound.is_err():
                return self._reject(identity, unbound.error, "logout")

            self._send(identity, M.LOGGED_OUT)
            self._call(self._presentation.disconnect, identity, M.LOGOUT_REASON)
            self._teardown(identity)

        logger.info("Logged out", identity=identity.value)
        return Ok(None)

    async def account_info(self, identity: Identity) -> Result[CredentialRecord, AuthGateError]:
        """Show the authenticated account's name and account count."""
        async with self._registry.lock(identity):
            checked = self._require_authenticated(identity)
            if checked.is_err():
                error = GateError.not_logged_in(identity.value)
                return self._reject(identity, error, "account")
            session = checked.unwrap()

            fetched = await self._store.get(session.username)
            if fetched.is_err():
                return self._reject(identity, fetched.error, "account")
            record = fetched.unwrap() or session.bound_record
            if record is None:
                return self._reject(identity, GateError.not_logged_in(identity.value), "account")

        self._send(identity, M.ACCOUNT_HEADER)
        self._send(identity, M.render(M.ACCOUNT_NAME, username=record.username))
        self._send(identity, M.render(M.ACCOUNT_COUNT, count=record.account_count))
        self._send(identity, M.ACCOUNT_HINTS)
        return Ok(record)

    async def reset_password(self, username: str) -> Result[str, AuthGateError]:
        """
        Operator reset: replace an account's password with random digits.

        Returns the new plain password so the caller can relay it.
        """
        new_password = "".join(
            secrets.choice("0123456789") for _ in range(C.RESET_PASSWORD_DIGITS)
        )
        changed = await self._store.change_password(username, new_password)
        if changed.is_err():
            return Err(changed.error)

        logger.warning("Password reset by operator", username=username.strip())
        return Ok(new_password)

    def export_record(self, identity: Identity) -> Optional[dict[str, Any]]:
        """Exportable view of the account an authenticated identity is using."""
        session = self._registry.get(identity)
        if session is None or not session.is_authenticated or session.bound_record is None:
            return None
        return self._store.export_record(session.bound_record, identity)

    # -------------------------------------------------------------------------
    # RESTRICTIONS
    # -------------------------------------------------------------------------

    def allow_chat(self, identity: Identity) -> bool:
        """Chat is allowed only for authenticated sessions."""
        session = self._registry.get(identity)
        if session is not None and session.is_authenticated:
            return True
        self._send(identity, M.CHAT_DENIED)
        return False

    def allow_command(self, identity: Identity, command: str) -> bool:
        """
        Authenticated sessions may run anything; gated ones only the
        allow-listed commands. Entities without a session may run none.
        """
        session = self._registry.get(identity)
        if session is not None:
            if session.is_authenticated:
                return True
            if _command_name(command) in self._config.allowed_commands:
                return True
        self._send(identity, M.COMMAND_DENIED)
        return False

    def is_authenticated(self, identity: Identity) -> bool:
        session = self._registry.get(identity)
        return session is not None and session.is_authenticated

    # -------------------------------------------------------------------------
    # SHUTDOWN
    # -------------------------------------------------------------------------

    async def shutdown(self) -> int:
        """
        Cancel all timers, put gated entities back where they were and
        close the credential backend.

        Returns the number of sessions dropped.
        """
        dropped = 0
        for identity in self._registry.identities():
            async with self._registry.lock(identity):
                session = self._registry.get(identity)
                if session is None:
                    continue
                self._timers.cancel(identity)
                if session.is_gated:
                    self._snapshots.restore(identity, session.snapshot)
                self._registry.remove(identity)
                dropped += 1
        self._timers.shutdown()
        self._update_gauge()
        await self._store.backend.close()
        logger.info("Gate shut down", sessions=dropped)
        return dropped

    # -------------------------------------------------------------------------
    # TIMER HANDLERS
    # -------------------------------------------------------------------------

    async def _on_kick_timeout(self, identity: Identity) -> None:
        async with self._registry.lock(identity):
            if not self._registry.is_gated(identity):
                return
            self._call(self._presentation.disconnect, identity, self._config.kick_reason)
            self._teardown(identity)
            self._metrics.evictions.inc()

        logger.info("Session evicted", identity=identity.value)

    async def _on_reminder(self, identity: Identity, remaining: int) -> None:
        async with self._registry.lock(identity):
            if not self._registry.is_gated(identity):
                return
            self._send(identity, M.render(M.REMINDER_CHAT, seconds=remaining))
            self._call(
                self._presentation.send_title,
                identity,
                M.REMINDER_TITLE,
                M.render(M.REMINDER_SUBTITLE, seconds=remaining),
                TitleTiming.reminder(),
            )
        logger.debug("Reminder sent", identity=identity.value, remaining=remaining)

    # -------------------------------------------------------------------------
    # INTERNALS (caller holds the identity lock)
    # -------------------------------------------------------------------------

    def _complete(
        self,
        session: Session,
        username: str,
        trigger: Trigger,
    ) -> Result[Session, AuthGateError]:
        identity = session.identity
        self._timers.cancel(identity)
        self._snapshots.restore(identity, session.snapshot)

        transitioned = self._registry.transition_to_authenticated(identity, username, trigger)
        if transitioned.is_err():
            return transitioned

        self._call(self._presentation.send_title, identity, "", "", _CLEAR_TITLE)
        self._metrics.auth_success.inc(method=trigger.value)
        self._update_gauge()
        logger.info(
            "Session authenticated",
            identity=identity.value,
            username=username,
            method=trigger.value,
        )
        return transitioned

    def _teardown(self, identity: Identity) -> bool:
        session = self._registry.get(identity)
        if session is None:
            return False
        self._timers.cancel(identity)
        self._snapshots.discard(session.snapshot)
        session.snapshot = None
        session.kick_timer = None
        session.reminder_timer = None
        self._registry.remove(identity)
        self._update_gauge()
        return True

    def _require_gated(self, identity: Identity) -> Result[Session, GateError]:
        session = self._registry.get(identity)
        if session is None:
            return Err(GateError.no_session(identity.value))
        if session.is_authenticated:
            return Err(GateError.already_authenticated(identity.value))
        return Ok(session)

    def _require_authenticated(self, identity: Identity) -> Result[Session, GateError]:
        session = self._registry.get(identity)
        if session is None or not session.is_authenticated:
            return Err(GateError.not_authenticated(identity.value))
        return Ok(session)

    def _reject(self, identity: Identity, error: AuthGateError, operation: str) -> Err:
        self._send(identity, M.describe(error))
        self._metrics.auth_failure.inc(code=error.code.name)
        if isinstance(error, StorageError):
            logger.error(
                "Storage failure",
                identity=identity.value,
                operation=operation,
                error=error.to_dict(),
            )
        else:
            logger.info(
                "Operation rejected",
                identity=identity.value,
                operation=operation,
                code=error.code.name,
            )
        return Err(error)

    def _update_gauge(self) -> None:
        self._metrics.sessions_gated.set(float(self._registry.gated_count()))

    def _send(self, identity: Identity, text: str) -> None:
        self._call(self._presentation.send_message, identity, text)

    def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Invoke a presentation method; failures are logged and ignored."""
        try:
            return fn(*args)
        except Exception as e:
            logger.warning(
                "Presentation call failed",
                call=getattr(fn, "__name__", "?"),
                error=str(e),
            )
            return None


def _command_name(command: str) -> str:
    parts = command.strip().lstrip("/").split()
    return parts[0].lower() if parts else ""
