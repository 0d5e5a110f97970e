"""
Integration Tests: Authentication Gate

Drives AuthGate against the fake clock, the in-memory backend and a
recording presentation.

Tests:
    - Connect → register/login → authenticated, with state restored
    - Kick at the grace deadline and reminder cadence
    - Every rejection sends exactly one line and leaves the entity gated
    - Chat and command restrictions
    - Account management for authenticated sessions
    - Shutdown and disconnect
    - Operations racing on one identity
"""

import asyncio

import pytest

from authgate.api import messages as M
from authgate.core.errors import ErrorCode, StorageError
from authgate.core.types import Err
from authgate.credentials.backends import InMemoryCredentialBackend
from authgate.credentials.protocols import Collection
from authgate.session.state_machine import SessionState
from authgate.tests.conftest import SPAWN


def run(coro):
    return asyncio.run(coro)


class FlakyBackend(InMemoryCredentialBackend):
    """
    In-memory backend whose reads or writes can be switched off.

    With `yielding` set every call gives up the event loop once, the
    way a network backend would, so other tasks can interleave.
    """

    def __init__(self):
        super().__init__()
        self.fail_reads = False
        self.fail_writes = False
        self.fail_writes_to = set()
        self.yielding = False
        self.closed = False

    async def _io(self):
        if self.yielding:
            await asyncio.sleep(0)

    async def get(self, collection, key):
        await self._io()
        if self.fail_reads:
            return Err(StorageError.unavailable("get", str(collection)))
        return await super().get(collection, key)

    async def exists(self, collection, key):
        await self._io()
        if self.fail_reads:
            return Err(StorageError.unavailable("exists", str(collection)))
        return await super().exists(collection, key)

    async def put(self, collection, key, data):
        await self._io()
        if self.fail_writes or collection in self.fail_writes_to:
            return Err(StorageError.unavailable("put", str(collection)))
        return await super().put(collection, key, data)

    async def delete(self, collection, key):
        await self._io()
        return await super().delete(collection, key)

    async def close(self):
        self.closed = True


@pytest.fixture
def backend():
    return FlakyBackend()


async def connect(gate, presentation, identity, state=SPAWN):
    presentation.join(identity, state)
    return await gate.on_connect(identity)


async def registered(gate, presentation, identity, username="alice", password="secret1"):
    """Connect, register, then drop the connection so the binding remains."""
    await connect(gate, presentation, identity)
    assert (await gate.register(identity, username, password, password)).is_ok()
    await gate.on_disconnect(identity)
    presentation.clear(identity)


class TestConnect:
    """Tests for on_connect / on_disconnect."""

    def test_connect_gates_and_isolates(self, gate, presentation, identity):
        async def scenario():
            session = (await connect(gate, presentation, identity)).unwrap()

            assert session.state is SessionState.GATED
            assert gate.registry.is_gated(identity)
            assert presentation.states[identity].items == ()
            assert presentation.titles[identity][0].title == M.GATE_TITLE
            assert presentation.sent(identity) == [M.WELCOME, M.REGISTER_HINT, M.LOGIN_HINT]

        run(scenario())

    def test_bound_identity_gets_login_hint(self, gate, presentation, identity):
        async def scenario():
            await registered(gate, presentation, identity)
            await connect(gate, presentation, identity)
            assert presentation.sent(identity) == [
                M.WELCOME,
                M.render(M.LOGIN_BOUND_HINT, username="alice"),
            ]

        run(scenario())

    def test_duplicate_connect(self, gate, presentation, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            again = await gate.on_connect(identity)
            assert again.is_err()
            assert again.error.code is ErrorCode.DUPLICATE_SESSION
            assert len(gate.registry) == 1

        run(scenario())

    def test_disconnect_is_idempotent(self, gate, presentation, scheduler, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            assert await gate.on_disconnect(identity) is True
            assert await gate.on_disconnect(identity) is False
            assert len(gate.timers) == 0

            await scheduler.advance(300.0)
            assert identity not in presentation.disconnects

        run(scenario())

    def test_binding_read_failure_keeps_gate(self, gate, presentation, backend, identity):
        async def scenario():
            backend.fail_reads = True
            session = (await connect(gate, presentation, identity)).unwrap()
            assert session.bound_record is None
            assert gate.registry.is_gated(identity)
            assert M.REGISTER_HINT in presentation.sent(identity)

        run(scenario())

    def test_connect_without_transient_state(self, gate, identity):
        async def scenario():
            session = (await gate.on_connect(identity)).unwrap()
            assert session.snapshot is None
            assert gate.registry.is_gated(identity)

        run(scenario())


class TestRegister:
    """Tests for registration through the gate."""

    def test_register_completes_gate(self, gate, presentation, metrics, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            presentation.clear(identity)

            result = await gate.register(identity, "alice", "secret1", "secret1")
            assert result.is_ok()
            assert result.unwrap().state is SessionState.AUTHENTICATED
            assert presentation.states[identity] == SPAWN
            assert presentation.sent(identity) == [M.REGISTER_SUCCESS]
            assert len(gate.timers) == 0
            assert gate.is_authenticated(identity)
            assert gate.allow_chat(identity)
            assert metrics.auth_success.get(method="register") == 1
            assert metrics.sessions_gated.get() == 0

        run(scenario())

    def test_register_binds_identity(self, gate, presentation, store, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            await gate.register(identity, "alice", "secret1", "secret1")
            bound = (await store.get_bound(identity)).unwrap()
            assert bound.username == "alice"
            assert bound.account_count == 1

        run(scenario())

    def test_password_mismatch(self, gate, presentation, metrics, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            presentation.clear(identity)

            result = await gate.register(identity, "alice", "secret1", "secret2")
            assert result.error.code is ErrorCode.PASSWORD_MISMATCH
            assert presentation.sent(identity) == [M.ERROR_MESSAGES[ErrorCode.PASSWORD_MISMATCH]]
            assert gate.registry.is_gated(identity)
            assert metrics.auth_failure.get(code="PASSWORD_MISMATCH") == 1

        run(scenario())

    def test_already_registered(self, gate, presentation, identity):
        async def scenario():
            await registered(gate, presentation, identity)
            await connect(gate, presentation, identity)
            presentation.clear(identity)

            result = await gate.register(identity, "alice2", "secret1", "secret1")
            assert result.error.code is ErrorCode.ALREADY_REGISTERED
            assert len(presentation.sent(identity)) == 1
            assert "alice" in presentation.sent(identity)[0]

        run(scenario())

    def test_username_taken(self, gate, presentation, identity, other_identity):
        async def scenario():
            await registered(gate, presentation, identity)
            await connect(gate, presentation, other_identity)
            presentation.clear(other_identity)

            result = await gate.register(other_identity, "alice", "secret9", "secret9")
            assert result.error.code is ErrorCode.ALREADY_EXISTS
            assert len(presentation.sent(other_identity)) == 1
            assert gate.registry.is_gated(other_identity)

        run(scenario())

    def test_short_password(self, gate, presentation, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            presentation.clear(identity)

            result = await gate.register(identity, "alice", "abc", "abc")
            assert result.error.code is ErrorCode.INVALID_PASSWORD
            assert presentation.sent(identity) == ["Password must be at least 4 characters long!"]

        run(scenario())

    def test_without_session(self, gate, presentation, identity):
        async def scenario():
            result = await gate.register(identity, "alice", "secret1", "secret1")
            assert result.error.code is ErrorCode.NO_SESSION
            assert len(presentation.sent(identity)) == 1

        run(scenario())

    def test_storage_failure_keeps_gated(self, gate, presentation, backend, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            presentation.clear(identity)
            backend.fail_writes = True

            result = await gate.register(identity, "alice", "secret1", "secret1")
            assert result.error.code is ErrorCode.STORAGE_UNAVAILABLE
            assert presentation.sent(identity) == [
                M.ERROR_MESSAGES[ErrorCode.STORAGE_UNAVAILABLE]
            ]
            assert gate.registry.is_gated(identity)
            assert len(gate.timers) == 1

        run(scenario())

    def test_binding_failure_allows_retry(self, gate, presentation, backend, store, identity):
        """A register that fails part-way leaves nothing behind."""
        async def scenario():
            await connect(gate, presentation, identity)
            backend.fail_writes_to = {Collection.PLAYERS}

            first = await gate.register(identity, "alice", "secret1", "secret1")
            assert first.error.code is ErrorCode.STORAGE_UNAVAILABLE
            assert (await store.exists("alice")).unwrap() is False
            assert (await store.account_count(identity)).unwrap() == 0

            backend.fail_writes_to = set()
            second = await gate.register(identity, "alice", "secret1", "secret1")
            assert second.is_ok()
            assert (await store.account_count(identity)).unwrap() == 1

        run(scenario())

    def test_account_limit_survives_logout(self, gate, presentation, store, metrics, identity):
        """Logging out does not reset the number of accounts an identity may create."""
        async def scenario():
            for n in range(3):
                await connect(gate, presentation, identity)
                result = await gate.register(identity, f"user{n}", "secret1", "secret1")
                assert result.unwrap().state is SessionState.AUTHENTICATED
                assert (await gate.logout(identity)).is_ok()
                await gate.on_disconnect(identity)

            await connect(gate, presentation, identity)
            presentation.clear(identity)
            refused = await gate.register(identity, "user3", "secret1", "secret1")

            assert refused.error.code is ErrorCode.QUOTA_EXCEEDED
            assert presentation.sent(identity) == [
                "You have already created the maximum number of accounts (3)!"
            ]
            assert gate.registry.is_gated(identity)
            assert (await store.exists("user3")).unwrap() is False
            assert (await store.get("user2")).unwrap().account_count == 3
            assert metrics.auth_failure.get(code="QUOTA_EXCEEDED") == 1

        run(scenario())


class TestLogin:
    """Tests for login through the gate."""

    def test_login_with_username(self, gate, presentation, identity, other_identity):
        async def scenario():
            await registered(gate, presentation, identity)
            await connect(gate, presentation, other_identity)
            presentation.clear(other_identity)

            result = await gate.login(other_identity, "alice", "secret1")
            assert result.is_ok()
            assert presentation.sent(other_identity) == [M.LOGIN_SUCCESS]
            assert presentation.states[other_identity] == SPAWN

            bound = (await gate.store.get_bound(other_identity)).unwrap()
            assert bound.username == "alice"

        run(scenario())

    def test_login_uses_binding(self, gate, presentation, metrics, identity):
        async def scenario():
            await registered(gate, presentation, identity)
            await connect(gate, presentation, identity)

            result = await gate.login(identity, None, "secret1")
            assert result.is_ok()
            assert result.unwrap().username == "alice"
            assert metrics.auth_success.get(method="login") == 1

        run(scenario())

    def test_login_trims_password(self, gate, presentation, identity):
        async def scenario():
            await registered(gate, presentation, identity)
            await connect(gate, presentation, identity)
            assert (await gate.login(identity, "alice", "  secret1 ")).is_ok()

        run(scenario())

    def test_wrong_password_stays_gated(self, gate, presentation, metrics, identity):
        async def scenario():
            await registered(gate, presentation, identity)
            await connect(gate, presentation, identity)
            presentation.clear(identity)

            result = await gate.login(identity, "alice", "nope1")
            assert result.error.code is ErrorCode.WRONG_PASSWORD
            assert presentation.sent(identity) == [M.ERROR_MESSAGES[ErrorCode.WRONG_PASSWORD]]
            assert gate.registry.is_gated(identity)
            assert not gate.allow_chat(identity)
            assert metrics.auth_failure.get(code="WRONG_PASSWORD") == 1

        run(scenario())

    def test_unknown_account(self, gate, presentation, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            presentation.clear(identity)

            result = await gate.login(identity, "ghost", "secret1")
            assert result.error.code is ErrorCode.ACCOUNT_NOT_FOUND
            assert presentation.sent(identity) == [M.ERROR_MESSAGES[ErrorCode.ACCOUNT_NOT_FOUND]]

        run(scenario())

    def test_no_username_and_no_binding(self, gate, presentation, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            result = await gate.login(identity, None, "secret1")
            assert result.error.code is ErrorCode.ACCOUNT_NOT_FOUND

        run(scenario())

    def test_already_authenticated(self, gate, presentation, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            await gate.register(identity, "alice", "secret1", "secret1")
            presentation.clear(identity)

            result = await gate.login(identity, "alice", "secret1")
            assert result.error.code is ErrorCode.ALREADY_AUTHENTICATED
            assert presentation.sent(identity) == [
                M.ERROR_MESSAGES[ErrorCode.ALREADY_AUTHENTICATED]
            ]

        run(scenario())

    def test_snapshot_restored_once(self, gate, presentation, identity):
        async def scenario():
            await registered(gate, presentation, identity)
            await connect(gate, presentation, identity)
            session = gate.registry.get(identity)
            snapshot = session.snapshot

            await gate.login(identity, None, "secret1")
            assert snapshot.consumed
            assert session.snapshot is None
            assert presentation.states[identity] == SPAWN

        run(scenario())


class TestConcurrency:
    """Tests for operations racing on one identity while the backend is slow."""

    def test_register_and_login_complete_once(
        self, gate, presentation, backend, metrics, identity, other_identity,
    ):
        async def scenario():
            await registered(gate, presentation, other_identity, username="bob")
            await connect(gate, presentation, identity)
            backend.yielding = True

            results = await asyncio.gather(
                gate.register(identity, "alice", "secret1", "secret1"),
                gate.login(identity, "bob", "secret1"),
            )

            assert [r.is_ok() for r in results].count(True) == 1
            loser = next(r for r in results if r.is_err())
            assert loser.error.code is ErrorCode.ALREADY_AUTHENTICATED
            assert gate.is_authenticated(identity)
            assert (
                metrics.auth_success.get(method="register")
                + metrics.auth_success.get(method="login")
            ) == 2  # bob's own registration plus one of the two racers

        run(scenario())

    def test_kick_waits_for_pending_register(
        self, gate, presentation, scheduler, backend, metrics, identity,
    ):
        async def scenario():
            await connect(gate, presentation, identity)
            backend.yielding = True

            result, _ = await asyncio.gather(
                gate.register(identity, "alice", "secret1", "secret1"),
                scheduler.advance(gate.config.grace_period_s + 1.0),
            )

            assert result.is_ok()
            assert gate.is_authenticated(identity)
            assert identity not in presentation.disconnects
            assert metrics.evictions.get() == 0
            assert presentation.states[identity] == SPAWN

            await scheduler.advance(300.0)
            assert identity not in presentation.disconnects

        run(scenario())

    def test_disconnect_during_register(self, gate, presentation, backend, store, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            backend.yielding = True

            result, removed = await asyncio.gather(
                gate.register(identity, "alice", "secret1", "secret1"),
                gate.on_disconnect(identity),
            )

            assert result.is_ok()
            assert removed is True
            assert identity not in gate.registry
            assert len(gate.timers) == 0
            assert (await store.get_bound(identity)).unwrap().username == "alice"

        run(scenario())


class TestTimers:
    """Tests for kick and reminders through the gate."""

    def test_kick_at_deadline(self, gate, presentation, scheduler, metrics, identity):
        async def scenario():
            await connect(gate, presentation, identity)

            await scheduler.advance(149.0)
            assert identity not in presentation.disconnects

            await scheduler.advance(1.0)
            assert presentation.disconnects[identity] == gate.config.kick_reason
            assert identity not in gate.registry
            assert metrics.evictions.get() == 1
            assert metrics.sessions_gated.get() == 0

            await scheduler.advance(300.0)
            assert metrics.evictions.get() == 1

        run(scenario())

    def test_reminders_at_marks(self, gate, presentation, scheduler, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            presentation.clear(identity)

            await scheduler.advance(200.0)
            assert presentation.sent(identity) == [
                M.render(M.REMINDER_CHAT, seconds=s) for s in (120, 90, 60, 30)
            ]
            assert [t.subtitle for t in presentation.titles[identity]] == [
                M.render(M.REMINDER_SUBTITLE, seconds=s) for s in (120, 90, 60, 30)
            ]

        run(scenario())

    def test_no_kick_after_login(self, gate, presentation, scheduler, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            await scheduler.advance(149.0)
            await gate.register(identity, "alice", "secret1", "secret1")
            presentation.clear(identity)

            await scheduler.advance(300.0)
            assert identity not in presentation.disconnects
            assert presentation.sent(identity) == []
            assert gate.is_authenticated(identity)

        run(scenario())

    def test_kick_discards_snapshot(self, gate, presentation, scheduler, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            snapshot = gate.registry.get(identity).snapshot
            await scheduler.advance(150.0)
            assert snapshot.consumed
            assert identity not in presentation.states

        run(scenario())


class TestRestrictions:
    """Tests for chat and command filtering."""

    def test_gated_chat_denied(self, gate, presentation, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            presentation.clear(identity)
            assert gate.allow_chat(identity) is False
            assert presentation.sent(identity) == [M.CHAT_DENIED]

        run(scenario())

    def test_gated_commands(self, gate, presentation, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            presentation.clear(identity)

            assert gate.allow_command(identity, "/login secret1")
            assert gate.allow_command(identity, "REGISTER a b c")
            assert presentation.sent(identity) == []

            assert gate.allow_command(identity, "/spawn") is False
            assert presentation.sent(identity) == [M.COMMAND_DENIED]

        run(scenario())

    def test_no_session_is_denied(self, gate, identity):
        assert gate.allow_chat(identity) is False
        assert gate.allow_command(identity, "login x") is False

    def test_authenticated_unrestricted(self, gate, presentation, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            await gate.register(identity, "alice", "secret1", "secret1")
            assert gate.allow_command(identity, "/spawn")
            assert gate.allow_chat(identity)

        run(scenario())

    def test_presentation_failures_ignored(self, gate, presentation, identity):
        async def scenario():
            presentation.fail_messages = True
            assert (await connect(gate, presentation, identity)).is_ok()
            assert (await gate.register(identity, "alice", "secret1", "secret1")).is_ok()
            assert gate.is_authenticated(identity)

        run(scenario())


class TestAccountManagement:
    """Tests for operations available once authenticated."""

    def test_change_password(self, gate, presentation, store, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            await gate.register(identity, "alice", "secret1", "secret1")
            presentation.clear(identity)

            wrong = await gate.change_password(identity, "nope1", "secret2", "secret2")
            assert wrong.error.code is ErrorCode.WRONG_PASSWORD

            result = await gate.change_password(identity, "secret1", "secret2", "secret2")
            assert result.is_ok()
            assert (await store.verify("alice", "secret2")).unwrap()
            assert not (await store.verify("alice", "secret1")).unwrap()
            bound = (await store.get_bound(identity)).unwrap()
            assert bound.password_hash == result.unwrap().password_hash
            assert presentation.sent(identity)[-1] == M.PASSWORD_CHANGED

        run(scenario())

    def test_change_password_requires_auth(self, gate, presentation, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            result = await gate.change_password(identity, "a", "secret2", "secret2")
            assert result.error.code is ErrorCode.NOT_AUTHENTICATED

        run(scenario())

    def test_logout(self, gate, presentation, store, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            await gate.register(identity, "alice", "secret1", "secret1")

            assert (await gate.logout(identity)).is_ok()
            assert presentation.disconnects[identity] == M.LOGOUT_REASON
            assert identity not in gate.registry
            assert (await store.get_bound(identity)).unwrap() is None
            assert (await store.exists("alice")).unwrap()

        run(scenario())

    def test_account_info(self, gate, presentation, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            denied = await gate.account_info(identity)
            assert denied.error.code is ErrorCode.NOT_LOGGED_IN

            await gate.register(identity, "alice", "secret1", "secret1")
            presentation.clear(identity)
            record = (await gate.account_info(identity)).unwrap()
            assert record.account_count == 1
            assert presentation.sent(identity) == [
                M.ACCOUNT_HEADER,
                M.render(M.ACCOUNT_NAME, username="alice"),
                M.render(M.ACCOUNT_COUNT, count=1),
                M.ACCOUNT_HINTS,
            ]

        run(scenario())

    def test_reset_password(self, gate, presentation, store, identity):
        async def scenario():
            await registered(gate, presentation, identity)
            new_password = (await gate.reset_password("alice")).unwrap()
            assert len(new_password) == 6 and new_password.isdigit()
            assert (await store.verify("alice", new_password)).unwrap()

            missing = await gate.reset_password("ghost")
            assert missing.error.code is ErrorCode.ACCOUNT_NOT_FOUND

        run(scenario())

    def test_export_record(self, gate, presentation, identity):
        async def scenario():
            await connect(gate, presentation, identity)
            assert gate.export_record(identity) is None

            await gate.register(identity, "alice", "secret1", "secret1")
            exported = gate.export_record(identity)
            assert exported["username"] == "alice"
            assert "passwordHash" not in exported
            assert exported["identity"] != identity.value

        run(scenario())


class TestShutdown:
    """Tests for gate shutdown."""

    def test_shutdown_restores_gated(self, gate, presentation, scheduler, identity, other_identity):
        async def scenario():
            await connect(gate, presentation, identity)
            await connect(gate, presentation, other_identity)
            await gate.register(other_identity, "bob", "secret1", "secret1")

            assert await gate.shutdown() == 2
            assert presentation.states[identity] == SPAWN
            assert len(gate.registry) == 0
            assert len(gate.timers) == 0

            await scheduler.advance(300.0)
            assert presentation.disconnects == {}

        run(scenario())

    def test_shutdown_closes_backend(self, gate, backend):
        async def scenario():
            assert await gate.shutdown() == 0
            assert backend.closed

        run(scenario())
