"""
Credential Store: Account Records Over a Pluggable Backend

Pure data access: no timers, no presentation. Validates and hashes
passwords, enforces the per-identity account quota, and keeps the
by-username, by-identity and per-identity counter collections in step.

Authority:
    The accounts (by-username) collection is authoritative for the
    password hash. The players (by-identity) copy is a convenience
    pointer used to reattach returning entities; it may lag behind a
    password change made from another identity and is never used for
    verification.

Hashing:
    Hex SHA-256 over the whitespace-trimmed password; comparison via
    hmac.compare_digest. Best-effort constant time only.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
from datetime import datetime, timezone
from typing import Any, Optional, Union
from uuid import uuid4

from authgate.core.types import Result, Ok, Err, Identity
from authgate.core.errors import CredentialError, StorageError
from authgate.core.config import CredentialConfig
from authgate.credentials.protocols import (
    Collection,
    CredentialBackend,
    CredentialRecord,
)
from authgate.observability.logging import StructuredLogger

StoreError = Union[CredentialError, StorageError]


# =============================================================================
# PASSWORD HASHING
# =============================================================================
class PasswordHasher:
    """One-way password digest."""

    @staticmethod
    def digest(password: str) -> str:
        return hashlib.sha256(password.encode("utf-8")).hexdigest()

    @classmethod
    def matches(cls, password: str, expected_hash: str) -> bool:
        return hmac.compare_digest(cls.digest(password), expected_hash)


# =============================================================================
# CREDENTIAL STORE
# =============================================================================
class CredentialStore:
    """
    Account persistence and verification.

    Usage:
        store = CredentialStore(InMemoryCredentialBackend(), CredentialConfig())

        result = await store.create("alice", "secret1", identity=identity)
        if result.is_ok():
            record = result.unwrap()

        ok = (await store.verify("alice", "secret1")).unwrap()

    Thread Safety:
        Writes are serialized by one asyncio.Lock so two identities
        racing to register the same username cannot both succeed.
        Reads never take the lock.
    """

    __slots__ = ("_backend", "_config", "_write_lock", "_log")

    def __init__(
        self,
        backend: CredentialBackend,
        config: Optional[CredentialConfig] = None,
    ) -> None:
        self._backend = backend
        self._config = config or CredentialConfig()
        self._write_lock = asyncio.Lock()
        self._log = StructuredLogger("authgate.credentials")

    @property
    def backend(self) -> CredentialBackend:
        return self._backend

    @property
    def config(self) -> CredentialConfig:
        return self._config

    # -------------------------------------------------------------------------
    # VALIDATION
    # -------------------------------------------------------------------------

    def validate_password(self, password: str) -> Result[str, CredentialError]:
        """Return the trimmed password if it is long enough."""
        trimmed = (password or "").strip()
        if len(trimmed) < self._config.min_password_length:
            return Err(CredentialError.invalid_password(self._config.min_password_length))
        return Ok(trimmed)

    def validate_username(self, username: str) -> Result[str, CredentialError]:
        """Return the trimmed username; length-checked in strict mode."""
        trimmed = (username or "").strip()
        if not trimmed:
            return Err(CredentialError.invalid_username(
                trimmed,
                self._config.username_min_length,
                self._config.username_max_length,
            ))
        if self._config.strict_usernames and not (
            self._config.username_min_length
            <= len(trimmed)
            <= self._config.username_max_length
        ):
            return Err(CredentialError.invalid_username(
                trimmed,
                self._config.username_min_length,
                self._config.username_max_length,
            ))
        return Ok(trimmed)

    # -------------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------------

    async def exists(self, username: str) -> Result[bool, StorageError]:
        return await self._backend.exists(Collection.ACCOUNTS, username.strip())

    async def get(self, username: str) -> Result[Optional[CredentialRecord], StorageError]:
        """Fetch the authoritative record for a username."""
        key = username.strip()
        return self._decode(await self._backend.get(Collection.ACCOUNTS, key), key)

    async def get_bound(self, identity: Identity) -> Result[Optional[CredentialRecord], StorageError]:
        """Fetch the record last bound to an identity, if any."""
        return self._decode(
            await self._backend.get(Collection.PLAYERS, identity.value),
            identity.value,
        )

    async def verify(self, username: str, password: str) -> Result[bool, StorageError]:
        """
        Check a password.

        Ok(False) for unknown accounts and mismatches alike; Err only
        when storage cannot be read.
        """
        checked = await self.authenticate(username, password)
        if checked.is_err():
            return checked
        record, matched = checked.unwrap()
        return Ok(record is not None and matched)

    async def authenticate(
        self,
        username: str,
        password: str,
    ) -> Result[tuple[Optional[CredentialRecord], bool], StorageError]:
        """
        Fetch a record and check a password against it.

        Returns Ok((record, matched)); record is None for an unknown
        account, in which case matched is False.
        """
        fetched = await self.get(username)
        if fetched.is_err():
            return fetched

        record = fetched.unwrap()
        if record is None:
            return Ok((None, False))
        return Ok((record, PasswordHasher.matches((password or "").strip(), record.password_hash)))

    async def account_count(self, identity: Identity) -> Result[int, StorageError]:
        """Accounts created so far from `identity`; survives unbind()."""
        fetched = await self._backend.get(Collection.QUOTAS, identity.value)
        if fetched.is_err():
            return fetched
        data = fetched.unwrap()
        if data is None:
            return Ok(0)
        try:
            return Ok(int(data["accounts"]))
        except (KeyError, ValueError, TypeError) as e:
            return Err(StorageError.corruption(identity.value, cause=e))

    # -------------------------------------------------------------------------
    # WRITES
    # -------------------------------------------------------------------------

    async def create(
        self,
        username: str,
        password: str,
        prior_count: Optional[int] = None,
        identity: Optional[Identity] = None,
    ) -> Result[CredentialRecord, StoreError]:
        """
        Register a new account.

        Args:
            username: Account name (primary key)
            password: Plain password; trimmed before hashing
            prior_count: Accounts already created by the owner. When
                omitted it is read from the identity's counter (0 with
                no identity).
            identity: When given, count the account against it and bind
                the new record to it

        Returns:
            Ok(record) on success
            Err(INVALID_PASSWORD | INVALID_USERNAME | ALREADY_EXISTS |
                QUOTA_EXCEEDED | STORAGE_*) otherwise. A failed write
            undoes the writes before it, so a retry sees the same state.
        """
        checked_password = self.validate_password(password)
        if checked_password.is_err():
            return checked_password
        checked_username = self.validate_username(username)
        if checked_username.is_err():
            return checked_username

        name = checked_username.unwrap()

        async with self._write_lock:
            present = await self._backend.exists(Collection.ACCOUNTS, name)
            if present.is_err():
                return present
            if present.unwrap():
                return Err(CredentialError.already_exists(name))

            if prior_count is None:
                counted = await self.account_count(identity) if identity is not None else Ok(0)
                if counted.is_err():
                    return counted
                prior_count = counted.unwrap()

            account_count = prior_count + 1
            if account_count > self._config.max_accounts:
                return Err(CredentialError.quota_exceeded(self._config.max_accounts))

            record = CredentialRecord(
                username=name,
                password_hash=PasswordHasher.digest(checked_password.unwrap()),
                account_count=account_count,
                pseudo_identity=self._pseudo_identity_for(identity),
            )
            written = await self._write_new_account(record, identity, prior_count)
            if written.is_err():
                return written

        self._log.info("Account created", username=name, account_count=account_count)
        return Ok(record)

    async def change_password(
        self,
        username: str,
        new_password: str,
        identity: Optional[Identity] = None,
    ) -> Result[CredentialRecord, StoreError]:
        """
        Replace the password hash, preserving every other field.

        When `identity` is bound to this account its copy is updated too.
        """
        checked = self.validate_password(new_password)
        if checked.is_err():
            return checked

        name = (username or "").strip()

        async with self._write_lock:
            fetched = await self.get(name)
            if fetched.is_err():
                return fetched
            record = fetched.unwrap()
            if record is None:
                return Err(CredentialError.account_not_found(name))

            record.password_hash = PasswordHasher.digest(checked.unwrap())
            record.updated_at = datetime.now(timezone.utc)

            stored = await self._backend.put(Collection.ACCOUNTS, name, record.to_dict())
            if stored.is_err():
                return stored

            if identity is not None:
                bound = await self.get_bound(identity)
                if bound.is_err():
                    return bound
                bound_record = bound.unwrap()
                if bound_record is not None and bound_record.username == name:
                    bound_record.password_hash = record.password_hash
                    bound_record.updated_at = record.updated_at
                    rebound = await self._backend.put(
                        Collection.PLAYERS, identity.value, bound_record.to_dict()
                    )
                    if rebound.is_err():
                        return rebound

        self._log.info("Password changed", username=name)
        return Ok(record)

    async def bind(
        self,
        identity: Identity,
        record: CredentialRecord,
    ) -> Result[None, StorageError]:
        """Store `record` as the identity's last-known account."""
        return await self._backend.put(Collection.PLAYERS, identity.value, record.to_dict())

    async def unbind(self, identity: Identity) -> Result[bool, StorageError]:
        """
        Delete the identity binding. Ok(False) if there was none.

        The identity's account counter is kept, so the quota still
        applies after a logout.
        """
        return await self._backend.delete(Collection.PLAYERS, identity.value)

    async def forget(self, username: str) -> Result[bool, StorageError]:
        """Administrative delete of an account record."""
        async with self._write_lock:
            removed = await self._backend.delete(Collection.ACCOUNTS, username.strip())
        if removed.is_ok() and removed.unwrap():
            self._log.warning("Account forgotten", username=username.strip())
        return removed

    # -------------------------------------------------------------------------
    # EXPORT
    # -------------------------------------------------------------------------

    def export_record(self, record: CredentialRecord, identity: Identity) -> dict[str, Any]:
        """
        Record view for handing to other systems.

        The real identity is replaced by the pseudo identity when that
        feature is enabled. The password hash is never exported.
        """
        data = record.to_dict()
        data.pop("passwordHash", None)
        data["identity"] = (
            record.pseudo_identity
            if self._config.pseudo_identity and record.pseudo_identity
            else identity.value
        )
        return data

    # -------------------------------------------------------------------------
    # INTERNALS
    # -------------------------------------------------------------------------

    def _pseudo_identity_for(self, identity: Optional[Identity]) -> str:
        if self._config.pseudo_identity:
            return str(uuid4())
        return identity.value if identity is not None else ""

    async def _write_new_account(
        self,
        record: CredentialRecord,
        identity: Optional[Identity],
        prior_count: int,
    ) -> Result[None, StorageError]:
        """Account, then counter, then binding; undo on the first failure."""
        name = record.username
        stored = await self._backend.put(Collection.ACCOUNTS, name, record.to_dict())
        if stored.is_err():
            return stored
        if identity is None:
            return Ok(None)

        counted = await self._backend.put(
            Collection.QUOTAS,
            identity.value,
            {"accounts": record.account_count, "updatedAt": record.created_at.isoformat()},
        )
        if counted.is_err():
            await self._undo(Collection.ACCOUNTS, name)
            return counted

        bound = await self._backend.put(Collection.PLAYERS, identity.value, record.to_dict())
        if bound.is_err():
            await self._undo(Collection.ACCOUNTS, name)
            if prior_count:
                restored = await self._backend.put(
                    Collection.QUOTAS,
                    identity.value,
                    {"accounts": prior_count, "updatedAt": record.created_at.isoformat()},
                )
                if restored.is_err():
                    self._log.error(
                        "Account counter not restored",
                        identity=identity.value,
                        error=restored.error.to_dict(),
                    )
            else:
                await self._undo(Collection.QUOTAS, identity.value)
            return bound
        return Ok(None)

    async def _undo(self, collection: Collection, key: str) -> None:
        removed = await self._backend.delete(collection, key)
        if removed.is_err():
            self._log.error(
                "Partial write left behind",
                collection=collection.value,
                key=key,
                error=removed.error.to_dict(),
            )

    def _decode(
        self,
        fetched: Result[Optional[dict[str, Any]], StorageError],
        location: str,
    ) -> Result[Optional[CredentialRecord], StorageError]:
        if fetched.is_err():
            return fetched
        data = fetched.unwrap()
        if data is None:
            return Ok(None)
        try:
            return Ok(CredentialRecord.from_dict(data))
        except (KeyError, ValueError, TypeError) as e:
            return Err(StorageError.corruption(location, cause=e))
