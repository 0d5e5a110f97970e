"""
Credential Persistence Protocols

Logical layout (format-agnostic):

    accounts  collection: key = username  → record
    players   collection: key = identity  → record (same shape)
    quotas    collection: key = identity  → {"accounts": int, "updatedAt": ISO-8601}

The players collection lets a returning entity be reattached to its
last-known account without re-entering the username. The quotas
collection counts accounts created from each identity; logging out
removes the players entry but never the count.

Record JSON shape:
    {
        "username":       str,
        "passwordHash":   str,   # hex SHA-256 of trimmed password
        "accountCount":   int,
        "pseudoIdentity": str,
        "createdAt":      ISO-8601,
        "updatedAt":      ISO-8601
    }
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from authgate.core.types import Result
from authgate.core.errors import StorageError


class Collection(Enum):
    """The record collections."""
    ACCOUNTS = "accounts"
    PLAYERS = "players"
    QUOTAS = "quotas"


# =============================================================================
# CREDENTIAL RECORD
# =============================================================================
@dataclass(slots=True)
class CredentialRecord:
    """
    One registered account.

    `username` is the primary key and is case-sensitive. The plain
    password is never stored.
    """
    username: str
    password_hash: str
    account_count: int = 1
    pseudo_identity: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for storage."""
        return {
            "username": self.username,
            "passwordHash": self.password_hash,
            "accountCount": self.account_count,
            "pseudoIdentity": self.pseudo_identity,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CredentialRecord:
        """
        Deserialize from dictionary.

        Raises KeyError/ValueError/TypeError on malformed input; the
        store converts those into StorageError.corruption.
        """
        now = datetime.now(timezone.utc)
        return cls(
            username=str(data["username"]),
            password_hash=str(data["passwordHash"]),
            account_count=int(data.get("accountCount", 1)),
            pseudo_identity=str(data.get("pseudoIdentity", "")),
            created_at=(
                datetime.fromisoformat(data["createdAt"])
                if data.get("createdAt") else now
            ),
            updated_at=(
                datetime.fromisoformat(data["updatedAt"])
                if data.get("updatedAt") else now
            ),
        )


# =============================================================================
# BACKEND INTERFACE
# =============================================================================
class CredentialBackend(ABC):
    """
    Abstract key-value backend over the two record collections.

    Implementations store plain JSON-compatible dicts and never
    interpret them. Every I/O failure is returned as
    Err(StorageError), never raised.
    """

    @abstractmethod
    async def get(
        self,
        collection: Collection,
        key: str,
    ) -> Result[Optional[dict[str, Any]], StorageError]:
        """Fetch a record. Ok(None) when absent."""

    @abstractmethod
    async def put(
        self,
        collection: Collection,
        key: str,
        data: dict[str, Any],
    ) -> Result[None, StorageError]:
        """Insert or overwrite a record."""

    @abstractmethod
    async def delete(
        self,
        collection: Collection,
        key: str,
    ) -> Result[bool, StorageError]:
        """Delete a record. Ok(False) when absent."""

    @abstractmethod
    async def exists(
        self,
        collection: Collection,
        key: str,
    ) -> Result[bool, StorageError]:
        """Check whether a record exists."""

    async def close(self) -> None:
        """Release backend resources. Safe to call multiple times."""
        return None
