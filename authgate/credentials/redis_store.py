"""
Redis Credential Backend
========================

Key-value implementation of CredentialBackend for deployments where
several server processes share one account database.

Key layout:
    {prefix}:account:{username}  → JSON record
    {prefix}:player:{identity}   → JSON record
    {prefix}:quota:{identity}    → JSON account counter

Each record is a plain string value; no TTL is ever applied because
credential records are never implicitly deleted.
"""

from __future__ import annotations

import json
from typing import Any, Optional, TYPE_CHECKING

from authgate.core.types import Result, Ok, Err
from authgate.core.errors import StorageError
from authgate.core import constants as C
from authgate.credentials.protocols import Collection, CredentialBackend

# Lazy import for optional redis dependency
if TYPE_CHECKING:
    import redis.asyncio as aioredis

_KEY_SEGMENT = {
    Collection.ACCOUNTS: "account",
    Collection.PLAYERS: "player",
    Collection.QUOTAS: "quota",
}


class RedisCredentialBackend(CredentialBackend):
    """
    Redis/Valkey credential backend.

    Usage:
        backend = RedisCredentialBackend("redis://localhost:6379/0")
        result = await backend.connect()
        if result.is_err():
            ...

    A pre-built client may be injected instead of a URL; it must
    expose the async get/set/delete/exists/aclose subset of
    redis.asyncio.Redis and return str values.
    """

    __slots__ = ("_url", "_prefix", "_client")

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        prefix: str = C.REDIS_KEY_PREFIX,
        client: Optional["aioredis.Redis"] = None,
    ) -> None:
        self._url = url
        self._prefix = prefix
        self._client = client

    # -------------------------------------------------------------------------
    # CONNECTION MANAGEMENT
    # -------------------------------------------------------------------------

    async def connect(self) -> Result[None, StorageError]:
        """
        Create the client and verify the server answers.

        No-op when a client was injected.
        """
        if self._client is not None:
            return Ok(None)

        import redis.asyncio as aioredis

        try:
            client = aioredis.from_url(self._url, decode_responses=True)
            await client.ping()
        except Exception as e:
            return Err(StorageError.unavailable("connect", self._url, cause=e))

        self._client = client
        return Ok(None)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def key_for(self, collection: Collection, key: str) -> str:
        return f"{self._prefix}:{_KEY_SEGMENT[collection]}:{key}"

    # -------------------------------------------------------------------------
    # CRUD OPERATIONS
    # -------------------------------------------------------------------------

    async def get(
        self,
        collection: Collection,
        key: str,
    ) -> Result[Optional[dict[str, Any]], StorageError]:
        redis_key = self.key_for(collection, key)
        if self._client is None:
            return Err(StorageError.unavailable("get", "not connected"))

        try:
            raw = await self._client.get(redis_key)
        except Exception as e:
            return Err(StorageError.unavailable("get", redis_key, cause=e))

        if raw is None:
            return Ok(None)

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            return Err(StorageError.corruption(redis_key, cause=e))

        if not isinstance(data, dict):
            return Err(StorageError.corruption(redis_key))
        return Ok(data)

    async def put(
        self,
        collection: Collection,
        key: str,
        data: dict[str, Any],
    ) -> Result[None, StorageError]:
        redis_key = self.key_for(collection, key)
        if self._client is None:
            return Err(StorageError.unavailable("put", "not connected"))

        try:
            await self._client.set(redis_key, json.dumps(data))
        except Exception as e:
            return Err(StorageError.unavailable("put", redis_key, cause=e))
        return Ok(None)

    async def delete(
        self,
        collection: Collection,
        key: str,
    ) -> Result[bool, StorageError]:
        redis_key = self.key_for(collection, key)
        if self._client is None:
            return Err(StorageError.unavailable("delete", "not connected"))

        try:
            removed = await self._client.delete(redis_key)
        except Exception as e:
            return Err(StorageError.unavailable("delete", redis_key, cause=e))
        return Ok(bool(removed))

    async def exists(
        self,
        collection: Collection,
        key: str,
    ) -> Result[bool, StorageError]:
        redis_key = self.key_for(collection, key)
        if self._client is None:
            return Err(StorageError.unavailable("exists", "not connected"))

        try:
            count = await self._client.exists(redis_key)
        except Exception as e:
            return Err(StorageError.unavailable("exists", redis_key, cause=e))
        return Ok(bool(count))
