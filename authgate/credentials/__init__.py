"""
Credentials Module: Account Storage Layer
==========================================

Provides:
- CredentialBackend protocol over the accounts/players/quotas collections
- In-memory and filesystem backends (always available)
- Redis backend (redis.asyncio, loaded only when selected)
- CredentialStore: validation, hashing, quota and binding
- Factory functions for backend selection

Example:
    >>> backend = create_backend(CredentialConfig(backend="memory"))
    >>> store = CredentialStore(backend, CredentialConfig(backend="memory"))
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from authgate.core.types import Result, Ok, Err
from authgate.core.errors import StorageError
from authgate.core.config import CredentialConfig
from authgate.credentials.protocols import (
    Collection,
    CredentialBackend,
    CredentialRecord,
)
from authgate.credentials.backends import (
    InMemoryCredentialBackend,
    FileSystemCredentialBackend,
)
from authgate.credentials.store import CredentialStore, PasswordHasher

# Lazy imports for production backends
if TYPE_CHECKING:
    from authgate.credentials.redis_store import RedisCredentialBackend


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def create_backend(config: CredentialConfig) -> CredentialBackend:
    """
    Create the backend named by `config.backend`.

    The returned backend is not yet opened; see `open_backend`.

    Raises:
        ValueError: Unknown backend name (config.validate() rejects it first)
    """
    if config.backend == "memory":
        return InMemoryCredentialBackend()

    if config.backend == "filesystem":
        return FileSystemCredentialBackend(config.data_dir)

    if config.backend == "redis":
        from authgate.credentials.redis_store import RedisCredentialBackend
        return RedisCredentialBackend(config.redis_url, prefix=config.redis_prefix)

    raise ValueError(f"Unknown credential backend '{config.backend}'")


async def open_backend(backend: CredentialBackend) -> Result[None, StorageError]:
    """Prepare a backend for use (create directories, connect)."""
    if isinstance(backend, FileSystemCredentialBackend):
        return backend.initialize()

    from authgate.credentials.redis_store import RedisCredentialBackend
    if isinstance(backend, RedisCredentialBackend):
        return await backend.connect()

    return Ok(None)


async def create_credential_store(
    config: CredentialConfig,
) -> Result[CredentialStore, StorageError]:
    """
    Build and open a CredentialStore from configuration.

    Example:
        >>> result = await create_credential_store(CredentialConfig(backend="filesystem"))
        >>> store = result.unwrap()
    """
    backend = create_backend(config)
    opened = await open_backend(backend)
    if opened.is_err():
        return Err(opened.error)
    return Ok(CredentialStore(backend, config))


__all__ = [
    "Collection",
    "CredentialBackend",
    "CredentialRecord",
    "InMemoryCredentialBackend",
    "FileSystemCredentialBackend",
    "CredentialStore",
    "PasswordHasher",
    "create_backend",
    "open_backend",
    "create_credential_store",
]
