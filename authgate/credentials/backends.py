"""
Credential Backends: In-Memory and FileSystem

FileSystem layout (one JSON document per record):

    {data_dir}/accounts/{username}.json
    {data_dir}/players/{identity}.json
    {data_dir}/quotas/{identity}.json

Keys are percent-encoded so that any username or identity maps to a
single file name inside its collection directory. Writes go to a
temporary file in the same directory and are moved into place with
os.replace, so a reader never observes a half-written record.
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

from authgate.core.types import Result, Ok, Err
from authgate.core.errors import StorageError
from authgate.core import constants as C
from authgate.credentials.protocols import Collection, CredentialBackend
from authgate.observability.logging import StructuredLogger

logger = StructuredLogger(__name__)


class InMemoryCredentialBackend(CredentialBackend):
    """
    Dictionary-backed backend.

    Stores deep copies so callers cannot mutate persisted state.
    """

    __slots__ = ("_data",)

    def __init__(self) -> None:
        self._data: dict[Collection, dict[str, dict[str, Any]]] = {
            collection: {} for collection in Collection
        }

    async def get(
        self,
        collection: Collection,
        key: str,
    ) -> Result[Optional[dict[str, Any]], StorageError]:
        data = self._data[collection].get(key)
        return Ok(copy.deepcopy(data) if data is not None else None)

    async def put(
        self,
        collection: Collection,
        key: str,
        data: dict[str, Any],
    ) -> Result[None, StorageError]:
        self._data[collection][key] = copy.deepcopy(data)
        return Ok(None)

    async def delete(
        self,
        collection: Collection,
        key: str,
    ) -> Result[bool, StorageError]:
        return Ok(self._data[collection].pop(key, None) is not None)

    async def exists(
        self,
        collection: Collection,
        key: str,
    ) -> Result[bool, StorageError]:
        return Ok(key in self._data[collection])

    def count(self, collection: Collection) -> int:
        return len(self._data[collection])


class FileSystemCredentialBackend(CredentialBackend):
    """
    Local filesystem backend, one file per record.

    Objects stored at: {data_dir}/{collection}/{quoted key}.json
    """

    __slots__ = ("_data_dir",)

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = Path(data_dir)

    def initialize(self) -> Result[None, StorageError]:
        """Create collection directories."""
        try:
            for collection in Collection:
                (self._data_dir / collection.value).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return Err(StorageError.unavailable("initialize", str(self._data_dir), cause=e))
        return Ok(None)

    def path_for(self, collection: Collection, key: str) -> Path:
        """Convert key to filesystem path."""
        return self._data_dir / collection.value / f"{quote(key, safe='')}{C.RECORD_SUFFIX}"

    async def get(
        self,
        collection: Collection,
        key: str,
    ) -> Result[Optional[dict[str, Any]], StorageError]:
        path = self.path_for(collection, key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Ok(None)
        except OSError as e:
            return Err(StorageError.unavailable("get", str(path), cause=e))

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Corrupt credential record", path=str(path), error=str(e))
            return Err(StorageError.corruption(str(path), cause=e))

        if not isinstance(data, dict):
            return Err(StorageError.corruption(str(path)))
        return Ok(data)

    async def put(
        self,
        collection: Collection,
        key: str,
        data: dict[str, Any],
    ) -> Result[None, StorageError]:
        path = self.path_for(collection, key)
        tmp_name: Optional[str] = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=path.parent,
                prefix=".tmp-",
                suffix=C.RECORD_SUFFIX,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=4)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            return Err(StorageError.unavailable("put", str(path), cause=e))
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
        return Ok(None)

    async def delete(
        self,
        collection: Collection,
        key: str,
    ) -> Result[bool, StorageError]:
        path = self.path_for(collection, key)
        try:
            path.unlink()
        except FileNotFoundError:
            return Ok(False)
        except OSError as e:
            return Err(StorageError.unavailable("delete", str(path), cause=e))
        return Ok(True)

    async def exists(
        self,
        collection: Collection,
        key: str,
    ) -> Result[bool, StorageError]:
        return Ok(self.path_for(collection, key).is_file())
