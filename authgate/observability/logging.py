"""
Structured Logging for the Gate

Every gate event is one JSON line:

    {"@timestamp": ..., "level": "INFO", "logger": "authgate.gate",
     "message": "Session gated", "identity": "0f8e-alice", "bound": false}

Keyword arguments passed to the logger become top-level fields.
Fields set with StructuredLogger.context() (typically the identity and
the command being handled) are attached to every line emitted inside
the block, across awaits.

Credential material never reaches the output: any field whose name
looks like a password or hash is replaced before formatting.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Optional, TextIO

REDACTED = "[redacted]"

_SECRET_FIELDS = frozenset({
    "password",
    "old_password",
    "new_password",
    "confirm",
    "password_hash",
    "passwordhash",
})

# Attributes every logging.LogRecord carries; anything else is ours
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
}

_scope: ContextVar[dict[str, Any]] = ContextVar("authgate_log_scope", default={})


class LogLevel(IntEnum):
    """Log levels accepted in configuration."""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL

    @classmethod
    def from_name(cls, name: str) -> LogLevel:
        """Unknown names fall back to INFO."""
        return cls.__members__.get((name or "").strip().upper(), cls.INFO)


def redact(fields: dict[str, Any]) -> dict[str, Any]:
    """Copy of `fields` with credential values masked."""
    return {
        key: (REDACTED if key.lower() in _SECRET_FIELDS else value)
        for key, value in fields.items()
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per line; scope and call fields flattened in."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "@timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS
        }
        payload.update(redact(fields))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class StructuredLogger:
    """
    Thin wrapper over logging.Logger taking fields as kwargs.

    Usage:
        logger = StructuredLogger("authgate.gate")
        logger.info("Session gated", identity="0f8e-alice", bound=False)

        with logger.context(identity="0f8e-alice", command="login"):
            logger.info("Operation rejected", code="WRONG_PASSWORD")
    """

    __slots__ = ("_logger", "_bound")

    def __init__(self, name: str, level: Optional[LogLevel] = None) -> None:
        self._logger = logging.getLogger(name)
        if level is not None:
            self._logger.setLevel(int(level))
        self._bound: dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **fields: Any) -> StructuredLogger:
        """Child logger that adds `fields` to every line."""
        child = StructuredLogger(self._logger.name)
        child._bound = {**self._bound, **fields}
        return child

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit(logging.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit(logging.ERROR, message, fields)

    def exception(self, message: str, **fields: Any) -> None:
        """ERROR with the active exception's traceback attached."""
        self._emit(logging.ERROR, message, fields, exc_info=True)

    def _emit(
        self,
        level: int,
        message: str,
        fields: dict[str, Any],
        exc_info: bool = False,
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {**_scope.get(), **self._bound, **fields}
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    @staticmethod
    def context(**fields: Any) -> _Scope:
        """Attach `fields` to every line logged inside the block."""
        return _Scope(fields)


class _Scope:
    """Context manager pushing fields onto the logging scope."""

    __slots__ = ("_fields", "_token")

    def __init__(self, fields: dict[str, Any]) -> None:
        self._fields = fields
        self._token = None

    def __enter__(self) -> _Scope:
        self._token = _scope.set({**_scope.get(), **self._fields})
        return self

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _scope.reset(self._token)
            self._token = None


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    json_output: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Install a single root handler.

    Args:
        level: Minimum level for the root logger and the handler
        json_output: JsonFormatter when True, a plain text line otherwise
        stream: Destination (default: stderr)
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(int(level))
    handler.setFormatter(
        JsonFormatter()
        if json_output
        else logging.Formatter("%(asctime)s %(levelname)-7s [%(name)s] %(message)s")
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(int(level))

    # The redis client logs every reconnect attempt at INFO
    logging.getLogger("redis").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
