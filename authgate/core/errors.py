"""
Error Hierarchy for the Authentication Gate

Rejected operations come back as Err(AuthGateError) rather than being
raised. The ErrorCode on each error is what the front end keys on to
pick the single message shown to the entity; message and context are
for the logs only and never contain a password.

Usage:
    result = await gate.login(identity, "alice", "secret1")
    match result:
        case Ok(session):
            ...
        case Err(error) if error.code is ErrorCode.WRONG_PASSWORD:
            ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4


# =============================================================================
# CODES
# =============================================================================
class ErrorCode(Enum):
    """
    Stable numeric codes, one per rejection reason.

    1xxx credential store, 2xxx gate and session, 3xxx storage
    backend, 9xxx internal.
    """

    # Credential errors (1xxx)
    INVALID_PASSWORD = 1001
    INVALID_USERNAME = 1002
    ALREADY_EXISTS = 1003
    QUOTA_EXCEEDED = 1004
    ACCOUNT_NOT_FOUND = 1005

    # Gate errors (2xxx)
    PASSWORD_MISMATCH = 2001
    ALREADY_REGISTERED = 2002
    WRONG_PASSWORD = 2003
    ALREADY_AUTHENTICATED = 2004
    NO_SESSION = 2005
    DUPLICATE_SESSION = 2006
    NOT_AUTHENTICATED = 2007
    NOT_LOGGED_IN = 2008
    PERMISSION_DENIED = 2009
    INVALID_ARGUMENTS = 2010

    # Storage errors (3xxx)
    STORAGE_UNAVAILABLE = 3001
    STORAGE_CORRUPTION = 3002

    # Internal errors (9xxx)
    INTERNAL_ERROR = 9001
    INTERNAL_CONFIGURATION_ERROR = 9002


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class AuthGateError(Exception):
    """
    Base class for all gate errors.

    Returned inside Err(...) rather than raised. Still an Exception
    subclass so callers at the host boundary may raise it if they
    prefer exceptions there.
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    cause: Optional[Exception] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def with_context(self, **kwargs: Any) -> AuthGateError:
        """Add context to error (returns new instance of the same class)."""
        return type(self)(
            code=self.code,
            message=self.message,
            error_id=self.error_id,
            cause=self.cause,
            context={**self.context, **kwargs},
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize error for logging.

        Excludes the cause traceback and never includes passwords.
        """
        return {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r})"
        )


# =============================================================================
# CREDENTIAL ERRORS
# =============================================================================
@dataclass
class CredentialError(AuthGateError):
    """Validation and quota failures raised by the credential store."""

    @classmethod
    def invalid_password(cls, min_length: int) -> CredentialError:
        return cls(
            code=ErrorCode.INVALID_PASSWORD,
            message=f"Password must be at least {min_length} characters",
            context={"min_length": min_length},
        )

    @classmethod
    def invalid_username(
        cls,
        username: str,
        min_length: int,
        max_length: int,
    ) -> CredentialError:
        return cls(
            code=ErrorCode.INVALID_USERNAME,
            message=(
                f"Username must be {min_length}-{max_length} characters, "
                f"got {len(username)}"
            ),
            context={
                "username": username,
                "min_length": min_length,
                "max_length": max_length,
            },
        )

    @classmethod
    def already_exists(cls, username: str) -> CredentialError:
        return cls(
            code=ErrorCode.ALREADY_EXISTS,
            message=f"Account '{username}' already exists",
            context={"username": username},
        )

    @classmethod
    def quota_exceeded(cls, max_accounts: int) -> CredentialError:
        return cls(
            code=ErrorCode.QUOTA_EXCEEDED,
            message=f"Maximum number of accounts ({max_accounts}) reached",
            context={"max_accounts": max_accounts},
        )

    @classmethod
    def account_not_found(cls, username: str) -> CredentialError:
        return cls(
            code=ErrorCode.ACCOUNT_NOT_FOUND,
            message=f"Account '{username}' not found",
            context={"username": username},
        )


# =============================================================================
# GATE / SESSION ERRORS
# =============================================================================
@dataclass
class GateError(AuthGateError):
    """State machine rejections raised by the gate and registry."""

    @classmethod
    def password_mismatch(cls) -> GateError:
        return cls(
            code=ErrorCode.PASSWORD_MISMATCH,
            message="Password and confirmation do not match",
        )

    @classmethod
    def already_registered(cls, identity: str, username: str) -> GateError:
        return cls(
            code=ErrorCode.ALREADY_REGISTERED,
            message=f"Identity is already bound to account '{username}'",
            context={"identity": identity, "username": username},
        )

    @classmethod
    def account_not_found(cls, username: Optional[str]) -> GateError:
        return cls(
            code=ErrorCode.ACCOUNT_NOT_FOUND,
            message=f"Account '{username or ''}' not found",
            context={"username": username},
        )

    @classmethod
    def wrong_password(cls, username: str) -> GateError:
        return cls(
            code=ErrorCode.WRONG_PASSWORD,
            message=f"Wrong password for account '{username}'",
            context={"username": username},
        )

    @classmethod
    def already_authenticated(cls, identity: str) -> GateError:
        return cls(
            code=ErrorCode.ALREADY_AUTHENTICATED,
            message="Session is already authenticated",
            context={"identity": identity},
        )

    @classmethod
    def not_authenticated(cls, identity: str) -> GateError:
        return cls(
            code=ErrorCode.NOT_AUTHENTICATED,
            message="Session is not authenticated",
            context={"identity": identity},
        )

    @classmethod
    def no_session(cls, identity: str) -> GateError:
        return cls(
            code=ErrorCode.NO_SESSION,
            message="No gated session for identity",
            context={"identity": identity},
        )

    @classmethod
    def duplicate_session(cls, identity: str) -> GateError:
        return cls(
            code=ErrorCode.DUPLICATE_SESSION,
            message="A session already exists for identity",
            context={"identity": identity},
        )

    @classmethod
    def not_logged_in(cls, identity: str) -> GateError:
        return cls(
            code=ErrorCode.NOT_LOGGED_IN,
            message="Identity is not bound to any account",
            context={"identity": identity},
        )

    @classmethod
    def permission_denied(cls, action: str) -> GateError:
        return cls(
            code=ErrorCode.PERMISSION_DENIED,
            message=f"Permission denied for '{action}'",
            context={"action": action},
        )


# =============================================================================
# STORAGE ERRORS
# =============================================================================
@dataclass
class StorageError(AuthGateError):
    """
    Errors from credential persistence backends.

    Never fatal: the affected operation fails, the entity stays gated
    and is told to retry.
    """

    @classmethod
    def unavailable(
        cls,
        operation: str,
        location: str,
        cause: Optional[Exception] = None,
    ) -> StorageError:
        return cls(
            code=ErrorCode.STORAGE_UNAVAILABLE,
            message=f"Credential storage unavailable during '{operation}' at {location}",
            cause=cause,
            context={"operation": operation, "location": location},
        )

    @classmethod
    def corruption(
        cls,
        location: str,
        cause: Optional[Exception] = None,
    ) -> StorageError:
        return cls(
            code=ErrorCode.STORAGE_CORRUPTION,
            message=f"Unreadable credential record at {location}",
            cause=cause,
            context={"location": location},
        )
