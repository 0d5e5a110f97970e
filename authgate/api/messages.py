"""
Message Catalog (en_US)

Every line the gate sends to an entity lives here. Rejections map
from ErrorCode to exactly one line via describe().
"""

from __future__ import annotations

from typing import Any

from authgate.core.errors import AuthGateError, ErrorCode

# =============================================================================
# GATE ENTRY
# =============================================================================
GATE_TITLE = "Please register or log in to continue."
WELCOME = "Welcome to the server!"
REGISTER_HINT = "Use /register <username> <password> <confirm> to create an account"
LOGIN_HINT = "Or /login <username> <password> to log in to an existing account"
LOGIN_BOUND_HINT = "Welcome back, {username}! Use /login <password> to continue"

# =============================================================================
# REMINDERS AND EVICTION
# =============================================================================
REMINDER_CHAT = "You have {seconds} seconds left to log in."
REMINDER_TITLE = "Authentication time is running out!"
REMINDER_SUBTITLE = "{seconds} seconds left"

# =============================================================================
# RESTRICTIONS
# =============================================================================
CHAT_DENIED = "You must log in before you can chat!"
COMMAND_DENIED = "You must log in before you can use commands! Use /register or /login"

# =============================================================================
# SUCCESS
# =============================================================================
REGISTER_SUCCESS = "Account created successfully! Welcome to the server!"
LOGIN_SUCCESS = "Login successful! Welcome to the server!"
PASSWORD_CHANGED = "Password changed successfully!"
LOGGED_OUT = "You have been logged out. Please reconnect to log in again."
LOGOUT_REASON = "Logged out"
PASSWORD_RESET = "Password for {username} reset to: {password}"

# =============================================================================
# ACCOUNT INFO
# =============================================================================
ACCOUNT_HEADER = "=== Account information ==="
ACCOUNT_NAME = "Logged in as: {username}"
ACCOUNT_COUNT = "Accounts created: {count}"
ACCOUNT_HINTS = "Use /changepassword to change your password, /logout to log out"

# =============================================================================
# USAGE
# =============================================================================
USAGE = {
    "register": "Usage: /register <username> <password> <confirm>",
    "login": "Usage: /login [username] <password>",
    "changepassword": "Usage: /changepassword <old_password> <new_password> <confirm>",
    "logout": "Usage: /logout",
    "account": "Usage: /account",
    "resetpassword": "Usage: /resetpassword <username>",
}

# =============================================================================
# REJECTIONS
# =============================================================================
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_PASSWORD: "Password must be at least {min_length} characters long!",
    ErrorCode.INVALID_USERNAME: "Username must be {min_length}-{max_length} characters long!",
    ErrorCode.ALREADY_EXISTS: "An account named {username} already exists.",
    ErrorCode.QUOTA_EXCEEDED: "You have already created the maximum number of accounts ({max_accounts})!",
    ErrorCode.ACCOUNT_NOT_FOUND: "Account not found!",
    ErrorCode.PASSWORD_MISMATCH: "Password and confirmation do not match!",
    ErrorCode.ALREADY_REGISTERED: "You already have an account ({username}). Use /login <password>",
    ErrorCode.WRONG_PASSWORD: "Incorrect password!",
    ErrorCode.ALREADY_AUTHENTICATED: "You are already logged in!",
    ErrorCode.NOT_AUTHENTICATED: "You must be logged in to do that!",
    ErrorCode.NO_SESSION: "Your session has expired. Please reconnect.",
    ErrorCode.DUPLICATE_SESSION: "You are already connected.",
    ErrorCode.NOT_LOGGED_IN: "You are not logged in to an account! Use /register or /login",
    ErrorCode.PERMISSION_DENIED: "You do not have permission to use this command.",
    ErrorCode.STORAGE_UNAVAILABLE: "Account storage is temporarily unavailable. Please try again.",
    ErrorCode.STORAGE_CORRUPTION: "Your account data could not be read. Please contact an operator.",
}

FALLBACK = "Something went wrong. Please try again."


class _Lenient(dict):
    def __missing__(self, key: str) -> str:
        return "?"


def describe(error: AuthGateError) -> str:
    """Render the single user-facing line for a rejection."""
    template = ERROR_MESSAGES.get(error.code)
    if template is None:
        return FALLBACK
    return template.format_map(_Lenient(error.context))


def render(template: str, **values: Any) -> str:
    return template.format_map(_Lenient(values))
