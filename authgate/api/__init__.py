"""
API module: chat command front end and user-facing text.
"""

from authgate.api import messages
from authgate.api.commands import (
    CommandRequest,
    CommandResponse,
    CommandRouter,
)

__all__ = [
    "messages",
    "CommandRequest",
    "CommandResponse",
    "CommandRouter",
]
