"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the gate:
- Result/Either monads for zero-exception control flow
- Error hierarchy keyed by ErrorCode
- Configuration management with validation
"""

from authgate.core.types import (
    Result,
    Ok,
    Err,
    Identity,
    Vector3,
    Orientation,
    ItemStack,
    TransientState,
)
from authgate.core.errors import (
    ErrorCode,
    AuthGateError,
    CredentialError,
    GateError,
    StorageError,
)
from authgate.core.config import (
    AuthGateConfig,
    GateConfig,
    CredentialConfig,
    ObservabilityConfig,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Identity",
    "Vector3",
    "Orientation",
    "ItemStack",
    "TransientState",
    "ErrorCode",
    "AuthGateError",
    "CredentialError",
    "GateError",
    "StorageError",
    "AuthGateConfig",
    "GateConfig",
    "CredentialConfig",
    "ObservabilityConfig",
]
