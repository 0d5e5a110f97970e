"""
Configuration Management for the Authentication Gate

Provides validated configuration with sensible defaults.
Supports environment variable overrides and a JSON config file.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from authgate.core.types import Result, Ok, Err, Vector3
from authgate.core import constants as C


@dataclass(frozen=True)
class GateConfig:
    """Timing and isolation settings for gated sessions."""

    grace_period_s: float = C.GRACE_PERIOD_S
    reminder_interval_s: float = C.REMINDER_INTERVAL_S
    reminder_marks: tuple[int, ...] = C.REMINDER_MARKS_S
    isolate_on_gate: bool = True
    holding_position: Vector3 = field(
        default_factory=lambda: Vector3(*C.HOLDING_POSITION)
    )
    allowed_commands: tuple[str, ...] = C.GATED_COMMAND_ALLOW_LIST
    kick_reason: str = "Authentication time expired"


@dataclass(frozen=True)
class CredentialConfig:
    """Credential validation rules and backend selection."""

    backend: str = "filesystem"  # "memory", "filesystem" or "redis"
    data_dir: Path = field(default_factory=lambda: Path("./data/authgate"))
    min_password_length: int = C.MIN_PASSWORD_LENGTH
    strict_usernames: bool = True
    username_min_length: int = C.USERNAME_MIN_LENGTH
    username_max_length: int = C.USERNAME_MAX_LENGTH
    max_accounts: int = C.MAX_ACCOUNTS_PER_IDENTITY
    pseudo_identity: bool = True
    redis_url: str = "redis://localhost:6379/0"
    redis_prefix: str = C.REDIS_KEY_PREFIX


@dataclass(frozen=True)
class ObservabilityConfig:
    """
    Observability and telemetry configuration.

    With metrics_enabled off, build_gate records into a private
    collector that is never exported.
    """

    log_level: str = "INFO"
    log_json: bool = True
    metrics_enabled: bool = True


@dataclass(frozen=True)
class AuthGateConfig:
    """Root configuration for the authentication gate."""

    version: int = C.CONFIG_VERSION
    lang: str = "en_US"  # kept for config.json round-trips; messages are English only
    gate: GateConfig = field(default_factory=GateConfig)
    credentials: CredentialConfig = field(default_factory=CredentialConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[AuthGateConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with AUTHGATE_.
        Example: AUTHGATE_GRACE_PERIOD_S, AUTHGATE_DATA_DIR
        """
        try:
            gate = GateConfig(
                grace_period_s=float(os.getenv("AUTHGATE_GRACE_PERIOD_S", C.GRACE_PERIOD_S)),
                reminder_interval_s=float(
                    os.getenv("AUTHGATE_REMINDER_INTERVAL_S", C.REMINDER_INTERVAL_S)
                ),
                isolate_on_gate=_env_bool("AUTHGATE_ISOLATE_ON_GATE", True),
            )

            credentials = CredentialConfig(
                backend=os.getenv("AUTHGATE_BACKEND", "filesystem"),
                data_dir=Path(os.getenv("AUTHGATE_DATA_DIR", "./data/authgate")),
                max_accounts=int(
                    os.getenv("AUTHGATE_MAX_ACCOUNTS", C.MAX_ACCOUNTS_PER_IDENTITY)
                ),
                strict_usernames=_env_bool("AUTHGATE_STRICT_USERNAMES", True),
                pseudo_identity=_env_bool("AUTHGATE_PSEUDO_IDENTITY", True),
                redis_url=os.getenv("AUTHGATE_REDIS_URL", "redis://localhost:6379/0"),
            )

            observability = ObservabilityConfig(
                log_level=os.getenv("AUTHGATE_LOG_LEVEL", "INFO").upper(),
                log_json=_env_bool("AUTHGATE_LOG_JSON", True),
                metrics_enabled=_env_bool("AUTHGATE_METRICS_ENABLED", True),
            )

            return Ok(cls(
                lang=os.getenv("AUTHGATE_LANG", "en_US"),
                gate=gate,
                credentials=credentials,
                observability=observability,
            ))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Result[AuthGateConfig, str]:
        """
        Build configuration from the flat config.json shape.

        Unknown keys are ignored; missing keys keep their defaults.
        """
        try:
            defaults_gate = GateConfig()
            defaults_cred = CredentialConfig()

            gate = GateConfig(
                grace_period_s=float(data.get("grace_period_s", defaults_gate.grace_period_s)),
                reminder_interval_s=float(
                    data.get("reminder_interval_s", defaults_gate.reminder_interval_s)
                ),
                reminder_marks=tuple(
                    int(m) for m in data.get("reminder_marks", defaults_gate.reminder_marks)
                ),
                isolate_on_gate=bool(data.get("isolate_on_gate", defaults_gate.isolate_on_gate)),
                holding_position=(
                    Vector3.from_dict(data["holding_position"])
                    if "holding_position" in data
                    else defaults_gate.holding_position
                ),
                kick_reason=str(data.get("kick_reason", defaults_gate.kick_reason)),
            )

            credentials = CredentialConfig(
                backend=str(data.get("backend", defaults_cred.backend)),
                data_dir=Path(data.get("data_dir", defaults_cred.data_dir)),
                min_password_length=int(
                    data.get("min_password_length", defaults_cred.min_password_length)
                ),
                strict_usernames=bool(data.get("strict_usernames", defaults_cred.strict_usernames)),
                max_accounts=int(data.get("max_accounts", defaults_cred.max_accounts)),
                pseudo_identity=bool(data.get("fake_uuid", defaults_cred.pseudo_identity)),
                redis_url=str(data.get("redis_url", defaults_cred.redis_url)),
            )

            return Ok(cls(
                version=int(data.get("version", C.CONFIG_VERSION)),
                lang=str(data.get("lang", "en_US")),
                gate=gate,
                credentials=credentials,
            ))
        except (ValueError, TypeError, KeyError) as e:
            return Err(f"Configuration error: {e}")

    @classmethod
    def from_json_file(
        cls,
        path: Path,
        write_defaults: bool = True,
    ) -> Result[AuthGateConfig, str]:
        """
        Load config.json, writing defaults when the file is missing.

        A malformed file is an error; a missing one is not.
        """
        if not path.exists():
            config = cls()
            if write_defaults:
                saved = config.save_json_file(path)
                if saved.is_err():
                    return saved
            return Ok(config)

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            return Err(f"Cannot read {path}: {e}")

        if not isinstance(data, dict):
            return Err(f"Cannot read {path}: top level must be an object")
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Flat config.json representation."""
        return {
            "version": self.version,
            "lang": self.lang,
            "grace_period_s": self.gate.grace_period_s,
            "reminder_interval_s": self.gate.reminder_interval_s,
            "reminder_marks": list(self.gate.reminder_marks),
            "isolate_on_gate": self.gate.isolate_on_gate,
            "holding_position": self.gate.holding_position.to_dict(),
            "kick_reason": self.gate.kick_reason,
            "backend": self.credentials.backend,
            "data_dir": str(self.credentials.data_dir),
            "min_password_length": self.credentials.min_password_length,
            "strict_usernames": self.credentials.strict_usernames,
            "max_accounts": self.credentials.max_accounts,
            "fake_uuid": self.credentials.pseudo_identity,
            "redis_url": self.credentials.redis_url,
        }

    def save_json_file(self, path: Path) -> Result[None, str]:
        """Write config.json with 4-space indentation."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(self.to_dict(), indent=4), encoding="utf-8")
        except OSError as e:
            return Err(f"Cannot write {path}: {e}")
        return Ok(None)

    def validate(self) -> Result[None, str]:
        """Validate configuration invariants."""
        if self.gate.grace_period_s <= 0:
            return Err("grace_period_s must be > 0")
        if self.gate.reminder_interval_s <= 0:
            return Err("reminder_interval_s must be > 0")
        if self.credentials.min_password_length < 1:
            return Err("min_password_length must be >= 1")
        if self.credentials.username_min_length > self.credentials.username_max_length:
            return Err("username_min_length cannot exceed username_max_length")
        if self.credentials.max_accounts < 1:
            return Err("max_accounts must be >= 1")
        if self.credentials.backend not in ("memory", "filesystem", "redis"):
            return Err(f"Unknown credential backend '{self.credentials.backend}'")
        return Ok(None)


def _env_bool(name: str, default: bool) -> bool:
    raw: Optional[str] = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
