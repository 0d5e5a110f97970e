"""
System-Wide Constants for the Authentication Gate

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# GATE TIMING
# =============================================================================
GRACE_PERIOD_S: Final[float] = 150.0
REMINDER_INTERVAL_S: Final[float] = 30.0
REMINDER_MARKS_S: Final[tuple[int, ...]] = (150, 120, 90, 60, 30)

# Title timings in ticks: (fade_in, stay, fade_out)
GATE_TITLE_TIMING: Final[tuple[int, int, int]] = (20, 600, 20)
REMINDER_TITLE_TIMING: Final[tuple[int, int, int]] = (10, 70, 10)

# Far-away parking spot for gated entities
HOLDING_POSITION: Final[tuple[float, float, float]] = (20000.0, 40000.0, 30000.0)

# Commands a gated entity may still issue
GATED_COMMAND_ALLOW_LIST: Final[tuple[str, ...]] = ("register", "login")

# =============================================================================
# CREDENTIALS
# =============================================================================
MIN_PASSWORD_LENGTH: Final[int] = 4
USERNAME_MIN_LENGTH: Final[int] = 3
USERNAME_MAX_LENGTH: Final[int] = 16
MAX_ACCOUNTS_PER_IDENTITY: Final[int] = 3
RESET_PASSWORD_DIGITS: Final[int] = 6

# =============================================================================
# STORAGE LAYOUT
# =============================================================================
RECORD_SUFFIX: Final[str] = ".json"
REDIS_KEY_PREFIX: Final[str] = "authgate"

# =============================================================================
# CONFIG FILE
# =============================================================================
CONFIG_VERSION: Final[int] = 5
