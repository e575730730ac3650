"""Configuration package for BoardPilot."""

from boardpilot.config.batch_limits import (
    BATCH_WINDOW_SIZE,
    INTER_WINDOW_DELAY_SECONDS,
    MAX_EXECUTION_ATTEMPTS,
    USER_ASSIGN_WINDOW_SIZE,
)
from boardpilot.config.monday import MondayConfig

__all__ = [
    "BATCH_WINDOW_SIZE",
    "INTER_WINDOW_DELAY_SECONDS",
    "MAX_EXECUTION_ATTEMPTS",
    "USER_ASSIGN_WINDOW_SIZE",
    "MondayConfig",
]
