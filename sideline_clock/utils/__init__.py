"""
Utilities package for the Sideline Clock.

This package contains utility functions and configuration used throughout the application.
"""
from .time_utils import fmt_mmss, now_ts, to_epoch_ms, from_epoch_ms
from .config import RuntimeConfig
from .constants import (
    APP_TITLE, DEFAULT_PERIOD_DURATION_MIN, DEFAULT_NUMBER_OF_PERIODS,
    DEFAULT_SUB_INTERVAL_MIN, SUB_WARNING_WINDOW_SECONDS
)

__all__ = [
    "fmt_mmss", "now_ts", "to_epoch_ms", "from_epoch_ms", "RuntimeConfig",
    "APP_TITLE", "DEFAULT_PERIOD_DURATION_MIN", "DEFAULT_NUMBER_OF_PERIODS",
    "DEFAULT_SUB_INTERVAL_MIN", "SUB_WARNING_WINDOW_SECONDS"
]
