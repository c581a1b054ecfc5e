"""
Constants for the Sideline Clock application.

This module contains configuration defaults used throughout the application.
"""

# Application metadata
APP_TITLE = "Sideline Clock"

# Match timing defaults
DEFAULT_PERIOD_DURATION_MIN = 10
DEFAULT_NUMBER_OF_PERIODS = 2
SUPPORTED_PERIOD_COUNTS = (1, 2)
DEFAULT_SUB_INTERVAL_MIN = 5

# Seconds before the substitution due-time at which the alert turns to "warning"
SUB_WARNING_WINDOW_SECONDS = 60

# Timer engine
TICK_INTERVAL_SECONDS = 1.0
MAX_PENDING_SNAPSHOT_WRITES = 4

# Debounced saves
DEFAULT_SAVE_DEBOUNCE_SECONDS = 2.0
DEFAULT_SAVE_MAX_RETRIES = 3
DEFAULT_SAVE_INITIAL_BACKOFF = 1.0
DEFAULT_SAVE_BACKOFF_MULTIPLIER = 2.0

# Sync progress bookkeeping
MAX_COMPLETED_OPERATIONS = 50
PROGRESS_CLEANUP_INTERVAL_SECONDS = 60.0

# Storage keys
TIMER_STATE_KEY_PREFIX = "timer_state"
GAME_KEY_PREFIX = "game"
LEGACY_TIMER_STATE_KEY = "soccerTimerState"
