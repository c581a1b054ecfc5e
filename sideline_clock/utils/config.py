"""Runtime configuration for a running Sideline Clock application."""
from dataclasses import dataclass
from typing import Optional

from .constants import (
    DEFAULT_SAVE_BACKOFF_MULTIPLIER,
    DEFAULT_SAVE_DEBOUNCE_SECONDS,
    DEFAULT_SAVE_INITIAL_BACKOFF,
    DEFAULT_SAVE_MAX_RETRIES,
    MAX_PENDING_SNAPSHOT_WRITES,
    PROGRESS_CLEANUP_INTERVAL_SECONDS,
    TICK_INTERVAL_SECONDS,
)


@dataclass
class RuntimeConfig:
    """
    Tunables used to wire the services of one running application.

    Attributes:
        data_dir: Directory for JSON record files; None keeps records in memory
        save_debounce_seconds: Quiet period before a debounced session save fires
        save_max_retries: Retry attempts after a failed debounced save
        save_initial_backoff: Backoff before the first retry, in seconds
        save_backoff_multiplier: Growth factor applied to each further retry
        tick_interval: Seconds between timer ticks
        max_pending_snapshot_writes: In-flight snapshot writes allowed before ticks skip theirs
        progress_cleanup_interval: Seconds between sweeps of completed sync operations
    """
    data_dir: Optional[str] = None
    save_debounce_seconds: float = DEFAULT_SAVE_DEBOUNCE_SECONDS
    save_max_retries: int = DEFAULT_SAVE_MAX_RETRIES
    save_initial_backoff: float = DEFAULT_SAVE_INITIAL_BACKOFF
    save_backoff_multiplier: float = DEFAULT_SAVE_BACKOFF_MULTIPLIER
    tick_interval: float = TICK_INTERVAL_SECONDS
    max_pending_snapshot_writes: int = MAX_PENDING_SNAPSHOT_WRITES
    progress_cleanup_interval: float = PROGRESS_CLEANUP_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        if self.tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        if self.save_debounce_seconds < 0:
            raise ValueError("save_debounce_seconds cannot be negative")
        if self.save_max_retries < 0:
            raise ValueError("save_max_retries cannot be negative")
        if self.max_pending_snapshot_writes < 1:
            raise ValueError("max_pending_snapshot_writes must be at least 1")
