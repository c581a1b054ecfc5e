"""
Models package for the Sideline Clock.

This package contains the core data models used throughout the application.
"""
from .game_state import GameSessionState, GameStatus, SubAlertLevel, IntervalLog
from .timer_snapshot import TimerSnapshot
from .sync_operation import SyncOperation, SyncOperationType, SyncProgress, SyncStatus

__all__ = [
    "GameSessionState", "GameStatus", "SubAlertLevel", "IntervalLog",
    "TimerSnapshot",
    "SyncOperation", "SyncOperationType", "SyncProgress", "SyncStatus"
]
