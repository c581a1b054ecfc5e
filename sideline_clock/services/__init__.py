"""
Services package for the Sideline Clock.

This package contains the match session state machine and the services that
drive and persist it. Includes a factory for proper dependency injection.
"""
from .game_actions import (
    GameAction, StartPeriod, SetTimerElapsed, EndPeriodOrGame, ConfirmSubstitution,
    SetSubInterval, RestoreTimerState, PauseTimerForHidden, SetTimerRunning,
    ResetTimerOnly, ResetTimerAndGameProgress, LoadPersistedGameData, ResetGameSession,
    SetNumberOfPeriods, SetPeriodDuration, SetSelectedPlayerIds, SetScore, UpdateMetadata
)
from .game_session_reducer import game_session_reducer, compute_sub_alert_level
from .session_store import GameSessionStore
from .persistence_service import (
    PersistenceService, PersistenceError, StorageBackend,
    MemoryStorageBackend, JsonFileStorageBackend
)
from .synchronization import SynchronizationQueue
from .debounced_save import DebouncedSaveController, SaveStatus
from .sync_progress import SyncProgressTracker
from .wake_lock import WakeLockManager, WakeLockProvider, NullWakeLockProvider
from .timer_service import TimerService, TimerStatus
from .session_autosave import SessionAutosave
from .service_factory import ServiceFactory

__all__ = [
    "GameAction", "StartPeriod", "SetTimerElapsed", "EndPeriodOrGame", "ConfirmSubstitution",
    "SetSubInterval", "RestoreTimerState", "PauseTimerForHidden", "SetTimerRunning",
    "ResetTimerOnly", "ResetTimerAndGameProgress", "LoadPersistedGameData", "ResetGameSession",
    "SetNumberOfPeriods", "SetPeriodDuration", "SetSelectedPlayerIds", "SetScore", "UpdateMetadata",
    "game_session_reducer", "compute_sub_alert_level", "GameSessionStore",
    "PersistenceService", "PersistenceError", "StorageBackend",
    "MemoryStorageBackend", "JsonFileStorageBackend",
    "SynchronizationQueue", "DebouncedSaveController", "SaveStatus", "SyncProgressTracker",
    "WakeLockManager", "WakeLockProvider", "NullWakeLockProvider",
    "TimerService", "TimerStatus", "SessionAutosave", "ServiceFactory"
]
