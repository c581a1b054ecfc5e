"""
Service Factory for dependency injection.

This module provides a factory for creating properly configured service
instances with their dependencies injected. Shared collaborators (the
persistence facade, the synchronization queue and the sync progress tracker)
are created once per factory instance and handed to every service that needs
them, so separate factories never share hidden state.
"""
from functools import partial
from typing import Dict, Optional

from ..models import GameSessionState
from ..utils import RuntimeConfig
from .debounced_save import DebouncedSaveController
from .persistence_service import (
    JsonFileStorageBackend,
    MemoryStorageBackend,
    PersistenceService,
    StorageBackend,
)
from .session_autosave import SessionAutosave
from .session_store import GameSessionStore
from .sync_progress import SyncProgressTracker
from .synchronization import SynchronizationQueue
from .timer_service import TimerService
from .wake_lock import WakeLockManager, WakeLockProvider


class ServiceFactory:
    """Factory for creating service instances with their dependencies injected."""

    def __init__(
        self,
        config: Optional[RuntimeConfig] = None,
        *,
        backend: Optional[StorageBackend] = None,
        wake_lock_provider: Optional[WakeLockProvider] = None,
    ):
        """
        Initialize factory.

        Args:
            config: Runtime tunables; defaults are used when omitted
            backend: Storage backend; derived from ``config.data_dir`` when omitted
            wake_lock_provider: Platform wake lock; none means unsupported
        """
        self.config = config or RuntimeConfig()
        self._backend = backend
        self._wake_lock_provider = wake_lock_provider
        self._persistence_service: Optional[PersistenceService] = None
        self._sync_queue: Optional[SynchronizationQueue] = None
        self._progress_tracker: Optional[SyncProgressTracker] = None

    def get_persistence_service(self) -> PersistenceService:
        """Get the persistence facade shared by this factory's services."""
        if self._persistence_service is None:
            backend = self._backend
            if backend is None:
                if self.config.data_dir:
                    backend = JsonFileStorageBackend(self.config.data_dir)
                else:
                    backend = MemoryStorageBackend()
            self._persistence_service = PersistenceService(backend)
        return self._persistence_service

    def get_sync_queue(self) -> SynchronizationQueue:
        if self._sync_queue is None:
            self._sync_queue = SynchronizationQueue()
        return self._sync_queue

    def get_progress_tracker(self) -> SyncProgressTracker:
        if self._progress_tracker is None:
            self._progress_tracker = SyncProgressTracker(
                cleanup_interval=self.config.progress_cleanup_interval
            )
        return self._progress_tracker

    def create_store(self, initial_state: Optional[GameSessionState] = None) -> GameSessionStore:
        return GameSessionStore(initial_state)

    def create_timer_service(self, store: GameSessionStore, game_id: str) -> TimerService:
        """
        Create TimerService for one game.

        Args:
            store: Session store the timer drives
            game_id: Identifier used to key timer snapshots

        Returns:
            Configured TimerService instance
        """
        return TimerService(
            store,
            self.get_persistence_service(),
            game_id,
            wake_lock=WakeLockManager(self._wake_lock_provider),
            sync_queue=self.get_sync_queue(),
            tick_interval=self.config.tick_interval,
            max_pending_writes=self.config.max_pending_snapshot_writes,
        )

    def create_autosave(self, store: GameSessionStore, game_id: str) -> SessionAutosave:
        controller_factory = partial(
            DebouncedSaveController,
            delay=self.config.save_debounce_seconds,
            max_retries=self.config.save_max_retries,
            initial_backoff=self.config.save_initial_backoff,
            backoff_multiplier=self.config.save_backoff_multiplier,
        )
        return SessionAutosave(
            store,
            self.get_persistence_service(),
            game_id,
            controller_factory,
            sync_queue=self.get_sync_queue(),
            tracker=self.get_progress_tracker(),
        )

    def create_session_suite(
        self, game_id: str, initial_state: Optional[GameSessionState] = None
    ) -> Dict[str, object]:
        """
        Create the complete set of services for one live match.

        Returns:
            Dictionary containing the store, timer and autosave services
        """
        store = self.create_store(initial_state)
        return {
            "store": store,
            "timer": self.create_timer_service(store, game_id),
            "autosave": self.create_autosave(store, game_id),
        }
