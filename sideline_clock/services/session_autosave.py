"""
Automatic saving of the live match record.

Every session change except the per-tick clock update schedules a debounced
save of the whole GameSessionState. Saves run through the synchronization
queue, so they never overtake an earlier write, and each one is recorded in
the sync progress tracker as an upload.
"""
import logging
from typing import Callable, Optional

from ..models import GameSessionState, SyncOperationType
from .debounced_save import DebouncedSaveController, SaveStatus
from .game_actions import GameAction, SetTimerElapsed
from .persistence_service import PersistenceService
from .session_store import GameSessionStore
from .sync_progress import SyncProgressTracker
from .synchronization import SynchronizationQueue, run_synchronized

logger = logging.getLogger(__name__)


class SessionAutosave:
    """Keeps the persisted match record in step with the session store."""

    def __init__(
        self,
        store: GameSessionStore,
        persistence: PersistenceService,
        game_id: str,
        controller_factory: Callable[..., DebouncedSaveController] = DebouncedSaveController,
        *,
        sync_queue: Optional[SynchronizationQueue] = None,
        tracker: Optional[SyncProgressTracker] = None,
    ):
        self.store = store
        self.persistence = persistence
        self.game_id = game_id
        self.sync_queue = sync_queue
        self.tracker = tracker
        self.controller = controller_factory(self._save, name=f"game:{game_id}")
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_state_change)

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.controller.close()

    async def save_now(self) -> None:
        """Persist the session immediately; errors propagate to the caller."""
        await self.controller.save_immediately()

    def get_status(self) -> SaveStatus:
        return self.controller.get_status()

    @property
    def save_error(self) -> Optional[BaseException]:
        return self.controller.save_error

    def _on_state_change(self, action: GameAction, state: GameSessionState) -> None:
        if isinstance(action, SetTimerElapsed):
            return
        self.controller.debounced_save()

    async def _save(self) -> None:
        # capture the state when the save actually runs, not when it was requested
        state = self.store.state
        resource = self.persistence.game_key(self.game_id)

        async def write() -> None:
            await run_synchronized(
                self.sync_queue,
                f"{resource}:save",
                lambda: self.persistence.save_game(self.game_id, state),
            )

        if self.tracker is None:
            await write()
        else:
            await self.tracker.track(SyncOperationType.UPLOAD, resource, write)
        logger.debug(f"Saved session for game {self.game_id} ({state.status.value})")
