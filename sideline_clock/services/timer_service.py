"""Timer service for the Sideline Clock application.

Drives the session clock once per tick while a period is running, persists
recovery snapshots, keeps the screen wake lock in step with the clock and
handles the app being hidden and shown again.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Set

from ..models import GameStatus, SubAlertLevel, TimerSnapshot
from ..utils.constants import MAX_PENDING_SNAPSHOT_WRITES, TICK_INTERVAL_SECONDS
from .game_actions import (
    ConfirmSubstitution,
    EndPeriodOrGame,
    GameAction,
    PauseTimerForHidden,
    ResetTimerOnly,
    RestoreTimerState,
    SetSubInterval,
    SetTimerElapsed,
    SetTimerRunning,
    StartPeriod,
)
from .persistence_service import PersistenceService
from .session_store import GameSessionStore
from .synchronization import SynchronizationQueue
from .wake_lock import WakeLockManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimerStatus:
    """Timer fields exposed to the UI layer."""
    time_elapsed_in_seconds: float
    is_timer_running: bool
    next_sub_due_time_seconds: float
    sub_alert_level: SubAlertLevel
    last_sub_confirmation_time_seconds: float
    current_period: int
    game_status: GameStatus

    def to_json(self) -> dict:
        return {
            "time_elapsed_in_seconds": self.time_elapsed_in_seconds,
            "is_timer_running": self.is_timer_running,
            "next_sub_due_time_seconds": self.next_sub_due_time_seconds,
            "sub_alert_level": self.sub_alert_level.value,
            "last_sub_confirmation_time_seconds": self.last_sub_confirmation_time_seconds,
            "current_period": self.current_period,
            "game_status": self.game_status.value,
        }


class TimerService:
    """Service that runs the match clock for one game."""

    def __init__(
        self,
        store: GameSessionStore,
        persistence: PersistenceService,
        game_id: str,
        *,
        wake_lock: Optional[WakeLockManager] = None,
        sync_queue: Optional[SynchronizationQueue] = None,
        tick_interval: float = TICK_INTERVAL_SECONDS,
        max_pending_writes: int = MAX_PENDING_SNAPSHOT_WRITES,
    ):
        self.store = store
        self.persistence = persistence
        self.game_id = game_id
        self.wake_lock = wake_lock or WakeLockManager()
        self.sync_queue = sync_queue
        self.tick_interval = tick_interval
        self.max_pending_writes = max_pending_writes

        self._unsubscribe: Optional[Callable[[], None]] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._pending_writes = 0
        self._wake_lock_target = False
        self._ticks_suspended = False
        self._hidden_snapshot: Optional[TimerSnapshot] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        """Attach to the session store and recover any persisted clock."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_state_change)
        await self.migrate_legacy_timer_state()
        await self.recover_timer_state()
        self._sync_with_state()
        logger.info(f"Timer service started for game {self.game_id}")

    async def close(self) -> None:
        """Stop ticking, detach from the store and release the wake lock."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._stop_ticking()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.wake_lock.close()
        self._wake_lock_target = False
        logger.info(f"Timer service stopped for game {self.game_id}")

    # ------------------------------------------------------------------
    # UI operations
    # ------------------------------------------------------------------
    def status(self) -> TimerStatus:
        state = self.store.state
        return TimerStatus(
            time_elapsed_in_seconds=state.time_elapsed_in_seconds,
            is_timer_running=state.is_timer_running,
            next_sub_due_time_seconds=state.next_sub_due_time_seconds,
            sub_alert_level=state.sub_alert_level,
            last_sub_confirmation_time_seconds=state.last_sub_confirmation_time_seconds,
            current_period=state.current_period,
            game_status=state.status,
        )

    def start_pause(self) -> None:
        """Start the next period, or toggle the clock within the current one."""
        state = self.store.state
        if state.status == GameStatus.NOT_STARTED:
            self._dispatch(StartPeriod(next_period=1))
        elif state.status == GameStatus.PERIOD_END:
            self._dispatch(StartPeriod(next_period=state.current_period + 1))
        elif state.status == GameStatus.IN_PROGRESS:
            pausing = state.is_timer_running
            self._dispatch(SetTimerRunning(running=not pausing))
            if pausing:
                # a paused clock must not be resumed by relaunch recovery
                self._delete_snapshot_in_background("timer state delete on pause")

    async def reset(self) -> None:
        """
        Rewind the clock to the start of the current period.

        Ticking is suspended and the persisted snapshot deleted first, so
        neither a late tick write nor a relaunch can bring back the old clock.

        Raises:
            PersistenceError: If the snapshot cannot be deleted; the clock is left untouched
        """
        self._ticks_suspended = True
        self._stop_ticking()
        try:
            if self.game_id:
                await self._delete_snapshot()
        except Exception:
            self._ticks_suspended = False
            self._sync_with_state()
            raise
        self._hidden_snapshot = None
        self._dispatch(ResetTimerOnly())
        self._ticks_suspended = False
        self._sync_with_state()

    def ack_substitution(self) -> None:
        self._dispatch(ConfirmSubstitution())

    def set_sub_interval(self, minutes: int) -> None:
        self._dispatch(SetSubInterval(minutes=max(1, int(minutes))))

    # ------------------------------------------------------------------
    # Visibility and recovery
    # ------------------------------------------------------------------
    async def handle_visibility_change(self, hidden: bool) -> None:
        """
        React to the app being hidden or shown.

        On hide a running clock is snapshotted (awaited) and paused. On show
        the snapshot is read back and the clock resumes with the time spent
        in the background added.
        """
        if hidden:
            await self.wake_lock.set_visible(False)
            state = self.store.state
            if not (state.is_timer_running and state.status == GameStatus.IN_PROGRESS):
                return
            snapshot = TimerSnapshot.capture(self.game_id, state.time_elapsed_in_seconds)
            try:
                await self._write_snapshot(snapshot)
            except Exception as e:
                logger.warning(f"Failed to save timer state on hide; clock keeps running: {e}")
                return
            self._hidden_snapshot = snapshot
            self._dispatch(PauseTimerForHidden())
            return

        await self.wake_lock.set_visible(True)
        fallback = self._hidden_snapshot
        if fallback is None:
            return
        self._hidden_snapshot = None

        snapshot: Optional[TimerSnapshot] = None
        try:
            snapshot = await self.persistence.get_timer_state(self.game_id)
        except Exception as e:
            logger.warning(f"Failed to read timer state on show; using in-memory snapshot: {e}")
        if snapshot is None or snapshot.game_id != self.game_id:
            snapshot = fallback
        self._dispatch(
            RestoreTimerState(saved_time=snapshot.time_elapsed_in_seconds, timestamp=snapshot.timestamp)
        )

    async def recover_timer_state(self) -> bool:
        """
        Resume an in-progress match from its persisted snapshot after a relaunch.

        Returns:
            True if the clock was restored
        """
        state = self.store.state
        if not self.game_id or state.status != GameStatus.IN_PROGRESS or state.is_timer_running:
            return False
        try:
            snapshot = await self.persistence.get_timer_state(self.game_id)
        except Exception as e:
            logger.warning(f"Failed to read timer state for game {self.game_id}: {e}")
            return False
        if snapshot is None or snapshot.game_id != self.game_id:
            return False

        logger.info(f"Restoring clock for game {self.game_id} from {snapshot.time_elapsed_in_seconds}s")
        self._dispatch(
            RestoreTimerState(saved_time=snapshot.time_elapsed_in_seconds, timestamp=snapshot.timestamp)
        )
        return True

    async def migrate_legacy_timer_state(self) -> bool:
        """
        Convert the old single-key timer record into a keyed snapshot.

        The legacy record is removed once the keyed snapshot is written.
        Records without a game id are assigned to the current game.

        Returns:
            True if a legacy record was migrated
        """
        if not self.game_id:
            return False
        try:
            legacy = await self.persistence.get_legacy_timer_state()
            if not legacy:
                return False
            try:
                snapshot = TimerSnapshot.from_json(legacy, game_id=legacy.get("gameId") or self.game_id)
            except (TypeError, ValueError) as e:
                logger.warning(f"Discarding unreadable legacy timer state: {e}")
                await self.persistence.delete_legacy_timer_state()
                return False
            await self._write_snapshot(snapshot)
            await self.persistence.delete_legacy_timer_state()
        except Exception as e:
            logger.warning(f"Failed to migrate legacy timer state: {e}")
            return False

        logger.info(f"Migrated legacy timer state to keyed snapshot for game {snapshot.game_id}")
        return True

    # ------------------------------------------------------------------
    # Ticking
    # ------------------------------------------------------------------
    def _on_state_change(self, action: GameAction, state) -> None:
        self._sync_with_state()

    def _should_tick(self) -> bool:
        state = self.store.state
        return state.is_timer_running and state.status == GameStatus.IN_PROGRESS

    def _sync_with_state(self) -> None:
        running = self._should_tick()
        if running and not self._ticks_suspended and self._tick_task is None:
            self._tick_task = asyncio.ensure_future(self._run_ticks())
        elif not running or self._ticks_suspended:
            self._stop_ticking()

        if running != self._wake_lock_target:
            self._wake_lock_target = running
            self._spawn(self.wake_lock.sync(running), "wake lock sync")

    def _stop_ticking(self) -> None:
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None

    async def _run_ticks(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time()
        while True:
            deadline += self.tick_interval
            await asyncio.sleep(max(0.0, deadline - loop.time()))
            if not self._tick():
                return

    def _tick(self) -> bool:
        """Advance the clock by one second; returns False once ticking must stop."""
        state = self.store.state
        if not self._should_tick():
            self._tick_task = None
            return False

        period_end = state.period_end_seconds()
        next_time = round(state.time_elapsed_in_seconds) + 1
        if next_time >= period_end:
            # stop the interval before the transition is dispatched
            self._tick_task = None
            self._delete_snapshot_in_background("timer state delete at period end")
            new_status = GameStatus.GAME_END if state.is_last_period() else GameStatus.PERIOD_END
            logger.info(f"Period {state.current_period} finished at {period_end}s ({new_status.value})")
            self._dispatch(EndPeriodOrGame(new_status=new_status, final_time=period_end))
            return False

        self._dispatch(SetTimerElapsed(seconds=next_time))
        self._save_snapshot_in_background(next_time)
        return True

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def _save_snapshot_in_background(self, elapsed: float) -> None:
        if not self.game_id:
            return
        if self._pending_writes >= self.max_pending_writes:
            logger.debug(f"Skipping timer snapshot at {elapsed}s; {self._pending_writes} writes in flight")
            return

        self._pending_writes += 1
        task = self._spawn(
            self._write_snapshot(TimerSnapshot.capture(self.game_id, elapsed)),
            "timer state save",
        )
        task.add_done_callback(self._on_write_done)

    def _on_write_done(self, task: asyncio.Task) -> None:
        self._pending_writes -= 1

    def _write_snapshot(self, snapshot: TimerSnapshot) -> "asyncio.Future[None]":
        return self._queue_snapshot_op(
            f"timer:{snapshot.game_id}:save",
            lambda: self.persistence.save_timer_state(snapshot),
        )

    def _delete_snapshot(self) -> "asyncio.Future[None]":
        return self._queue_snapshot_op(
            f"timer:{self.game_id}:delete",
            lambda: self.persistence.delete_timer_state(self.game_id),
        )

    def _delete_snapshot_in_background(self, description: str) -> None:
        if self.game_id:
            self._spawn(self._delete_snapshot(), description)

    def _queue_snapshot_op(
        self, name: str, operation: Callable[[], Awaitable[None]]
    ) -> "asyncio.Future[None]":
        # queue position is taken now, not when a wrapping task first runs
        if self.sync_queue is None:
            return asyncio.ensure_future(operation())
        return self.sync_queue.with_synchronization(name, operation)

    def _spawn(self, aw: Awaitable[None], description: str) -> asyncio.Future:
        task = asyncio.ensure_future(aw)
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                return
            error = t.exception()
            if error is not None:
                logger.warning(f"Background {description} failed: {error}")

        task.add_done_callback(_done)
        return task

    def _dispatch(self, action: GameAction) -> None:
        self.store.dispatch(action)
