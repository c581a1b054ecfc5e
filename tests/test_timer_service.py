import asyncio
import unittest
from unittest.mock import patch

from sideline_clock.models import GameSessionState, GameStatus, TimerSnapshot
from sideline_clock.services import (
    GameSessionStore,
    LoadPersistedGameData,
    MemoryStorageBackend,
    PersistenceError,
    PersistenceService,
    SynchronizationQueue,
    TimerService,
    WakeLockManager,
    WakeLockProvider,
)
from sideline_clock.utils.constants import LEGACY_TIMER_STATE_KEY

REDUCER_NOW = "sideline_clock.services.game_session_reducer.now_ts"
SNAPSHOT_NOW = "sideline_clock.models.timer_snapshot.now_ts"


class FailingBackend(MemoryStorageBackend):
    def __init__(self, fail_set=False, fail_delete=False):
        super().__init__()
        self.fail_set = fail_set
        self.fail_delete = fail_delete

    async def set(self, key, value):
        if self.fail_set:
            raise OSError("disk full")
        await super().set(key, value)

    async def delete(self, key):
        if self.fail_delete:
            raise OSError("read-only storage")
        await super().delete(key)


class SlowDeleteBackend(MemoryStorageBackend):
    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    async def delete(self, key):
        await asyncio.sleep(self.delay)
        await super().delete(key)


class FakeWakeLockProvider(WakeLockProvider):
    def __init__(self):
        self.requests = 0
        self.releases = 0
        self.on_revoked = None

    async def request(self, on_revoked):
        self.requests += 1
        self.on_revoked = on_revoked

    async def release(self):
        self.releases += 1


def in_progress_state(**overrides) -> GameSessionState:
    values = dict(
        status=GameStatus.IN_PROGRESS,
        current_period=1,
        period_duration_minutes=10,
        sub_interval_minutes=5,
        time_elapsed_in_seconds=100,
        next_sub_due_time_seconds=300,
        is_timer_running=True,
        start_timestamp=1.0,
    )
    values.update(overrides)
    return GameSessionState(**values)


class TimerServiceTests(unittest.IsolatedAsyncioTestCase):
    def make_service(self, state=None, backend=None, tick_interval=60.0, **kwargs) -> TimerService:
        self.backend = backend or MemoryStorageBackend()
        self.persistence = PersistenceService(self.backend)
        self.queue = SynchronizationQueue()
        self.store = GameSessionStore(state)
        self.service = TimerService(
            self.store,
            self.persistence,
            "game-1",
            sync_queue=self.queue,
            tick_interval=tick_interval,
            **kwargs,
        )
        return self.service

    async def asyncTearDown(self) -> None:
        service = getattr(self, "service", None)
        if service is not None:
            await service.close()

    async def wait_for(self, predicate, timeout=5.0) -> None:
        deadline = asyncio.get_running_loop().time() + timeout
        while not predicate():
            if asyncio.get_running_loop().time() > deadline:
                self.fail("condition not reached in time")
            await asyncio.sleep(0.005)

    async def test_start_pause_cycles_period_and_clock(self) -> None:
        service = self.make_service()
        await service.start()

        service.start_pause()
        self.assertEqual(self.store.state.status, GameStatus.IN_PROGRESS)
        self.assertEqual(self.store.state.current_period, 1)
        self.assertTrue(self.store.state.is_timer_running)

        service.start_pause()
        self.assertFalse(self.store.state.is_timer_running)
        self.assertIsNone(self.store.state.start_timestamp)

        service.start_pause()
        self.assertTrue(self.store.state.is_timer_running)

    async def test_ticks_until_period_end(self) -> None:
        state = GameSessionState(period_duration_minutes=1, number_of_periods=2)
        service = self.make_service(state, tick_interval=0.002)
        await service.start()

        service.start_pause()
        await self.wait_for(lambda: self.store.state.status == GameStatus.PERIOD_END)

        self.assertEqual(self.store.state.time_elapsed_in_seconds, 60)
        self.assertFalse(self.store.state.is_timer_running)

        # no tick may land after the transition
        await asyncio.sleep(0.05)
        self.assertEqual(self.store.state.time_elapsed_in_seconds, 60)

        await service.close()
        await self.queue.wait_for_synchronization()
        self.assertIsNone(await self.persistence.get_timer_state("game-1"))

        # next press starts the second period at its boundary
        service.start_pause()
        self.assertEqual(self.store.state.current_period, 2)
        self.assertEqual(self.store.state.time_elapsed_in_seconds, 60)

    async def test_last_period_ends_the_game(self) -> None:
        state = GameSessionState(period_duration_minutes=1, number_of_periods=1)
        service = self.make_service(state, tick_interval=0.002)
        await service.start()

        service.start_pause()
        await self.wait_for(lambda: self.store.state.status == GameStatus.GAME_END)
        self.assertEqual(self.store.state.time_elapsed_in_seconds, 60)

    async def test_ticks_persist_snapshots(self) -> None:
        state = GameSessionState(period_duration_minutes=10)
        service = self.make_service(state, tick_interval=0.005)
        await service.start()

        service.start_pause()
        await self.wait_for(lambda: self.store.state.time_elapsed_in_seconds >= 3)
        await service.close()
        await self.queue.wait_for_synchronization()

        snapshot = await self.persistence.get_timer_state("game-1")
        self.assertIsNotNone(snapshot)
        self.assertEqual(snapshot.game_id, "game-1")
        self.assertGreaterEqual(snapshot.time_elapsed_in_seconds, 1)

    async def test_pause_deletes_snapshot(self) -> None:
        service = self.make_service(GameSessionState(period_duration_minutes=10), tick_interval=0.005)
        await service.start()

        service.start_pause()
        await self.wait_for(lambda: self.store.state.time_elapsed_in_seconds >= 3)
        service.start_pause()
        await service.close()
        await self.queue.wait_for_synchronization()

        self.assertIsNone(await self.persistence.get_timer_state("game-1"))

    async def test_hide_and_show_adds_background_time(self) -> None:
        service = self.make_service(in_progress_state())
        await service.start()

        with patch(SNAPSHOT_NOW, return_value=1000.0):
            await service.handle_visibility_change(hidden=True)

        self.assertFalse(self.store.state.is_timer_running)
        self.assertEqual(self.store.state.time_elapsed_in_seconds, 100)
        stored = await self.persistence.get_timer_state("game-1")
        self.assertEqual(stored.time_elapsed_in_seconds, 100)
        self.assertEqual(stored.timestamp, 1000.0)

        with patch(REDUCER_NOW, return_value=1030.0):
            await service.handle_visibility_change(hidden=False)

        self.assertTrue(self.store.state.is_timer_running)
        self.assertEqual(self.store.state.time_elapsed_in_seconds, 130)

    async def test_hide_keeps_clock_running_when_save_fails(self) -> None:
        service = self.make_service(in_progress_state(), backend=FailingBackend(fail_set=True))
        await service.start()

        with self.assertLogs("sideline_clock.services.timer_service", level="WARNING"):
            await service.handle_visibility_change(hidden=True)
        self.assertTrue(self.store.state.is_timer_running)

        # nothing was paused, so showing again changes nothing
        before = self.store.state
        await service.handle_visibility_change(hidden=False)
        self.assertIs(self.store.state, before)

    async def test_hide_while_paused_does_nothing(self) -> None:
        service = self.make_service(in_progress_state(is_timer_running=False, start_timestamp=None))
        await service.start()

        await service.handle_visibility_change(hidden=True)
        self.assertIsNone(await self.persistence.get_timer_state("game-1"))

    async def test_reset_deletes_snapshot_and_rewinds(self) -> None:
        service = self.make_service(in_progress_state(is_timer_running=False, start_timestamp=None))
        await service.start()
        await self.persistence.save_timer_state(TimerSnapshot("game-1", 100, 1000.0))

        await service.reset()
        self.assertEqual(self.store.state.time_elapsed_in_seconds, 0)
        self.assertIsNone(await self.persistence.get_timer_state("game-1"))

    async def test_reset_propagates_delete_failure(self) -> None:
        service = self.make_service(
            in_progress_state(is_timer_running=False, start_timestamp=None),
            backend=FailingBackend(fail_delete=True),
        )
        await service.start()

        with self.assertRaises(PersistenceError):
            await service.reset()
        self.assertEqual(self.store.state.time_elapsed_in_seconds, 100)

    async def test_reset_is_not_undone_by_late_ticks(self) -> None:
        service = self.make_service(
            GameSessionState(period_duration_minutes=10),
            backend=SlowDeleteBackend(delay=0.05),
            tick_interval=0.01,
        )
        await service.start()

        service.start_pause()
        await self.wait_for(lambda: self.store.state.time_elapsed_in_seconds >= 2)
        await service.reset()
        self.assertEqual(self.store.state.time_elapsed_in_seconds, 0)
        self.assertFalse(self.store.state.is_timer_running)

        await asyncio.sleep(0.05)
        await service.close()
        await self.queue.wait_for_synchronization()
        self.assertIsNone(await self.persistence.get_timer_state("game-1"))
        self.assertEqual(self.store.state.time_elapsed_in_seconds, 0)

    async def test_failed_reset_keeps_clock_running(self) -> None:
        service = self.make_service(
            in_progress_state(),
            backend=FailingBackend(fail_delete=True),
            tick_interval=0.005,
        )
        await service.start()

        with self.assertRaises(PersistenceError):
            await service.reset()
        self.assertTrue(self.store.state.is_timer_running)
        await self.wait_for(lambda: self.store.state.time_elapsed_in_seconds > 101)

    async def test_paused_match_reopens_paused(self) -> None:
        service = self.make_service(GameSessionState(period_duration_minutes=10), tick_interval=0.005)
        await service.start()

        service.start_pause()
        await self.wait_for(lambda: self.store.state.time_elapsed_in_seconds >= 3)
        service.start_pause()
        paused_at = self.store.state.time_elapsed_in_seconds
        await service.close()
        await self.queue.wait_for_synchronization()
        self.assertIsNone(await self.persistence.get_timer_state("game-1"))

        # relaunch from the saved match record
        store = GameSessionStore()
        store.dispatch(LoadPersistedGameData(data=self.store.state.to_json()))
        self.service = TimerService(store, self.persistence, "game-1", sync_queue=self.queue, tick_interval=60.0)
        with patch(REDUCER_NOW, return_value=4_000_000_000.0):
            await self.service.start()

        self.assertEqual(store.state.status, GameStatus.IN_PROGRESS)
        self.assertFalse(store.state.is_timer_running)
        self.assertEqual(store.state.time_elapsed_in_seconds, paused_at)

    async def test_running_match_resumes_after_crash(self) -> None:
        service = self.make_service(GameSessionState(period_duration_minutes=10), tick_interval=0.005)
        await service.start()

        service.start_pause()
        await self.wait_for(lambda: self.store.state.time_elapsed_in_seconds >= 3)
        # the app dies with the clock still running
        await service.close()
        await self.queue.wait_for_synchronization()
        snapshot = await self.persistence.get_timer_state("game-1")
        self.assertIsNotNone(snapshot)

        store = GameSessionStore()
        store.dispatch(LoadPersistedGameData(data=self.store.state.to_json()))
        self.service = TimerService(store, self.persistence, "game-1", sync_queue=self.queue, tick_interval=60.0)
        with patch(REDUCER_NOW, return_value=snapshot.timestamp + 300.0):
            await self.service.start()

        self.assertTrue(store.state.is_timer_running)
        self.assertEqual(store.state.time_elapsed_in_seconds, snapshot.time_elapsed_in_seconds + 300)

    async def test_recover_ignores_other_states(self) -> None:
        service = self.make_service(GameSessionState())
        await self.persistence.save_timer_state(TimerSnapshot("game-1", 200, 1000.0))

        self.assertFalse(await service.recover_timer_state())
        self.assertEqual(self.store.state.status, GameStatus.NOT_STARTED)

    async def test_legacy_record_is_migrated(self) -> None:
        service = self.make_service(GameSessionState())
        await self.backend.set(LEGACY_TIMER_STATE_KEY, {"timeElapsedInSeconds": 42, "timestamp": 1000000})

        await service.start()

        snapshot = await self.persistence.get_timer_state("game-1")
        self.assertEqual(snapshot.time_elapsed_in_seconds, 42)
        self.assertEqual(snapshot.timestamp, 1000.0)
        self.assertIsNone(await self.backend.get(LEGACY_TIMER_STATE_KEY))

    async def test_unreadable_legacy_record_is_discarded(self) -> None:
        service = self.make_service(GameSessionState())
        await self.backend.set(LEGACY_TIMER_STATE_KEY, {"gameId": "game-7", "timeElapsedInSeconds": "soon"})
        with self.assertLogs("sideline_clock.services.timer_service", level="WARNING"):
            self.assertFalse(await service.migrate_legacy_timer_state())
        self.assertIsNone(await self.backend.get(LEGACY_TIMER_STATE_KEY))

    async def test_substitution_controls(self) -> None:
        service = self.make_service(in_progress_state(is_timer_running=False, start_timestamp=None))
        await service.start()

        service.ack_substitution()
        self.assertEqual(self.store.state.next_sub_due_time_seconds, 600)
        self.assertEqual(self.store.state.last_sub_confirmation_time_seconds, 100)

        service.set_sub_interval(0)
        self.assertEqual(self.store.state.sub_interval_minutes, 1)
        self.assertEqual(self.store.state.next_sub_due_time_seconds, 160)

        status = service.status().to_json()
        self.assertEqual(status["game_status"], "inProgress")
        self.assertEqual(status["sub_alert_level"], "none")

    async def test_wake_lock_follows_clock(self) -> None:
        provider = FakeWakeLockProvider()
        manager = WakeLockManager(provider)
        service = self.make_service(wake_lock=manager)
        await service.start()

        service.start_pause()
        await self.wait_for(lambda: manager.is_held)
        self.assertEqual(provider.requests, 1)

        # platform revoked the lock while visible and running
        provider.on_revoked()
        await self.wait_for(lambda: provider.requests == 2)
        self.assertTrue(manager.is_held)

        service.start_pause()
        await self.wait_for(lambda: not manager.is_held)
        self.assertEqual(provider.releases, 1)


if __name__ == "__main__":
    unittest.main()
