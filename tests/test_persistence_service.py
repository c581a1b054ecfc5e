import os
import tempfile
import unittest

from sideline_clock.models import GameSessionState, GameStatus, TimerSnapshot
from sideline_clock.services import (
    JsonFileStorageBackend,
    MemoryStorageBackend,
    PersistenceError,
    PersistenceService,
)


class BrokenBackend(MemoryStorageBackend):
    async def get(self, key):
        raise OSError("storage unavailable")

    async def set(self, key, value):
        raise OSError("storage unavailable")

    async def delete(self, key):
        raise OSError("storage unavailable")


class PersistenceServiceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.backend = MemoryStorageBackend()
        self.service = PersistenceService(self.backend)

    async def test_timer_snapshot_storage(self) -> None:
        await self.service.save_timer_state(TimerSnapshot("game-1", 125, 1700000000.5))

        self.assertEqual(self.backend.keys(), ["timer_state:game-1"])
        raw = await self.backend.get("timer_state:game-1")
        self.assertEqual(raw, {"gameId": "game-1", "timeElapsedInSeconds": 125, "timestamp": 1700000000500})

        snapshot = await self.service.get_timer_state("game-1")
        self.assertEqual(snapshot, TimerSnapshot("game-1", 125.0, 1700000000.5))

        await self.service.delete_timer_state("game-1")
        self.assertIsNone(await self.service.get_timer_state("game-1"))

    async def test_malformed_snapshot_reads_as_missing(self) -> None:
        await self.backend.set("timer_state:game-1", {"timeElapsedInSeconds": 10})
        with self.assertLogs("sideline_clock.services.persistence_service", level="WARNING"):
            self.assertIsNone(await self.service.get_timer_state("game-1"))

    async def test_game_records(self) -> None:
        state = GameSessionState(status=GameStatus.PERIOD_END, home_score=2, team_name="Hornets")
        await self.service.save_game("game-1", state)

        record = await self.service.load_game("game-1")
        self.assertEqual(record["status"], "periodEnd")
        self.assertEqual(GameSessionState.from_json(record).team_name, "Hornets")
        self.assertIsNone(await self.service.load_game("game-2"))

    async def test_backend_errors_are_wrapped(self) -> None:
        service = PersistenceService(BrokenBackend())
        with self.assertRaises(PersistenceError):
            await service.save_record("a", {})
        with self.assertRaises(PersistenceError):
            await service.get_timer_state("game-1")
        with self.assertRaises(PersistenceError):
            await service.delete_timer_state("game-1")

    async def test_missing_backend_is_a_no_op(self) -> None:
        with self.assertLogs("sideline_clock.services.persistence_service", level="INFO"):
            service = PersistenceService(None)

        self.assertFalse(service.is_available)
        await service.save_timer_state(TimerSnapshot("game-1", 1, 1.0))
        self.assertIsNone(await service.get_timer_state("game-1"))
        await service.delete_timer_state("game-1")
        self.assertIsNone(await service.get_legacy_timer_state())


class JsonFileStorageBackendTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.directory = os.path.join(self.tmp.name, "records")
        self.backend = JsonFileStorageBackend(self.directory)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    async def test_set_get_delete(self) -> None:
        self.assertIsNone(await self.backend.get("timer_state:game-1"))

        await self.backend.set("timer_state:game-1", {"gameId": "game-1"})
        self.assertEqual(os.listdir(self.directory), ["timer_state_game-1.json"])
        self.assertEqual(await self.backend.get("timer_state:game-1"), {"gameId": "game-1"})

        await self.backend.set("timer_state:game-1", {"gameId": "game-1", "timeElapsedInSeconds": 5})
        self.assertEqual((await self.backend.get("timer_state:game-1"))["timeElapsedInSeconds"], 5)

        await self.backend.delete("timer_state:game-1")
        await self.backend.delete("timer_state:game-1")
        self.assertIsNone(await self.backend.get("timer_state:game-1"))

    async def test_service_over_files(self) -> None:
        service = PersistenceService(self.backend)
        await service.save_game("game-1", GameSessionState(away_score=4))
        reopened = PersistenceService(JsonFileStorageBackend(self.directory))
        record = await reopened.load_game("game-1")
        self.assertEqual(record["away_score"], 4)


if __name__ == "__main__":
    unittest.main()
