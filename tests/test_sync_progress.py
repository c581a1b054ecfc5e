import asyncio
import itertools
import unittest
from unittest.mock import patch

from sideline_clock.models import SyncOperationType, SyncStatus
from sideline_clock.services import SyncProgressTracker

TRACKER_NOW = "sideline_clock.services.sync_progress.now_ts"


class SyncProgressTrackerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tracker = SyncProgressTracker()

    def test_empty_tracker(self) -> None:
        progress = self.tracker.progress
        self.assertEqual(progress.operations, [])
        self.assertFalse(progress.is_active)
        self.assertEqual(progress.overall_progress, 0.0)
        self.assertIsNone(progress.last_sync)

    def test_add_and_update_operations(self) -> None:
        upload = self.tracker.add_operation(SyncOperationType.UPLOAD, "game:1")
        download = self.tracker.add_operation(SyncOperationType.DOWNLOAD, "roster", progress=150)

        self.assertTrue(upload.startswith("upload_game:1_"))
        self.assertNotEqual(upload, download)
        self.assertEqual(self.tracker.get_operation(download).progress, 100.0)

        progress = self.tracker.progress
        self.assertTrue(progress.is_active)
        self.assertEqual(progress.pending_count, 2)
        self.assertEqual(progress.overall_progress, 50.0)

        with patch(TRACKER_NOW, return_value=1234.0):
            self.assertTrue(self.tracker.update_operation(upload, status=SyncStatus.COMPLETED, progress=100))
        self.assertTrue(self.tracker.update_operation(download, status=SyncStatus.FAILED, error="offline"))

        progress = self.tracker.progress
        self.assertFalse(progress.is_active)
        self.assertEqual(progress.failed_count, 1)
        self.assertEqual(progress.last_sync, 1234.0)
        self.assertEqual(self.tracker.get_operation(download).error, "offline")

    def test_update_rejects_unknown_fields_and_ids(self) -> None:
        op_id = self.tracker.add_operation(SyncOperationType.UPLOAD, "game:1")
        with self.assertRaises(ValueError):
            self.tracker.update_operation(op_id, resource="other")
        self.assertFalse(self.tracker.update_operation("missing", progress=10))

    def test_retry_failed_and_clear_completed(self) -> None:
        failed = self.tracker.add_operation(SyncOperationType.UPLOAD, "a", status=SyncStatus.FAILED, progress=40)
        self.tracker.update_operation(failed, error="timeout")
        done = self.tracker.add_operation(SyncOperationType.UPLOAD, "b", status=SyncStatus.COMPLETED)

        self.assertEqual(self.tracker.retry_failed(), 1)
        retried = self.tracker.get_operation(failed)
        self.assertEqual(retried.status, SyncStatus.PENDING)
        self.assertEqual(retried.progress, 0.0)
        self.assertIsNone(retried.error)

        self.tracker.clear_completed()
        self.assertIsNone(self.tracker.get_operation(done))
        self.assertIsNotNone(self.tracker.get_operation(failed))

        self.tracker.remove_operation(failed)
        self.assertEqual(self.tracker.progress.operations, [])

    def test_cleanup_keeps_most_recent_completed(self) -> None:
        tracker = SyncProgressTracker(max_completed=2)
        clock = itertools.count(1000)
        with patch(TRACKER_NOW, side_effect=lambda: float(next(clock))):
            oldest = tracker.add_operation(SyncOperationType.UPLOAD, "1", status=SyncStatus.COMPLETED)
            pending = tracker.add_operation(SyncOperationType.UPLOAD, "2")
            middle = tracker.add_operation(SyncOperationType.UPLOAD, "3", status=SyncStatus.COMPLETED)
            newest = tracker.add_operation(SyncOperationType.UPLOAD, "4", status=SyncStatus.COMPLETED)

        self.assertEqual(tracker.cleanup(), 1)
        self.assertIsNone(tracker.get_operation(oldest))
        for op_id in (pending, middle, newest):
            self.assertIsNotNone(tracker.get_operation(op_id))


class SyncProgressTrackAsyncTests(unittest.IsolatedAsyncioTestCase):
    async def test_track_records_outcome(self) -> None:
        tracker = SyncProgressTracker()

        async def succeed():
            return "ok"

        async def fail():
            raise OSError("disk full")

        self.assertEqual(await tracker.track(SyncOperationType.UPLOAD, "game:1", succeed), "ok")
        with self.assertRaises(OSError):
            await tracker.track(SyncOperationType.UPLOAD, "game:2", fail)

        ops = {op.resource: op for op in tracker.progress.operations}
        self.assertEqual(ops["game:1"].status, SyncStatus.COMPLETED)
        self.assertEqual(ops["game:1"].progress, 100.0)
        self.assertEqual(ops["game:2"].status, SyncStatus.FAILED)
        self.assertEqual(ops["game:2"].error, "disk full")

    async def test_periodic_cleanup(self) -> None:
        tracker = SyncProgressTracker(max_completed=0, cleanup_interval=0.01)
        tracker.add_operation(SyncOperationType.UPLOAD, "game:1", status=SyncStatus.COMPLETED)

        tracker.start_periodic_cleanup()
        await asyncio.sleep(0.05)
        await tracker.stop()

        self.assertEqual(tracker.progress.operations, [])


if __name__ == "__main__":
    unittest.main()
