"""Sync progress tracking for persistence work.

Keeps an in-memory ledger of named upload/download/reconcile operations and
derives the aggregate view the UI shows: overall progress, whether anything
is still running, and how many operations are pending or failed.
"""
import asyncio
import logging
import uuid
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..models import SyncOperation, SyncOperationType, SyncProgress, SyncStatus
from ..utils import now_ts, to_epoch_ms
from ..utils.constants import MAX_COMPLETED_OPERATIONS, PROGRESS_CLEANUP_INTERVAL_SECONDS

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("status", "progress", "error")


class SyncProgressTracker:
    """Ledger of tracked operations with derived progress figures."""

    def __init__(
        self,
        max_completed: int = MAX_COMPLETED_OPERATIONS,
        cleanup_interval: float = PROGRESS_CLEANUP_INTERVAL_SECONDS,
    ):
        self.max_completed = max_completed
        self.cleanup_interval = cleanup_interval
        self._operations: List[SyncOperation] = []
        self._last_sync: Optional[float] = None
        self._cleanup_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Ledger operations
    # ------------------------------------------------------------------
    def add_operation(
        self,
        type: SyncOperationType,
        resource: str,
        status: SyncStatus = SyncStatus.PENDING,
        progress: float = 0.0,
    ) -> str:
        """
        Start tracking an operation.

        Args:
            type: Kind of work
            resource: What is being synchronized (table, record key, ...)
            status: Initial status
            progress: Initial progress, 0-100

        Returns:
            Identifier of the new operation
        """
        timestamp = now_ts()
        op_id = f"{type.value}_{resource}_{to_epoch_ms(timestamp)}_{uuid.uuid4().hex[:9]}"
        self._operations.append(
            SyncOperation(
                id=op_id,
                type=type,
                resource=resource,
                status=status,
                progress=_clamp_progress(progress),
                timestamp=timestamp,
            )
        )
        return op_id

    def update_operation(self, op_id: str, **updates: Any) -> bool:
        """
        Merge ``status``, ``progress`` and/or ``error`` into an operation.

        Returns:
            True if the operation exists

        Raises:
            ValueError: If an unsupported field is passed
        """
        unknown = set(updates) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update sync operation fields: {', '.join(sorted(unknown))}")
        if "progress" in updates:
            updates["progress"] = _clamp_progress(updates["progress"])

        for index, op in enumerate(self._operations):
            if op.id == op_id:
                self._operations[index] = replace(op, **updates)
                if updates.get("status") == SyncStatus.COMPLETED:
                    self._last_sync = now_ts()
                return True
        return False

    def remove_operation(self, op_id: str) -> None:
        self._operations = [op for op in self._operations if op.id != op_id]

    def clear_completed(self) -> None:
        self._operations = [op for op in self._operations if op.status != SyncStatus.COMPLETED]

    def retry_failed(self) -> int:
        """
        Reset every failed operation to pending with zero progress.

        Returns:
            Number of operations reset
        """
        count = 0
        for index, op in enumerate(self._operations):
            if op.status == SyncStatus.FAILED:
                self._operations[index] = replace(op, status=SyncStatus.PENDING, progress=0.0, error=None)
                count += 1
        return count

    def get_operation(self, op_id: str) -> Optional[SyncOperation]:
        for op in self._operations:
            if op.id == op_id:
                return op
        return None

    # ------------------------------------------------------------------
    # Aggregate view
    # ------------------------------------------------------------------
    @property
    def progress(self) -> SyncProgress:
        ops = list(self._operations)
        counts: Dict[SyncStatus, int] = {status: 0 for status in SyncStatus}
        for op in ops:
            counts[op.status] += 1
        return SyncProgress(
            operations=ops,
            is_active=bool(counts[SyncStatus.PENDING] or counts[SyncStatus.SYNCING]),
            overall_progress=(sum(op.progress for op in ops) / len(ops)) if ops else 0.0,
            last_sync=self._last_sync,
            pending_count=counts[SyncStatus.PENDING],
            failed_count=counts[SyncStatus.FAILED],
        )

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------
    def cleanup(self) -> int:
        """
        Keep only the most recent ``max_completed`` completed operations.

        Operations in any other status are never evicted.

        Returns:
            Number of evicted operations
        """
        completed = sorted(
            (op for op in self._operations if op.status == SyncStatus.COMPLETED),
            key=lambda op: op.timestamp,
            reverse=True,
        )
        evicted = {op.id for op in completed[self.max_completed:]}
        if evicted:
            self._operations = [op for op in self._operations if op.id not in evicted]
            logger.debug(f"Evicted {len(evicted)} completed sync operations")
        return len(evicted)

    def start_periodic_cleanup(self) -> None:
        """Run ``cleanup`` every ``cleanup_interval`` seconds on the current loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.ensure_future(self._cleanup_loop())

    async def stop(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            await asyncio.gather(self._cleanup_task, return_exceptions=True)
            self._cleanup_task = None

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.cleanup()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def track(
        self,
        type: SyncOperationType,
        resource: str,
        operation: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Run ``operation`` while tracking it as one sync operation.

        The operation is marked syncing, then completed or failed; failures
        are recorded and re-raised.
        """
        op_id = self.add_operation(type, resource, status=SyncStatus.SYNCING)
        try:
            result = await operation()
        except Exception as e:
            self.update_operation(op_id, status=SyncStatus.FAILED, error=str(e))
            raise
        self.update_operation(op_id, status=SyncStatus.COMPLETED, progress=100.0)
        return result


def _clamp_progress(value: float) -> float:
    return max(0.0, min(100.0, float(value)))
