"""Dataclasses describing tracked synchronization work."""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class SyncOperationType(Enum):
    """Kind of work a tracked operation performs."""
    UPLOAD = "upload"
    DOWNLOAD = "download"
    CONFLICT_RESOLVE = "conflict_resolve"


class SyncStatus(Enum):
    """Lifecycle of a tracked operation."""
    PENDING = "pending"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SyncOperation:
    """A single tracked upload/download/reconcile operation."""

    id: str
    type: SyncOperationType
    resource: str
    status: SyncStatus = SyncStatus.PENDING
    progress: float = 0.0  # 0-100
    error: Optional[str] = None
    timestamp: float = 0.0

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "resource": self.resource,
            "status": self.status.value,
            "progress": self.progress,
            "error": self.error,
            "timestamp": self.timestamp,
        }


@dataclass
class SyncProgress:
    """Aggregated view over all tracked operations."""

    operations: List[SyncOperation] = field(default_factory=list)
    is_active: bool = False
    overall_progress: float = 0.0
    last_sync: Optional[float] = None
    pending_count: int = 0
    failed_count: int = 0

    def to_json(self) -> dict:
        return {
            "operations": [op.to_json() for op in self.operations],
            "is_active": self.is_active,
            "overall_progress": self.overall_progress,
            "last_sync": self.last_sync,
            "pending_count": self.pending_count,
            "failed_count": self.failed_count,
        }
