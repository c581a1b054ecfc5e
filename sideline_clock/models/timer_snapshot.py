"""Persisted timer snapshot used to recover the match clock after suspension."""
from dataclasses import dataclass
from typing import Optional

from ..utils import from_epoch_ms, now_ts, to_epoch_ms


@dataclass(frozen=True)
class TimerSnapshot:
    """
    Elapsed match time captured at a wall-clock instant.

    The wire format uses the keys ``gameId``, ``timeElapsedInSeconds`` and
    ``timestamp`` (epoch milliseconds), which is also the shape of the legacy
    single-key timer record.

    Attributes:
        game_id: Identifier of the match the snapshot belongs to
        time_elapsed_in_seconds: Match clock at capture time
        timestamp: Capture time in epoch seconds
    """
    game_id: str
    time_elapsed_in_seconds: float
    timestamp: float

    @classmethod
    def capture(cls, game_id: str, time_elapsed_in_seconds: float) -> "TimerSnapshot":
        """Snapshot ``time_elapsed_in_seconds`` at the current wall-clock time."""
        return cls(game_id=game_id, time_elapsed_in_seconds=time_elapsed_in_seconds, timestamp=now_ts())

    def to_json(self) -> dict:
        return {
            "gameId": self.game_id,
            "timeElapsedInSeconds": self.time_elapsed_in_seconds,
            "timestamp": to_epoch_ms(self.timestamp),
        }

    @staticmethod
    def from_json(data: dict, game_id: Optional[str] = None) -> "TimerSnapshot":
        """
        Create a TimerSnapshot from its wire representation.

        Args:
            data: Dictionary in the snapshot wire format
            game_id: Overrides the stored game id (used when migrating legacy records)

        Raises:
            ValueError: If the record has no usable game id
        """
        resolved_id = game_id if game_id is not None else data.get("gameId")
        if not resolved_id:
            raise ValueError("Timer snapshot is missing its game id")
        raw_ts = data.get("timestamp")
        return TimerSnapshot(
            game_id=str(resolved_id),
            time_elapsed_in_seconds=float(data.get("timeElapsedInSeconds") or 0),
            timestamp=from_epoch_ms(raw_ts) if raw_ts else now_ts(),
        )
