"""
Action vocabulary for the game session state machine.

Every change to a GameSessionState is expressed as one of the immutable
action objects below and applied by ``game_session_reducer``.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from ..models import GameSessionState, GameStatus
from ..models.game_state import METADATA_FIELDS, validate_period_count, validate_positive_minutes


class GameAction:
    """Base class for all session actions."""

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class StartPeriod(GameAction):
    """Begin ``next_period`` from the not-started or period-end state."""
    next_period: int
    period_duration_minutes: Optional[int] = None
    sub_interval_minutes: Optional[int] = None


@dataclass(frozen=True)
class SetTimerElapsed(GameAction):
    """Per-tick clock update."""
    seconds: float


@dataclass(frozen=True)
class EndPeriodOrGame(GameAction):
    """Stop the clock at the end of the current period or of the match."""
    new_status: GameStatus
    final_time: Optional[float] = None

    def __post_init__(self) -> None:
        if self.new_status not in (GameStatus.PERIOD_END, GameStatus.GAME_END):
            raise ValueError(f"EndPeriodOrGame requires periodEnd or gameEnd, got {self.new_status.value}")


@dataclass(frozen=True)
class ConfirmSubstitution(GameAction):
    """The coach acknowledged a substitution."""


@dataclass(frozen=True)
class SetSubInterval(GameAction):
    """Change the substitution interval mid-match."""
    minutes: int


@dataclass(frozen=True)
class RestoreTimerState(GameAction):
    """Resume from a persisted snapshot, adding the time spent suspended."""
    saved_time: float
    timestamp: float  # epoch seconds when the snapshot was written


@dataclass(frozen=True)
class PauseTimerForHidden(GameAction):
    """Stop the wall-clock reference while the app is in the background."""


@dataclass(frozen=True)
class SetTimerRunning(GameAction):
    """Pause or resume the clock within the current period."""
    running: bool


@dataclass(frozen=True)
class ResetTimerOnly(GameAction):
    """Rewind the clock to the start of the current period."""


@dataclass(frozen=True)
class ResetTimerAndGameProgress(GameAction):
    """Return to an unstarted match, keeping metadata unless overridden."""
    overrides: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LoadPersistedGameData(GameAction):
    """Replace the session with a persisted match record."""
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResetGameSession(GameAction):
    """Replace the session with a fully built state."""
    state: GameSessionState


@dataclass(frozen=True)
class SetNumberOfPeriods(GameAction):
    count: int

    def __post_init__(self) -> None:
        validate_period_count(self.count)


@dataclass(frozen=True)
class SetPeriodDuration(GameAction):
    minutes: int

    def __post_init__(self) -> None:
        validate_positive_minutes(self.minutes, "Period duration")


@dataclass(frozen=True)
class SetSelectedPlayerIds(GameAction):
    player_ids: Tuple[str, ...]


@dataclass(frozen=True)
class SetScore(GameAction):
    home: int
    away: int


@dataclass(frozen=True)
class UpdateMetadata(GameAction):
    """Update team name, opponent, date, location and similar fields."""
    fields: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        unknown = set(self.fields) - set(METADATA_FIELDS)
        if unknown:
            raise ValueError(f"Unknown metadata fields: {', '.join(sorted(unknown))}")
