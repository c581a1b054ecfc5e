"""
GameSessionState model for the Sideline Clock application.

This module contains the GameSessionState dataclass which represents the
complete state of a live match session: period progress, the running clock,
the substitution schedule and the match metadata that is loaded and reset
together with them.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..utils.constants import (
    DEFAULT_NUMBER_OF_PERIODS,
    DEFAULT_PERIOD_DURATION_MIN,
    DEFAULT_SUB_INTERVAL_MIN,
    SUPPORTED_PERIOD_COUNTS,
)


class GameStatus(Enum):
    """Progress of a match through its periods."""
    NOT_STARTED = "notStarted"
    IN_PROGRESS = "inProgress"
    PERIOD_END = "periodEnd"
    GAME_END = "gameEnd"


class SubAlertLevel(Enum):
    """How urgently the coach should be reminded to rotate players."""
    NONE = "none"
    WARNING = "warning"
    DUE = "due"


@dataclass(frozen=True)
class IntervalLog:
    """A completed substitution interval."""
    period: int
    duration: float  # seconds between two confirmed substitutions
    timestamp: float  # elapsed match time when the interval was closed

    def to_json(self) -> dict:
        return {"period": self.period, "duration": self.duration, "timestamp": self.timestamp}

    @staticmethod
    def from_json(data: dict) -> "IntervalLog":
        return IntervalLog(
            period=int(data.get("period", 1)),
            duration=float(data.get("duration", 0)),
            timestamp=float(data.get("timestamp", 0)),
        )


def validate_period_count(count: int) -> int:
    """Return ``count`` as an int or raise ValueError if it is not supported."""
    count = int(count)
    if count not in SUPPORTED_PERIOD_COUNTS:
        raise ValueError(f"Number of periods must be one of {SUPPORTED_PERIOD_COUNTS}, got {count}")
    return count


def validate_positive_minutes(minutes: int, label: str) -> int:
    """Return ``minutes`` as an int or raise ValueError if it is not positive."""
    minutes = int(minutes)
    if minutes < 1:
        raise ValueError(f"{label} must be a positive number of minutes, got {minutes}")
    return minutes


@dataclass
class GameSessionState:
    """
    Represents the live state of a match session.

    Instances are treated as values: the reducer always returns a new
    instance instead of writing to fields of an existing one.

    Attributes:
        status: Progress of the match through its periods
        current_period: Active period number (1-based)
        number_of_periods: Periods in the match (1 or 2)
        period_duration_minutes: Length of each period
        sub_interval_minutes: Minutes between substitution reminders
        time_elapsed_in_seconds: Match clock; authoritative while paused
        start_timestamp: Epoch seconds when the clock last resumed, None while paused
        is_timer_running: Whether the clock is ticking
        next_sub_due_time_seconds: Elapsed time at which the next substitution is due
        sub_alert_level: Alert derived from elapsed time and the due-time
        last_sub_confirmation_time_seconds: Elapsed time of the last confirmed substitution
        completed_interval_durations: Closed substitution intervals, newest first
        selected_player_ids: Players picked for this match
        home_score: Goals for the home side
        away_score: Goals for the away side
    """
    status: GameStatus = GameStatus.NOT_STARTED
    current_period: int = 1
    number_of_periods: int = DEFAULT_NUMBER_OF_PERIODS
    period_duration_minutes: int = DEFAULT_PERIOD_DURATION_MIN
    sub_interval_minutes: int = DEFAULT_SUB_INTERVAL_MIN
    time_elapsed_in_seconds: float = 0
    start_timestamp: Optional[float] = None
    is_timer_running: bool = False
    next_sub_due_time_seconds: float = DEFAULT_SUB_INTERVAL_MIN * 60
    sub_alert_level: SubAlertLevel = SubAlertLevel.NONE
    last_sub_confirmation_time_seconds: float = 0
    completed_interval_durations: List[IntervalLog] = field(default_factory=list)
    selected_player_ids: List[str] = field(default_factory=list)
    home_score: int = 0
    away_score: int = 0
    # match metadata
    team_name: str = "My Team"
    opponent_name: str = "Opponent"
    game_date: str = ""
    game_time: str = ""
    game_location: str = ""
    home_or_away: str = "home"
    game_notes: str = ""
    season_id: str = ""
    tournament_id: str = ""
    age_group: str = ""
    demand_factor: float = 1.0

    def period_start_seconds(self, period: Optional[int] = None) -> int:
        """Elapsed time at which ``period`` (default: the current one) begins."""
        period = self.current_period if period is None else period
        return (period - 1) * self.period_duration_minutes * 60

    def period_end_seconds(self, period: Optional[int] = None) -> int:
        """Elapsed time at which ``period`` (default: the current one) ends."""
        period = self.current_period if period is None else period
        return period * self.period_duration_minutes * 60

    def is_last_period(self) -> bool:
        return self.current_period >= self.number_of_periods

    def to_json(self) -> dict:
        """
        Convert GameSessionState to JSON-serializable dictionary.

        Returns:
            Dictionary representation suitable for JSON serialization
        """
        return {
            "status": self.status.value,
            "current_period": self.current_period,
            "number_of_periods": self.number_of_periods,
            "period_duration_minutes": self.period_duration_minutes,
            "sub_interval_minutes": self.sub_interval_minutes,
            "time_elapsed_in_seconds": self.time_elapsed_in_seconds,
            "start_timestamp": self.start_timestamp,
            "is_timer_running": self.is_timer_running,
            "next_sub_due_time_seconds": self.next_sub_due_time_seconds,
            "sub_alert_level": self.sub_alert_level.value,
            "last_sub_confirmation_time_seconds": self.last_sub_confirmation_time_seconds,
            "completed_interval_durations": [log.to_json() for log in self.completed_interval_durations],
            "selected_player_ids": list(self.selected_player_ids),
            "home_score": self.home_score,
            "away_score": self.away_score,
            "team_name": self.team_name,
            "opponent_name": self.opponent_name,
            "game_date": self.game_date,
            "game_time": self.game_time,
            "game_location": self.game_location,
            "home_or_away": self.home_or_away,
            "game_notes": self.game_notes,
            "season_id": self.season_id,
            "tournament_id": self.tournament_id,
            "age_group": self.age_group,
            "demand_factor": self.demand_factor,
        }

    @staticmethod
    def from_json(data: Dict[str, Any]) -> "GameSessionState":
        """
        Create GameSessionState from JSON dictionary.

        Missing keys fall back to the defaults of a fresh session.

        Args:
            data: Dictionary with session data

        Returns:
            New GameSessionState instance

        Raises:
            ValueError: If the period configuration is invalid
        """
        gs = GameSessionState()
        gs.status = GameStatus(data.get("status", GameStatus.NOT_STARTED.value))
        gs.current_period = max(1, int(data.get("current_period", 1)))
        gs.number_of_periods = validate_period_count(
            data.get("number_of_periods", DEFAULT_NUMBER_OF_PERIODS)
        )
        gs.period_duration_minutes = validate_positive_minutes(
            data.get("period_duration_minutes", DEFAULT_PERIOD_DURATION_MIN), "Period duration"
        )
        gs.sub_interval_minutes = validate_positive_minutes(
            data.get("sub_interval_minutes", DEFAULT_SUB_INTERVAL_MIN), "Substitution interval"
        )
        gs.time_elapsed_in_seconds = max(0.0, float(data.get("time_elapsed_in_seconds", 0)))
        gs.start_timestamp = data.get("start_timestamp")
        gs.is_timer_running = bool(data.get("is_timer_running", False))
        gs.next_sub_due_time_seconds = float(
            data.get("next_sub_due_time_seconds", gs.sub_interval_minutes * 60)
        )
        gs.sub_alert_level = SubAlertLevel(data.get("sub_alert_level", SubAlertLevel.NONE.value))
        gs.last_sub_confirmation_time_seconds = float(data.get("last_sub_confirmation_time_seconds", 0))
        gs.completed_interval_durations = [
            IntervalLog.from_json(entry) for entry in data.get("completed_interval_durations", []) or []
        ]
        gs.selected_player_ids = [str(pid) for pid in data.get("selected_player_ids", []) or []]
        gs.home_score = int(data.get("home_score", 0))
        gs.away_score = int(data.get("away_score", 0))
        for name in METADATA_FIELDS:
            if name in data and data[name] is not None:
                setattr(gs, name, data[name])
        gs.demand_factor = float(gs.demand_factor)

        # Keep the running flag and its wall-clock reference consistent
        if gs.start_timestamp is None:
            gs.is_timer_running = False
        elif not gs.is_timer_running:
            gs.start_timestamp = None
        return gs


METADATA_FIELDS = (
    "team_name",
    "opponent_name",
    "game_date",
    "game_time",
    "game_location",
    "home_or_away",
    "game_notes",
    "season_id",
    "tournament_id",
    "age_group",
    "demand_factor",
)
