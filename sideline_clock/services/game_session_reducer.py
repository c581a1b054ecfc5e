"""
Game session state machine for the Sideline Clock application.

The reducer is the only place where session transitions are defined:
``notStarted -> inProgress -> periodEnd -> inProgress -> ... -> gameEnd``.
Each handler receives the current state and an action and returns a new
state; the input state is never modified. Actions that are not valid in the
current state return the state unchanged.
"""
import math
from dataclasses import replace
from typing import Callable, Dict, Type

from ..models import GameSessionState, GameStatus, IntervalLog, SubAlertLevel
from ..models.game_state import validate_period_count, validate_positive_minutes
from ..utils import SUB_WARNING_WINDOW_SECONDS, now_ts
from .game_actions import (
    ConfirmSubstitution,
    EndPeriodOrGame,
    GameAction,
    LoadPersistedGameData,
    PauseTimerForHidden,
    ResetGameSession,
    ResetTimerAndGameProgress,
    ResetTimerOnly,
    RestoreTimerState,
    SetNumberOfPeriods,
    SetPeriodDuration,
    SetScore,
    SetSelectedPlayerIds,
    SetSubInterval,
    SetTimerElapsed,
    SetTimerRunning,
    StartPeriod,
    UpdateMetadata,
)


def compute_sub_alert_level(elapsed: float, next_due: float) -> SubAlertLevel:
    """
    Derive the substitution alert from the clock and the due-time.

    ``due`` once the due-time is reached, ``warning`` during the window just
    before it, ``none`` otherwise.
    """
    if elapsed >= next_due:
        return SubAlertLevel.DUE
    if next_due - elapsed < SUB_WARNING_WINDOW_SECONDS:
        return SubAlertLevel.WARNING
    return SubAlertLevel.NONE


def next_sub_due_time(elapsed: float, anchor: float, interval_minutes: int) -> float:
    """
    Smallest ``anchor + k * interval`` (k >= 1) strictly greater than ``elapsed``.

    The anchor is the elapsed time of the last confirmed substitution so the
    schedule keeps counting from the last rotation.
    """
    interval_seconds = interval_minutes * 60
    anchor = min(anchor, elapsed)
    steps = math.floor((elapsed - anchor) / interval_seconds) + 1
    return anchor + steps * interval_seconds


def _start_period(state: GameSessionState, action: StartPeriod) -> GameSessionState:
    if state.status not in (GameStatus.NOT_STARTED, GameStatus.PERIOD_END):
        return state
    if not 1 <= action.next_period <= state.number_of_periods:
        return state

    duration = state.period_duration_minutes
    if action.period_duration_minutes is not None:
        duration = validate_positive_minutes(action.period_duration_minutes, "Period duration")
    interval = state.sub_interval_minutes
    if action.sub_interval_minutes is not None:
        interval = validate_positive_minutes(action.sub_interval_minutes, "Substitution interval")

    period_start = (action.next_period - 1) * duration * 60
    return replace(
        state,
        current_period=action.next_period,
        period_duration_minutes=duration,
        sub_interval_minutes=interval,
        status=GameStatus.IN_PROGRESS,
        time_elapsed_in_seconds=period_start,
        is_timer_running=True,
        start_timestamp=now_ts(),
        last_sub_confirmation_time_seconds=period_start,
        next_sub_due_time_seconds=period_start + interval * 60,
        sub_alert_level=SubAlertLevel.NONE,
        completed_interval_durations=(
            [] if action.next_period == 1 else list(state.completed_interval_durations)
        ),
    )


def _set_timer_elapsed(state: GameSessionState, action: SetTimerElapsed) -> GameSessionState:
    elapsed = max(0.0, action.seconds)
    return replace(
        state,
        time_elapsed_in_seconds=elapsed,
        sub_alert_level=compute_sub_alert_level(elapsed, state.next_sub_due_time_seconds),
    )


def _end_period_or_game(state: GameSessionState, action: EndPeriodOrGame) -> GameSessionState:
    boundary = state.period_end_seconds()
    final_time = boundary if action.final_time is None else min(action.final_time, boundary)
    return replace(
        state,
        status=action.new_status,
        is_timer_running=False,
        start_timestamp=None,
        time_elapsed_in_seconds=final_time,
        sub_alert_level=compute_sub_alert_level(final_time, state.next_sub_due_time_seconds),
    )


def _confirm_substitution(state: GameSessionState, action: ConfirmSubstitution) -> GameSessionState:
    elapsed = state.time_elapsed_in_seconds
    entry = IntervalLog(
        period=state.current_period,
        duration=elapsed - state.last_sub_confirmation_time_seconds,
        timestamp=elapsed,
    )
    next_due = state.next_sub_due_time_seconds + state.sub_interval_minutes * 60
    return replace(
        state,
        completed_interval_durations=[entry] + list(state.completed_interval_durations),
        last_sub_confirmation_time_seconds=elapsed,
        next_sub_due_time_seconds=next_due,
        sub_alert_level=compute_sub_alert_level(elapsed, next_due),
    )


def _set_sub_interval(state: GameSessionState, action: SetSubInterval) -> GameSessionState:
    minutes = max(1, int(action.minutes))
    elapsed = state.time_elapsed_in_seconds
    next_due = next_sub_due_time(elapsed, state.last_sub_confirmation_time_seconds, minutes)
    return replace(
        state,
        sub_interval_minutes=minutes,
        next_sub_due_time_seconds=next_due,
        sub_alert_level=compute_sub_alert_level(elapsed, next_due),
    )


def _restore_timer_state(state: GameSessionState, action: RestoreTimerState) -> GameSessionState:
    if state.status != GameStatus.IN_PROGRESS:
        return state
    now = now_ts()
    offline_seconds = max(0.0, now - action.timestamp)
    corrected = round(action.saved_time + offline_seconds)
    # never wind the clock back
    corrected = max(corrected, round(state.time_elapsed_in_seconds))
    return replace(
        state,
        time_elapsed_in_seconds=corrected,
        is_timer_running=True,
        start_timestamp=now,
        sub_alert_level=compute_sub_alert_level(corrected, state.next_sub_due_time_seconds),
    )


def _pause_timer_for_hidden(state: GameSessionState, action: PauseTimerForHidden) -> GameSessionState:
    if state.is_timer_running and state.status == GameStatus.IN_PROGRESS:
        return replace(state, is_timer_running=False, start_timestamp=None)
    return state


def _set_timer_running(state: GameSessionState, action: SetTimerRunning) -> GameSessionState:
    if action.running == state.is_timer_running:
        return state
    if action.running:
        if state.status != GameStatus.IN_PROGRESS:
            return state
        return replace(state, is_timer_running=True, start_timestamp=now_ts())
    return replace(state, is_timer_running=False, start_timestamp=None)


def _reset_timer_only(state: GameSessionState, action: ResetTimerOnly) -> GameSessionState:
    period_start = state.period_start_seconds()
    return replace(
        state,
        time_elapsed_in_seconds=period_start,
        is_timer_running=False,
        start_timestamp=None,
        next_sub_due_time_seconds=period_start + state.sub_interval_minutes * 60,
        sub_alert_level=SubAlertLevel.NONE,
        last_sub_confirmation_time_seconds=period_start,
    )


def _reset_timer_and_game_progress(
    state: GameSessionState, action: ResetTimerAndGameProgress
) -> GameSessionState:
    interval = int(action.overrides.get("sub_interval_minutes") or state.sub_interval_minutes)
    reset = replace(
        state,
        status=GameStatus.NOT_STARTED,
        current_period=1,
        time_elapsed_in_seconds=0,
        is_timer_running=False,
        start_timestamp=None,
        home_score=0,
        away_score=0,
        sub_interval_minutes=interval,
        next_sub_due_time_seconds=interval * 60,
        sub_alert_level=SubAlertLevel.NONE,
        last_sub_confirmation_time_seconds=0,
        completed_interval_durations=[],
    )
    if action.overrides:
        data = reset.to_json()
        data.update(action.overrides)
        reset = GameSessionState.from_json(data)
    return reset


def _load_persisted_game_data(state: GameSessionState, action: LoadPersistedGameData) -> GameSessionState:
    loaded = GameSessionState.from_json(action.data)
    loaded.current_period = min(loaded.current_period, loaded.number_of_periods)
    interval_seconds = loaded.sub_interval_minutes * 60

    if loaded.status in (GameStatus.PERIOD_END, GameStatus.GAME_END):
        elapsed = loaded.period_end_seconds()
    elif loaded.status == GameStatus.IN_PROGRESS:
        # keep the recorded clock and schedule; the match resumes paused
        elapsed = min(
            max(loaded.time_elapsed_in_seconds, loaded.period_start_seconds()),
            loaded.period_end_seconds(),
        )
        last_confirmation = min(loaded.last_sub_confirmation_time_seconds, elapsed)
        next_due = loaded.next_sub_due_time_seconds
        if "next_sub_due_time_seconds" not in action.data:
            next_due = next_sub_due_time(elapsed, last_confirmation, loaded.sub_interval_minutes)
        return replace(
            loaded,
            time_elapsed_in_seconds=elapsed,
            is_timer_running=False,
            start_timestamp=None,
            last_sub_confirmation_time_seconds=last_confirmation,
            next_sub_due_time_seconds=next_due,
            sub_alert_level=compute_sub_alert_level(elapsed, next_due),
        )
    else:
        elapsed = loaded.period_start_seconds()

    return replace(
        loaded,
        time_elapsed_in_seconds=elapsed,
        is_timer_running=False,
        start_timestamp=None,
        next_sub_due_time_seconds=elapsed + interval_seconds,
        sub_alert_level=SubAlertLevel.NONE,
        last_sub_confirmation_time_seconds=elapsed,
    )


def _reset_game_session(state: GameSessionState, action: ResetGameSession) -> GameSessionState:
    return action.state


def _set_number_of_periods(state: GameSessionState, action: SetNumberOfPeriods) -> GameSessionState:
    return replace(state, number_of_periods=validate_period_count(action.count))


def _set_period_duration(state: GameSessionState, action: SetPeriodDuration) -> GameSessionState:
    return replace(state, period_duration_minutes=validate_positive_minutes(action.minutes, "Period duration"))


def _set_selected_player_ids(state: GameSessionState, action: SetSelectedPlayerIds) -> GameSessionState:
    return replace(state, selected_player_ids=list(action.player_ids))


def _set_score(state: GameSessionState, action: SetScore) -> GameSessionState:
    return replace(state, home_score=max(0, int(action.home)), away_score=max(0, int(action.away)))


def _update_metadata(state: GameSessionState, action: UpdateMetadata) -> GameSessionState:
    return replace(state, **action.fields)


_HANDLERS: Dict[Type[GameAction], Callable[[GameSessionState, GameAction], GameSessionState]] = {
    StartPeriod: _start_period,
    SetTimerElapsed: _set_timer_elapsed,
    EndPeriodOrGame: _end_period_or_game,
    ConfirmSubstitution: _confirm_substitution,
    SetSubInterval: _set_sub_interval,
    RestoreTimerState: _restore_timer_state,
    PauseTimerForHidden: _pause_timer_for_hidden,
    SetTimerRunning: _set_timer_running,
    ResetTimerOnly: _reset_timer_only,
    ResetTimerAndGameProgress: _reset_timer_and_game_progress,
    LoadPersistedGameData: _load_persisted_game_data,
    ResetGameSession: _reset_game_session,
    SetNumberOfPeriods: _set_number_of_periods,
    SetPeriodDuration: _set_period_duration,
    SetSelectedPlayerIds: _set_selected_player_ids,
    SetScore: _set_score,
    UpdateMetadata: _update_metadata,
}


def game_session_reducer(state: GameSessionState, action: GameAction) -> GameSessionState:
    """
    Apply ``action`` to ``state`` and return the resulting state.

    Args:
        state: Current session state (left untouched)
        action: One of the actions from ``game_actions``

    Returns:
        The next session state

    Raises:
        TypeError: If the action type is not part of the vocabulary
    """
    handler = _HANDLERS.get(type(action))
    if handler is None:
        raise TypeError(f"Unsupported game action: {type(action).__name__}")
    return handler(state, action)
