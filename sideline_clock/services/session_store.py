"""
Single owner of the live GameSessionState.

All session changes go through ``GameSessionStore.dispatch``; listeners are
notified after every dispatch with the action and the resulting state.
"""
import logging
from typing import Callable, List, Optional

from ..models import GameSessionState
from .game_actions import GameAction
from .game_session_reducer import game_session_reducer

logger = logging.getLogger(__name__)

StateListener = Callable[[GameAction, GameSessionState], None]


class GameSessionStore:
    """Holds the session aggregate and applies actions through the reducer."""

    def __init__(self, initial_state: Optional[GameSessionState] = None):
        self._state = initial_state if initial_state is not None else GameSessionState()
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> GameSessionState:
        return self._state

    def dispatch(self, action: GameAction) -> GameSessionState:
        """
        Apply an action and notify listeners.

        Listener failures are logged and do not stop other listeners from
        running; the state change itself is never rolled back.

        Args:
            action: Action to apply

        Returns:
            The new session state
        """
        previous = self._state
        self._state = game_session_reducer(previous, action)
        logger.debug(f"Dispatched {action.name} (status={self._state.status.value})")

        if self._state is previous:
            return self._state

        for listener in list(self._listeners):
            try:
                listener(action, self._state)
            except Exception as e:
                logger.exception(f"Session listener failed after {action.name}: {e}")
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a listener for state changes.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
