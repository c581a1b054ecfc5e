"""
Sideline Clock

Offline-first match clock for youth soccer coaches: period timing,
substitution reminders, and crash-safe persistence of the live match.

This package provides the session state machine, the timer and persistence
services, and a Flask web interface over them.
"""
from .models import GameSessionState, GameStatus, SubAlertLevel, TimerSnapshot
from .services import GameSessionStore, PersistenceService, ServiceFactory, TimerService
from .ui import create_app, run_web_app
from .utils import fmt_mmss, now_ts, APP_TITLE, RuntimeConfig

__version__ = "0.1.0"

__all__ = [
    "GameSessionState", "GameStatus", "SubAlertLevel", "TimerSnapshot",
    "GameSessionStore", "PersistenceService", "ServiceFactory", "TimerService",
    "create_app", "run_web_app", "fmt_mmss", "now_ts", "APP_TITLE", "RuntimeConfig"
]
