"""
Web application module for the Sideline Clock.

This module contains the Flask web server that exposes the live match
session as JSON API endpoints. The match clock and all persistence work run
on an asyncio event loop in a background thread; request handlers hand work
to that loop and wait for the result.
"""
import asyncio
import logging
import threading
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from flask import Flask, jsonify, request

from ..models import GameSessionState
from ..services import (
    GameSessionStore,
    LoadPersistedGameData,
    PersistenceError,
    ServiceFactory,
    SessionAutosave,
    TimerService,
)
from ..services.persistence_service import StorageBackend
from ..services.wake_lock import WakeLockProvider
from ..utils import APP_TITLE, RuntimeConfig, fmt_mmss

logger = logging.getLogger(__name__)


class WebAppState:
    """
    State holder for the web application.

    Owns the event loop thread and the services of the match currently open.
    All service calls go through ``run`` so they execute on the loop thread.
    """

    def __init__(
        self,
        config: Optional[RuntimeConfig] = None,
        *,
        backend: Optional[StorageBackend] = None,
        wake_lock_provider: Optional[WakeLockProvider] = None,
        request_timeout: float = 10.0,
    ):
        self.service_factory = ServiceFactory(
            config, backend=backend, wake_lock_provider=wake_lock_provider
        )
        self.request_timeout = request_timeout
        self.game_id: Optional[str] = None
        self.store: Optional[GameSessionStore] = None
        self.timer_service: Optional[TimerService] = None
        self.autosave: Optional[SessionAutosave] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    # ------------------------------------------------------------------
    # Loop thread
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Start the event loop thread and open a fresh match."""
        if self._thread and self._thread.is_alive():
            logger.warning("Web app state already running")
            return

        self._ready.clear()
        self._thread = threading.Thread(target=self._run_loop, name="SessionLoop", daemon=True)
        self._thread.start()
        self._ready.wait()
        self.run(self._boot)
        logger.info("Session runtime started")

    def stop(self) -> None:
        """Close the open match and stop the event loop thread."""
        if self._loop is None:
            return
        try:
            self.run(self._shutdown)
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            if self._thread:
                self._thread.join(timeout=5.0)
                self._thread = None
        logger.info("Session runtime stopped")

    def run(self, fn: Callable[..., Any], *args: Any) -> Any:
        """
        Run ``fn(*args)`` on the loop thread and return its result.

        ``fn`` may be a plain function or a coroutine function; exceptions
        are re-raised in the calling thread.
        """
        if self._loop is None:
            raise RuntimeError("Session runtime is not running")

        async def invoke() -> Any:
            result = fn(*args)
            if asyncio.iscoroutine(result):
                result = await result
            return result

        future = asyncio.run_coroutine_threadsafe(invoke(), self._loop)
        return future.result(timeout=self.request_timeout)

    def _run_loop(self) -> None:
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        self._ready.set()
        try:
            self._loop.run_forever()
        finally:
            self._loop.close()
            self._loop = None

    async def _boot(self) -> None:
        self.service_factory.get_progress_tracker().start_periodic_cleanup()
        await self.open_game(uuid.uuid4().hex, GameSessionState())

    async def _shutdown(self) -> None:
        await self._close_game()
        await self.service_factory.get_progress_tracker().stop()

    # ------------------------------------------------------------------
    # Match lifecycle (loop thread only)
    # ------------------------------------------------------------------
    async def open_game(self, game_id: str, initial_state: Optional[GameSessionState] = None) -> bool:
        """
        Make ``game_id`` the open match.

        Without ``initial_state`` the persisted record for ``game_id`` is
        loaded; returns False if there is none.
        """
        record: Optional[Dict[str, Any]] = None
        if initial_state is None:
            record = await self.service_factory.get_persistence_service().load_game(game_id)
            if record is None:
                return False

        await self._close_game()
        suite = self.service_factory.create_session_suite(game_id, initial_state)
        self.game_id = game_id
        self.store = suite["store"]
        self.timer_service = suite["timer"]
        self.autosave = suite["autosave"]

        if record is not None:
            self.store.dispatch(LoadPersistedGameData(data=record))
        self.autosave.start()
        await self.timer_service.start()
        logger.info(f"Opened game {game_id}")
        return True

    async def _close_game(self) -> None:
        if self.timer_service is not None:
            await self.timer_service.close()
        if self.autosave is not None:
            await self.autosave.close()
        self.store = None
        self.timer_service = None
        self.autosave = None
        self.game_id = None

    def session_payload(self) -> Dict[str, Any]:
        state = self.store.state
        status = self.timer_service.status()
        save_status = self.autosave.get_status()
        save_error = self.autosave.save_error
        return {
            "game_id": self.game_id,
            "session": state.to_json(),
            "timer": status.to_json(),
            "display": {
                "elapsed": fmt_mmss(state.time_elapsed_in_seconds),
                "next_sub_due": fmt_mmss(state.next_sub_due_time_seconds),
                "period_end": fmt_mmss(state.period_end_seconds()),
            },
            "save_status": {
                "is_saving": save_status.is_saving,
                "has_pending_save": save_status.has_pending_save,
                "retry_count": save_status.retry_count,
                "save_error": str(save_error) if save_error else None,
            },
        }


def create_app(app_state: WebAppState) -> Flask:
    """
    Create and configure the Flask application with API endpoints.

    Args:
        app_state: Running state holder whose services back the endpoints

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    def _session_response(message: Optional[str] = None):
        payload = app_state.run(app_state.session_payload)
        payload["success"] = True
        if message:
            payload["message"] = message
        return jsonify(payload)

    def _timer_action(action: Callable[[TimerService], Any]) -> Callable[[], Awaitable[None]]:
        async def invoke() -> None:
            result = action(app_state.timer_service)
            if asyncio.iscoroutine(result):
                await result
        return invoke

    # ==================== Session ==================== #

    @app.route("/api/session", methods=["GET"])
    def get_session():
        """Return the open match with timer and save status."""
        return _session_response()

    @app.route("/api/session/new", methods=["POST"])
    def new_session():
        """Open a new match built from the posted configuration."""
        data = request.get_json(silent=True) or {}
        game_id = str(data.pop("game_id", "") or uuid.uuid4().hex)
        try:
            initial = GameSessionState.from_json(data)
        except (TypeError, ValueError) as e:
            return jsonify({"success": False, "error": str(e)}), 400
        app_state.run(app_state.open_game, game_id, initial)
        return _session_response(f"Opened new game {game_id}")

    @app.route("/api/session/load", methods=["POST"])
    def load_session():
        """Open a previously saved match."""
        data = request.get_json(silent=True) or {}
        game_id = str(data.get("game_id", "")).strip()
        if not game_id:
            return jsonify({"success": False, "error": "game_id is required"}), 400
        try:
            found = app_state.run(app_state.open_game, game_id)
        except PersistenceError as e:
            return jsonify({"success": False, "error": str(e)}), 500
        except (TypeError, ValueError) as e:
            return jsonify({"success": False, "error": f"Saved game is invalid: {e}"}), 400
        if not found:
            return jsonify({"success": False, "error": f"No saved game {game_id}"}), 404
        return _session_response(f"Loaded game {game_id}")

    @app.route("/api/session/save", methods=["POST"])
    def save_session():
        """Save the open match immediately."""
        try:
            app_state.run(lambda: app_state.autosave.save_now())
        except PersistenceError as e:
            logger.error(f"Immediate save failed: {e}")
            return jsonify({"success": False, "error": str(e)}), 500
        return _session_response("Game saved")

    # ==================== Timer ==================== #

    @app.route("/api/timer/start-pause", methods=["POST"])
    def start_pause():
        app_state.run(_timer_action(lambda timer: timer.start_pause()))
        return _session_response()

    @app.route("/api/timer/reset", methods=["POST"])
    def reset_timer():
        try:
            app_state.run(_timer_action(lambda timer: timer.reset()))
        except PersistenceError as e:
            return jsonify({"success": False, "error": str(e)}), 500
        return _session_response("Timer reset")

    @app.route("/api/timer/ack-substitution", methods=["POST"])
    def ack_substitution():
        app_state.run(_timer_action(lambda timer: timer.ack_substitution()))
        return _session_response()

    @app.route("/api/timer/sub-interval", methods=["POST"])
    def set_sub_interval():
        data = request.get_json(silent=True) or {}
        try:
            minutes = int(data["minutes"])
        except (KeyError, TypeError, ValueError):
            return jsonify({"success": False, "error": "minutes must be an integer"}), 400
        app_state.run(_timer_action(lambda timer: timer.set_sub_interval(minutes)))
        return _session_response()

    @app.route("/api/visibility", methods=["POST"])
    def visibility_change():
        """Tell the timer the client UI was hidden or shown."""
        data = request.get_json(silent=True) or {}
        if not isinstance(data.get("hidden"), bool):
            return jsonify({"success": False, "error": "hidden must be true or false"}), 400
        hidden = data["hidden"]
        app_state.run(_timer_action(lambda timer: timer.handle_visibility_change(hidden)))
        return _session_response()

    # ==================== Sync progress ==================== #

    def _progress_response():
        tracker = app_state.service_factory.get_progress_tracker()
        progress = app_state.run(lambda: tracker.progress)
        return jsonify({"success": True, "progress": progress.to_json()})

    @app.route("/api/sync/progress", methods=["GET"])
    def sync_progress():
        return _progress_response()

    @app.route("/api/sync/retry-failed", methods=["POST"])
    def retry_failed():
        tracker = app_state.service_factory.get_progress_tracker()
        app_state.run(tracker.retry_failed)
        return _progress_response()

    @app.route("/api/sync/clear-completed", methods=["POST"])
    def clear_completed():
        tracker = app_state.service_factory.get_progress_tracker()
        app_state.run(tracker.clear_completed)
        return _progress_response()

    return app


def run_web_app(host: str = "127.0.0.1", port: int = 7122, config: Optional[RuntimeConfig] = None) -> None:
    """
    Run the web application.

    Args:
        host: Host address to bind to (default: localhost only)
        port: Port number to listen on
        config: Runtime tunables, including where match records are stored
    """
    app_state = WebAppState(config)
    app_state.start()
    logger.info(f"Starting {APP_TITLE} on http://{host}:{port}")
    try:
        app = create_app(app_state)
        app.run(host=host, port=port, debug=False, threaded=True)
    finally:
        app_state.stop()
