"""
Persistence service for the Sideline Clock application.

This module wraps an asynchronous key/value storage backend behind the
record, timer-snapshot and match operations the rest of the application
uses. Backends store JSON-serializable dictionaries keyed by string.
"""
import asyncio
import json
import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..models import GameSessionState, TimerSnapshot
from ..utils.constants import GAME_KEY_PREFIX, LEGACY_TIMER_STATE_KEY, TIMER_STATE_KEY_PREFIX

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when a storage backend fails to read, write or delete a record."""


class StorageBackend(ABC):
    """Asynchronous record store addressed by string keys."""

    @abstractmethod
    async def get(self, key: str) -> Optional[dict]:
        """Return the record stored under ``key`` or None."""

    @abstractmethod
    async def set(self, key: str, value: dict) -> None:
        """Store ``value`` under ``key``, replacing any previous record."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the record under ``key``; missing keys are ignored."""


class MemoryStorageBackend(StorageBackend):
    """In-process backend; records are copied through JSON on the way in and out."""

    def __init__(self):
        self._records: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[dict]:
        raw = self._records.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: dict) -> None:
        self._records[key] = json.dumps(value)

    async def delete(self, key: str) -> None:
        self._records.pop(key, None)

    def keys(self):
        return list(self._records)


class JsonFileStorageBackend(StorageBackend):
    """
    Backend storing one JSON file per key inside a directory.

    File I/O runs in a worker thread so the event loop keeps ticking while
    the disk is slow. Writes go to a temporary file that is then renamed over
    the target, so a crash never leaves a half-written record behind.
    """

    def __init__(self, directory: str):
        self.directory = directory

    def _path_for(self, key: str) -> str:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return os.path.join(self.directory, f"{safe}.json")

    async def get(self, key: str) -> Optional[dict]:
        return await asyncio.to_thread(self._read, self._path_for(key))

    async def set(self, key: str, value: dict) -> None:
        await asyncio.to_thread(self._write, self._path_for(key), value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._remove, self._path_for(key))

    @staticmethod
    def _read(path: str) -> Optional[dict]:
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, path: str, value: dict) -> None:
        # Ensure directory exists
        if not os.path.exists(self.directory):
            os.makedirs(self.directory, exist_ok=True)

        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(value, f, indent=2)
        os.replace(tmp_path, path)

    @staticmethod
    def _remove(path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass


class PersistenceService:
    """
    Facade over a storage backend used for crash recovery and match saves.

    Safe to call concurrently for different keys. No ordering is provided
    between concurrent writes to the same key; route such writes through a
    SynchronizationQueue when their order matters.

    When constructed without a backend the service degrades to permanent
    no-ops: writes are dropped and reads return None.
    """

    def __init__(self, backend: Optional[StorageBackend]):
        self._backend = backend
        if backend is None:
            logger.info("No storage backend configured; persistence is disabled")

    @property
    def is_available(self) -> bool:
        return self._backend is not None

    # ------------------------------------------------------------------
    # Generic records
    # ------------------------------------------------------------------
    async def save_record(self, record_id: str, value: dict) -> None:
        """
        Store a record.

        Raises:
            PersistenceError: If the backend fails
        """
        if self._backend is None:
            return
        try:
            await self._backend.set(record_id, value)
        except Exception as e:
            raise PersistenceError(f"Failed to save record {record_id}: {e}") from e

    async def get_record(self, record_id: str) -> Optional[dict]:
        """
        Fetch a record.

        Raises:
            PersistenceError: If the backend fails
        """
        if self._backend is None:
            return None
        try:
            return await self._backend.get(record_id)
        except Exception as e:
            raise PersistenceError(f"Failed to read record {record_id}: {e}") from e

    async def delete_record(self, record_id: str) -> None:
        """
        Delete a record.

        Raises:
            PersistenceError: If the backend fails
        """
        if self._backend is None:
            return
        try:
            await self._backend.delete(record_id)
        except Exception as e:
            raise PersistenceError(f"Failed to delete record {record_id}: {e}") from e

    # ------------------------------------------------------------------
    # Timer snapshots
    # ------------------------------------------------------------------
    @staticmethod
    def timer_state_key(game_id: str) -> str:
        return f"{TIMER_STATE_KEY_PREFIX}:{game_id}"

    async def save_timer_state(self, snapshot: TimerSnapshot) -> None:
        await self.save_record(self.timer_state_key(snapshot.game_id), snapshot.to_json())

    async def get_timer_state(self, game_id: str) -> Optional[TimerSnapshot]:
        """
        Load the snapshot stored for ``game_id``.

        Records that cannot be parsed are logged and treated as missing.
        """
        data = await self.get_record(self.timer_state_key(game_id))
        if data is None:
            return None
        try:
            return TimerSnapshot.from_json(data)
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed timer snapshot for game {game_id}: {e}")
            return None

    async def delete_timer_state(self, game_id: str) -> None:
        await self.delete_record(self.timer_state_key(game_id))

    async def get_legacy_timer_state(self) -> Optional[dict]:
        """Return the raw pre-migration single-key timer record, if any."""
        return await self.get_record(LEGACY_TIMER_STATE_KEY)

    async def delete_legacy_timer_state(self) -> None:
        await self.delete_record(LEGACY_TIMER_STATE_KEY)

    # ------------------------------------------------------------------
    # Match sessions
    # ------------------------------------------------------------------
    @staticmethod
    def game_key(game_id: str) -> str:
        return f"{GAME_KEY_PREFIX}:{game_id}"

    async def save_game(self, game_id: str, state: GameSessionState) -> None:
        await self.save_record(self.game_key(game_id), state.to_json())

    async def load_game(self, game_id: str) -> Optional[dict]:
        """
        Load the stored match record for ``game_id``.

        Returns the raw dictionary so callers can feed it to
        ``LoadPersistedGameData``, which normalizes the timer fields.
        """
        return await self.get_record(self.game_key(game_id))
