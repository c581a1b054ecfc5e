"""
Screen wake-lock handling for the running match clock.

The wake lock is a single shared platform resource. ``WakeLockManager`` keeps
it held exactly while the clock runs, and re-acquires it when the platform
revokes it while the app is visible and the clock is still meant to run.
Platforms without wake-lock support are detected once and turn every call
into a no-op.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional, Set

logger = logging.getLogger(__name__)


class WakeLockProvider(ABC):
    """Platform binding for the screen wake lock."""

    @property
    def is_supported(self) -> bool:
        return True

    @abstractmethod
    async def request(self, on_revoked: Callable[[], None]) -> None:
        """
        Acquire the lock.

        ``on_revoked`` must be called from the event loop thread if the
        platform releases the lock on its own.
        """

    @abstractmethod
    async def release(self) -> None:
        """Release the lock if held."""


class NullWakeLockProvider(WakeLockProvider):
    """Provider for platforms without a wake lock."""

    @property
    def is_supported(self) -> bool:
        return False

    async def request(self, on_revoked: Callable[[], None]) -> None:
        return None

    async def release(self) -> None:
        return None


class WakeLockManager:
    """Keeps the wake lock in step with whether the clock is running."""

    def __init__(self, provider: Optional[WakeLockProvider] = None):
        self._provider = provider or NullWakeLockProvider()
        self._supported = self._provider.is_supported
        if not self._supported:
            logger.info("Wake lock not supported on this platform; screen may sleep while the clock runs")
        self._should_hold = False
        self._held = False
        self._visible = True
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def is_held(self) -> bool:
        return self._held

    async def sync(self, should_hold: bool) -> None:
        """Acquire or release the lock so that it matches ``should_hold``."""
        self._should_hold = should_hold
        if not self._supported:
            return
        async with self._lock:
            if self._should_hold and not self._held and self._visible:
                await self._acquire()
            elif not self._should_hold and self._held:
                await self._release()

    async def set_visible(self, visible: bool) -> None:
        """
        Record app visibility.

        Platforms drop the lock when the app is hidden, so showing the app
        again re-acquires it if the clock should still be running.
        """
        self._visible = visible
        if not visible:
            self._held = False
            return
        await self.sync(self._should_hold)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.sync(False)

    async def _acquire(self) -> None:
        try:
            await self._provider.request(self._on_revoked)
        except Exception as e:
            logger.warning(f"Failed to acquire wake lock: {e}")
            return
        self._held = True
        logger.debug("Wake lock acquired")

    async def _release(self) -> None:
        self._held = False
        try:
            await self._provider.release()
        except Exception as e:
            logger.warning(f"Failed to release wake lock: {e}")
            return
        logger.debug("Wake lock released")

    def _on_revoked(self) -> None:
        self._held = False
        if self._should_hold and self._visible:
            logger.info("Wake lock revoked while the clock is running; re-acquiring")
            task = asyncio.ensure_future(self.sync(True))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
