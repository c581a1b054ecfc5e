"""
Debounced, single-flight save controller.

Coalesces bursts of change notifications into one call of an async save
function after a quiet period:

- debounced_save(): (re)arms the debounce timer
- save_immediately(): cancels the timer and saves now; errors propagate
- cancel_pending_save(): disarms the timer without saving

At most one save runs at a time. A debounced save that fires while another
save is in flight is remembered and re-triggered once the in-flight save
completes. Failed debounced saves are retried with exponential backoff up to
``max_retries`` times; after that the controller gives up, keeps the error in
``save_error`` and resets its retry budget.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Set

from ..utils.constants import (
    DEFAULT_SAVE_BACKOFF_MULTIPLIER,
    DEFAULT_SAVE_DEBOUNCE_SECONDS,
    DEFAULT_SAVE_INITIAL_BACKOFF,
    DEFAULT_SAVE_MAX_RETRIES,
)

logger = logging.getLogger(__name__)

SaveFunction = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class SaveStatus:
    """Snapshot of the controller state for UI feedback."""
    is_saving: bool
    has_pending_save: bool
    retry_count: int


class DebouncedSaveController:
    """
    Per-entity debounced saver.

    Attributes:
        name: Label used in log messages
        delay: Quiet period in seconds before a debounced save fires
        max_retries: Retry attempts after a failed debounced save
        save_error: Last error of a debounced save that exhausted its retries
    """

    def __init__(
        self,
        save_fn: SaveFunction,
        delay: float = DEFAULT_SAVE_DEBOUNCE_SECONDS,
        *,
        max_retries: int = DEFAULT_SAVE_MAX_RETRIES,
        initial_backoff: float = DEFAULT_SAVE_INITIAL_BACKOFF,
        backoff_multiplier: float = DEFAULT_SAVE_BACKOFF_MULTIPLIER,
        name: str = "session",
    ):
        self._save_fn = save_fn
        self.delay = max(0.0, float(delay))
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self.backoff_multiplier = backoff_multiplier
        self.name = name

        self._pending_handle: Optional[asyncio.TimerHandle] = None
        self._in_flight: Optional[asyncio.Future] = None
        self._has_pending_save_request = False
        self._retry_count = 0
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False
        self.save_error: Optional[BaseException] = None

    # ------------------------------------------------------------------
    # Save function
    # ------------------------------------------------------------------
    @property
    def save_function(self) -> SaveFunction:
        return self._save_fn

    @save_function.setter
    def save_function(self, save_fn: SaveFunction) -> None:
        """Swap the save function; an in-flight save keeps the old one."""
        self._save_fn = save_fn

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def debounced_save(self) -> None:
        """Schedule a save after the quiet period, restarting any pending timer."""
        if self._closed:
            return
        self._arm(self.delay, self._run_debounced)

    async def save_immediately(self) -> None:
        """
        Cancel any pending debounced save and save right away.

        Concurrent calls share the in-flight attempt instead of starting a
        second one.

        Raises:
            Exception: Whatever the save function raised
        """
        self.cancel_pending_save()
        if self._in_flight is not None:
            await asyncio.shield(self._in_flight)
            return

        self._in_flight = asyncio.ensure_future(self._call_save())
        try:
            await asyncio.shield(self._in_flight)
        finally:
            self._in_flight = None
            self._after_save()
        self._retry_count = 0
        self.save_error = None

    def cancel_pending_save(self) -> None:
        """Disarm the debounce or retry timer; an in-flight save is not affected."""
        if self._pending_handle is not None:
            self._pending_handle.cancel()
            self._pending_handle = None

    def get_status(self) -> SaveStatus:
        return SaveStatus(
            is_saving=self._in_flight is not None,
            has_pending_save=self._has_pending_save_request,
            retry_count=self._retry_count,
        )

    async def close(self) -> None:
        """Cancel pending work and reset the controller state."""
        self._closed = True
        self.cancel_pending_save()
        self._has_pending_save_request = False
        self._retry_count = 0
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _arm(self, delay: float, runner: Callable[[], Awaitable[None]]) -> None:
        self.cancel_pending_save()
        loop = asyncio.get_running_loop()
        self._pending_handle = loop.call_later(delay, self._spawn, runner)

    def _spawn(self, runner: Callable[[], Awaitable[None]]) -> None:
        self._pending_handle = None
        task = asyncio.ensure_future(runner())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _call_save(self) -> None:
        # resolve the function at call time so swaps apply to the next attempt
        save_fn = self._save_fn
        await save_fn()

    async def _run_debounced(self) -> None:
        if self._in_flight is not None:
            self._has_pending_save_request = True
            logger.debug(f"[{self.name}] save already in flight; queued a follow-up save")
            return
        await self._attempt()

    async def _attempt(self) -> None:
        self._in_flight = asyncio.ensure_future(self._call_save())
        try:
            await asyncio.shield(self._in_flight)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._handle_failure(e)
        else:
            if self._retry_count:
                logger.info(f"[{self.name}] save succeeded after {self._retry_count} retries")
            self._retry_count = 0
            self.save_error = None
        finally:
            self._in_flight = None
            self._after_save()

    def _handle_failure(self, error: Exception) -> None:
        if self._retry_count < self.max_retries and not self._closed:
            self._retry_count += 1
            backoff = self.initial_backoff * self.backoff_multiplier ** (self._retry_count - 1)
            logger.warning(
                f"[{self.name}] save attempt {self._retry_count}/{self.max_retries + 1} failed: "
                f"{error}. Retrying in {backoff:.1f}s..."
            )
            self._arm(backoff, self._run_debounced)
            return

        logger.error(f"[{self.name}] giving up after {self._retry_count} retries: {error}")
        self.save_error = error
        self._retry_count = 0

    def _after_save(self) -> None:
        if self._has_pending_save_request and not self._closed:
            self._has_pending_save_request = False
            self.debounced_save()
