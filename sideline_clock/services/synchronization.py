"""
Ordering queue for asynchronous persistence work.

``SynchronizationQueue`` forces named async operations to run one after
another in the order they were submitted, no matter how long each one takes.
Every submission chains onto the queue's tail; each returns its own result
or exception, and a failing operation does not fail the ones behind it.

Usage:
    queue = SynchronizationQueue()
    first = queue.with_synchronization("save", lambda: store.save(...))
    second = queue.with_synchronization("delete", lambda: store.delete(...))
    await asyncio.gather(first, second)   # save finishes before delete starts
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SynchronizationQueue:
    """FIFO sequencer for async operations sharing one event loop."""

    def __init__(self):
        self._tail: Optional[asyncio.Future] = None

    def with_synchronization(
        self, name: str, operation: Callable[[], Awaitable[T]]
    ) -> "asyncio.Future[T]":
        """
        Submit ``operation`` to run after every previously submitted one.

        The position in the queue is fixed when this method is called, so it
        must be called from the event loop thread. The returned future may be
        awaited or left to run on its own.

        Args:
            name: Label used in log messages
            operation: Zero-argument callable returning an awaitable

        Returns:
            Future resolving to the operation's result or exception
        """
        loop = asyncio.get_running_loop()
        previous = self._tail
        done = loop.create_future()
        self._tail = done
        return asyncio.ensure_future(self._run(name, operation, previous, done))

    async def _run(
        self,
        name: str,
        operation: Callable[[], Awaitable[T]],
        previous: Optional[asyncio.Future],
        done: asyncio.Future,
    ) -> T:
        try:
            if previous is not None:
                # the tail future only ever resolves with None
                await asyncio.shield(previous)
            logger.debug(f"Running synchronized operation '{name}'")
            return await operation()
        finally:
            if not done.done():
                done.set_result(None)
            if self._tail is done:
                self._tail = None

    def clear_synchronization(self) -> None:
        """
        Forget the current tail.

        Operations already queued keep their own chain and still complete;
        the next submission starts immediately.
        """
        self._tail = None

    async def wait_for_synchronization(self) -> None:
        """Wait until everything submitted so far has finished."""
        while self._tail is not None:
            tail = self._tail
            await asyncio.shield(tail)
            if self._tail is tail:
                break

    @property
    def is_idle(self) -> bool:
        return self._tail is None


async def run_synchronized(
    queue: Optional[SynchronizationQueue], name: str, operation: Callable[[], Awaitable[Any]]
) -> Any:
    """Run ``operation`` through ``queue`` when one is given, directly otherwise."""
    if queue is None:
        return await operation()
    return await queue.with_synchronization(name, operation)
