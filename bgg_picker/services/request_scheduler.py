"""FIFO admission queue that bounds concurrent outbound requests.

Callers hand ``schedule()`` a zero-argument coroutine function. Entries are
admitted strictly in arrival order while fewer than ``max_concurrency``
operations are in flight; every settlement frees a slot and drains the queue
again. Outcomes are forwarded to the caller untouched; the scheduler adds
no wrapping and has no knowledge of relays or their health.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _QueueEntry:
    """A pending operation and the future that carries its outcome."""

    __slots__ = ("operation", "future")

    def __init__(
        self,
        operation: Callable[[], Awaitable[Any]],
        future: asyncio.Future[Any],
    ) -> None:
        self.operation = operation
        self.future = future


class RequestScheduler:
    """Concurrency-limited FIFO scheduler for relay requests.

    Parameters
    ----------
    max_concurrency:
        Maximum number of operations in flight at once (default 2).
    """

    def __init__(self, max_concurrency: int = 2) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._max_concurrency = max_concurrency
        self._queue: deque[_QueueEntry] = deque()
        self._active = 0
        self._running: set[asyncio.Task[Any]] = set()

        # Stats tracking
        self._completed_count = 0
        self._failed_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    async def schedule(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Queue ``operation`` and wait for its result.

        Raises whatever the operation raises. Cancelling the wait while the
        entry is still queued drops it; once admitted the operation runs to
        completion regardless.
        """
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._queue.append(_QueueEntry(operation, future))
        logger.debug(
            "Queued request (queue_depth=%d, active=%d)",
            len(self._queue),
            self._active,
        )
        self._drain()
        return await future

    def get_stats(self) -> dict:
        """Return current scheduler statistics."""
        return {
            "queue_depth": len(self._queue),
            "active_requests": self._active,
            "max_concurrency": self._max_concurrency,
            "completed_count": self._completed_count,
            "failed_count": self._failed_count,
        }

    # ------------------------------------------------------------------
    # Drain loop
    # ------------------------------------------------------------------

    def _drain(self) -> None:
        """Admit queued entries until the queue is empty or every slot is taken."""
        while self._queue and self._active < self._max_concurrency:
            entry = self._queue.popleft()
            if entry.future.done():
                # Caller gave up while the entry was still waiting.
                continue

            self._active += 1
            try:
                awaitable = entry.operation()
                task = asyncio.ensure_future(awaitable)
            except Exception as exc:
                self._active -= 1
                self._failed_count += 1
                entry.future.set_exception(exc)
                continue

            self._running.add(task)
            task.add_done_callback(lambda t, e=entry: self._on_settled(e, t))

    def _on_settled(self, entry: _QueueEntry, task: asyncio.Task[Any]) -> None:
        self._running.discard(task)
        self._active -= 1

        if task.cancelled():
            self._failed_count += 1
            if not entry.future.done():
                entry.future.cancel()
        elif task.exception() is not None:
            self._failed_count += 1
            if not entry.future.done():
                entry.future.set_exception(task.exception())  # type: ignore[arg-type]
        else:
            self._completed_count += 1
            if not entry.future.done():
                entry.future.set_result(task.result())

        self._drain()
