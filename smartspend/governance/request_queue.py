"""
Bounded-concurrency admission control for outbound backend calls.

Tasks are zero-argument coroutine factories. They are started in strict
submission order with at most ``max_concurrent`` in flight; after each
completion the queue waits ``min_delay`` seconds before it starts the next
one. A task's own failure is delivered to its caller only.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, ParamSpec, TypeVar

from smartspend.exceptions import QueueClearedError, QueueFullError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


@dataclass
class QueuedTask:
    """A deferred call and the future its caller awaits."""
    request: Callable[[], Awaitable[Any]]
    future: asyncio.Future[Any]
    submitted_at: float = field(default_factory=time.time)


class RequestQueue:
    """FIFO queue that caps simultaneously in-flight calls."""

    def __init__(
        self,
        max_concurrent: int = 3,
        min_delay: float = 0.05,
        max_queue_size: int = 50,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if min_delay < 0:
            raise ValueError("min_delay must be non-negative")
        if max_queue_size < 1:
            raise ValueError("max_queue_size must be at least 1")

        self.max_concurrent = max_concurrent
        self.min_delay = min_delay
        self.max_queue_size = max_queue_size

        self._pending: deque[QueuedTask] = deque()
        self._current_requests = 0
        self._processing = False
        self._runners: set[asyncio.Task[None]] = set()

        # Statistics
        self._stats = {
            "peak_concurrency": 0,
            "completed": 0,
            "failed": 0,
        }

    async def add(self, request: Callable[[], Awaitable[T]]) -> T:
        """
        Submit request and wait for its outcome.

        Args:
            request: Zero-argument callable returning an awaitable

        Returns:
            Whatever the request's awaitable returns

        Raises:
            QueueFullError: If the backlog is already at max_queue_size
            QueueClearedError: If the queue was cleared before the task started
            Exception: Anything the request itself raises
        """
        if len(self._pending) >= self.max_queue_size:
            raise QueueFullError(details={"queue_length": len(self._pending)})

        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._pending.append(QueuedTask(request=request, future=future))
        self._process_queue()
        return await future

    def _process_queue(self) -> None:
        if self._processing:
            return

        self._processing = True
        try:
            while self._pending and self._current_requests < self.max_concurrent:
                item = self._pending.popleft()
                if item.future.done():
                    # Caller stopped waiting before the task started
                    continue

                self._current_requests += 1
                self._stats["peak_concurrency"] = max(
                    self._stats["peak_concurrency"], self._current_requests
                )
                runner = asyncio.create_task(self._run(item))
                self._runners.add(runner)
                runner.add_done_callback(self._runners.discard)
        finally:
            self._processing = False

    async def _run(self, item: QueuedTask) -> None:
        try:
            result = await item.request()
        except asyncio.CancelledError:
            item.future.cancel()
            self._current_requests -= 1
            raise
        except Exception as e:
            self._stats["failed"] += 1
            if not item.future.done():
                item.future.set_exception(e)
        else:
            self._stats["completed"] += 1
            if not item.future.done():
                item.future.set_result(result)

        self._current_requests -= 1
        await asyncio.sleep(self.min_delay)
        self._process_queue()

    def get_status(self) -> dict[str, int | bool]:
        """Queue status for monitoring."""
        return {
            "queue_length": len(self._pending),
            "current_requests": self._current_requests,
            "processing": self._processing,
            **self._stats,
        }

    def clear(self) -> int:
        """Reject every task that has not started yet. Returns how many were dropped."""
        dropped = 0
        while self._pending:
            item = self._pending.popleft()
            if not item.future.done():
                item.future.set_exception(QueueClearedError())
                dropped += 1
        if dropped:
            logger.warning(f"Request queue cleared, {dropped} pending task(s) rejected")
        return dropped

    async def close(self) -> None:
        """Clear the backlog and cancel in-flight tasks."""
        self.clear()
        runners = list(self._runners)
        for runner in runners:
            runner.cancel()
        for runner in runners:
            with contextlib.suppress(asyncio.CancelledError):
                await runner
        self._current_requests = 0


async def queued_call(queue: RequestQueue, call: Callable[[], Awaitable[T]]) -> T:
    """Run call through queue."""
    return await queue.add(call)


def queued(
    queue: RequestQueue,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator routing every invocation of a coroutine function through queue."""
    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await queue.add(lambda: func(*args, **kwargs))
        return wrapper
    return decorator
