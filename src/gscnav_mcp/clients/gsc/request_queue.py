"""FIFO request queue enforcing the Search Console requests-per-second ceiling.

Operations are executed one at a time by a single drain loop. After each
operation settles the loop sleeps ``1 / rate_limit`` seconds, which caps
sustained throughput no matter how many callers enqueue concurrently.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RATE_LIMIT = 10  # requests per second


@dataclass
class QueuedRequest(Generic[T]):
    """A pending operation and the future its caller awaits."""

    operation: Callable[[], Awaitable[T]]
    future: "asyncio.Future[T]"


class RequestQueue:
    """Serializes upstream calls and throttles them to ``rate_limit`` per second."""

    def __init__(self, rate_limit: int = DEFAULT_RATE_LIMIT):
        """Initialize the request queue.

        Args:
            rate_limit: Maximum operations started per second
        """
        if rate_limit < 1:
            raise ValueError("rate_limit must be at least 1")

        self.rate_limit = rate_limit
        self._queue: deque[QueuedRequest[Any]] = deque()
        self._processing = False
        self._drain_task: asyncio.Task[None] | None = None
        self._processed_count = 0

    @property
    def interval(self) -> float:
        """Delay in seconds between consecutive operations."""
        return 1.0 / self.rate_limit

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def processed_count(self) -> int:
        return self._processed_count

    async def enqueue(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Queue ``operation`` and wait for its result.

        Args:
            operation: Zero-argument coroutine function to execute

        Returns:
            Whatever the operation returns

        Raises:
            Exception: Whatever the operation raises; other queued
                operations are unaffected
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        self._queue.append(QueuedRequest(operation=operation, future=future))
        logger.debug(f"Request queued ({len(self._queue)} pending)")

        if not self._processing:
            self._processing = True
            self._drain_task = loop.create_task(self._process_queue())

        return await future

    async def _process_queue(self) -> None:
        try:
            while self._queue:
                request = self._queue.popleft()

                try:
                    result = await request.operation()
                except Exception as e:
                    if not request.future.done():
                        request.future.set_exception(e)
                else:
                    if not request.future.done():
                        request.future.set_result(result)

                self._processed_count += 1
                await asyncio.sleep(self.interval)
        finally:
            self._processing = False
