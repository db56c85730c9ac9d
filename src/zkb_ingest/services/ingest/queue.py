"""
Bounded Intake Queue with Backpressure.

Sits between the event source and the pipeline workers. A full queue
blocks the producer rather than dropping events, so a finite source
(history backfill) is never silently truncated and a live source simply
stops pulling from upstream until workers catch up.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import asdict, dataclass

from ...core.logging import get_logger
from ..redisq.models import KillEvent

logger = get_logger(__name__)

DEFAULT_QUEUE_SIZE = 100


class QueueClosedError(Exception):
    """put() on a queue that no longer accepts events."""


@dataclass
class IntakeMetrics:
    """Backpressure metrics for observability."""

    received_total: int = 0
    delivered_total: int = 0
    abandoned_total: int = 0
    blocked_puts: int = 0
    queue_depth: int = 0
    high_water: int = 0
    last_block_time: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class IntakeQueue:
    """
    Bounded FIFO of kill events.

    put() waits while the queue is full. get() waits while it is empty and
    returns None once the queue is closed and drained. abandon() closes
    the queue and discards what is left.
    """

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE):
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._queue: deque[KillEvent] = deque()
        self._maxsize = maxsize
        self._closed = False
        self._cond = asyncio.Condition()
        self.metrics = IntakeMetrics()

    async def put(self, event: KillEvent) -> None:
        """
        Add an event, waiting for space if the queue is full.

        Raises:
            QueueClosedError: The queue was closed before or while waiting
        """
        async with self._cond:
            if self._closed:
                raise QueueClosedError("intake queue is closed")

            if len(self._queue) >= self._maxsize:
                self.metrics.blocked_puts += 1
                self.metrics.last_block_time = time.time()
                logger.debug(
                    "Backpressure: intake queue full, waiting",
                    extra={"kill_id": event.kill_id, "queue_depth": len(self._queue)},
                )
                await self._cond.wait_for(
                    lambda: self._closed or len(self._queue) < self._maxsize
                )
                if self._closed:
                    raise QueueClosedError("intake queue is closed")

            self._queue.append(event)
            self.metrics.received_total += 1
            self._update_depth()
            self._cond.notify_all()

    async def get(self) -> KillEvent | None:
        """Next event, or None when the queue is closed and empty."""
        async with self._cond:
            await self._cond.wait_for(lambda: self._closed or bool(self._queue))
            if not self._queue:
                return None
            event = self._queue.popleft()
            self.metrics.delivered_total += 1
            self._update_depth()
            self._cond.notify_all()
            return event

    async def close(self) -> None:
        """Stop accepting events; consumers drain what is queued."""
        async with self._cond:
            self._closed = True
            self._cond.notify_all()

    async def abandon(self) -> int:
        """
        Close the queue and discard queued events.

        Returns:
            Number of events discarded
        """
        async with self._cond:
            self._closed = True
            abandoned = len(self._queue)
            self._queue.clear()
            self.metrics.abandoned_total += abandoned
            self._update_depth()
            self._cond.notify_all()

        if abandoned:
            logger.info("Abandoned %d queued events on stop", abandoned)
        return abandoned

    def _update_depth(self) -> None:
        self.metrics.queue_depth = len(self._queue)
        self.metrics.high_water = max(self.metrics.high_water, self.metrics.queue_depth)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def maxsize(self) -> int:
        return self._maxsize

    def get_metrics(self) -> IntakeMetrics:
        """Get current metrics snapshot."""
        return IntakeMetrics(**asdict(self.metrics))

    def __len__(self) -> int:
        return len(self._queue)
