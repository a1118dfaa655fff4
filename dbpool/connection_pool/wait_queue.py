"""
Acquire wait queue

FIFO queue of callers blocked in ``acquire()`` while the pool is saturated.
Each waiter owns a future and a cancellable deadline timer. The future's
done flag is the single "settled" marker: whichever of hand-off, timeout,
close or caller cancellation settles it first wins, and settling always
removes the waiter from the queue and cancels its timer.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Deque, Optional

from ..core.errors import AcquireTimeoutError
from .connection import PoolConnection

logger = logging.getLogger('dbpool.connection_pool.wait_queue')


class Waiter:
    """A single pending acquire request"""

    def __init__(self, future: asyncio.Future, timeout: float):
        self.future = future
        self.timeout = timeout
        self.enqueued_at = time.monotonic()
        self.deadline = self.enqueued_at + timeout
        self.timer: Optional[asyncio.TimerHandle] = None

    @property
    def settled(self) -> bool:
        return self.future.done()


class WaitQueue:
    """FIFO of waiters with per-waiter deadlines"""

    def __init__(self, on_timeout: Optional[Callable[[Waiter], None]] = None):
        self._waiters: Deque[Waiter] = deque()
        self._on_timeout = on_timeout

    def __len__(self) -> int:
        return len(self._waiters)

    def __bool__(self) -> bool:
        return bool(self._waiters)

    def enqueue(self, timeout: float) -> Waiter:
        """Register a waiter whose future rejects with AcquireTimeoutError after ``timeout`` seconds"""
        loop = asyncio.get_running_loop()
        waiter = Waiter(loop.create_future(), timeout)
        waiter.timer = loop.call_later(timeout, self._expire, waiter)
        waiter.future.add_done_callback(lambda _: self._discard(waiter))
        self._waiters.append(waiter)
        return waiter

    def hand_off(self, connection: PoolConnection) -> bool:
        """
        Resolve the oldest pending waiter with ``connection``

        The caller must have marked the connection ACTIVE already.
        Returns False when no pending waiter exists.
        """
        while self._waiters:
            waiter = self._waiters.popleft()
            if waiter.settled:
                continue
            waiter.timer.cancel()
            waiter.future.set_result(connection)
            return True
        return False

    def reject_all(self, error_factory: Callable[[], BaseException]) -> int:
        """Reject every pending waiter with a fresh error; returns how many were rejected"""
        rejected = 0
        while self._waiters:
            waiter = self._waiters.popleft()
            waiter.timer.cancel()
            if not waiter.settled:
                waiter.future.set_exception(error_factory())
                rejected += 1
        return rejected

    def _expire(self, waiter: Waiter) -> None:
        if waiter.settled:
            return

        self._discard(waiter)
        waiter.future.set_exception(AcquireTimeoutError(waiter.timeout))
        logger.debug(f"Acquire request timed out after {waiter.timeout:.3f}s")

        if self._on_timeout:
            self._on_timeout(waiter)

    def _discard(self, waiter: Waiter) -> None:
        if waiter.timer:
            waiter.timer.cancel()
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass
