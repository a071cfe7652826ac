"""Deduplicating, rate limited work queue of cluster keys.

A key is any hashable string, usually ``<namespace>/<name>``. The queue holds
every key at most once while it is pending and never hands the same key to
two workers at once: a key added while it is being processed is marked dirty
and re-queued as soon as the worker calls :meth:`WorkQueue.done`.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

#: Base delay of the per-key exponential backoff
BASE_DELAY_SECONDS = 0.005

#: Maximum delay of the per-key exponential backoff
MAX_DELAY_SECONDS = 1000.0

#: Overall rate limit applied to retried keys
BUCKET_QPS = 10.0
BUCKET_BURST = 100


class ShutDown(Exception):
    """The queue has been shut down."""


class ItemExponentialFailureRateLimiter:
    """Delay doubling with every failure of the same key."""

    def __init__(
        self, base_delay: float = BASE_DELAY_SECONDS, max_delay: float = MAX_DELAY_SECONDS
    ) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures: Dict[str, int] = {}

    def when(self, key: str) -> float:
        exp = self._failures.get(key, 0)
        self._failures[key] = exp + 1
        # 2**exp overflows float long before the cap is reached
        if exp > 64:
            return self.max_delay
        return min(self.base_delay * 2**exp, self.max_delay)

    def num_requeues(self, key: str) -> int:
        return self._failures.get(key, 0)

    def forget(self, key: str) -> None:
        self._failures.pop(key, None)


class BucketRateLimiter:
    """Token bucket shared by every key."""

    def __init__(self, qps: float = BUCKET_QPS, burst: int = BUCKET_BURST, clock=time.monotonic) -> None:
        self.qps = qps
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last = clock()

    def when(self, key: str) -> float:
        now = self._clock()
        self._tokens = min(self.burst, self._tokens + (now - self._last) * self.qps)
        self._last = now
        self._tokens -= 1
        if self._tokens >= 0:
            return 0.0
        return -self._tokens / self.qps

    def num_requeues(self, key: str) -> int:
        return 0

    def forget(self, key: str) -> None:
        pass


class MaxOfRateLimiter:
    """Uses the longest delay of all wrapped limiters."""

    def __init__(self, *limiters) -> None:
        self.limiters = limiters

    def when(self, key: str) -> float:
        return max(limiter.when(key) for limiter in self.limiters)

    def num_requeues(self, key: str) -> int:
        return max(limiter.num_requeues(key) for limiter in self.limiters)

    def forget(self, key: str) -> None:
        for limiter in self.limiters:
            limiter.forget(key)


def default_rate_limiter() -> MaxOfRateLimiter:
    return MaxOfRateLimiter(ItemExponentialFailureRateLimiter(), BucketRateLimiter())


class WorkQueue:
    """Work queue with per-key exclusivity and rate limited retries."""

    def __init__(self, rate_limiter=None, sensor=None) -> None:
        self.rate_limiter = rate_limiter or default_rate_limiter()
        self.sensor = sensor
        self._queue: asyncio.Queue = asyncio.Queue()
        self._dirty: Set[str] = set()
        self._processing: Set[str] = set()
        self._added_at: Dict[str, float] = {}
        self._delayed: Dict[str, asyncio.TimerHandle] = {}
        self._shutting_down = False

    def __len__(self) -> int:
        return self._queue.qsize()

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, key: str) -> None:
        """Mark a key as needing processing."""
        if self._shutting_down:
            return
        if key in self._dirty:
            return
        self._dirty.add(key)
        self._added_at.setdefault(key, time.monotonic())
        if key in self._processing:
            return
        self._queue.put_nowait(key)
        if self.sensor:
            self.sensor.on_reconcile_queued(key, self._queue.qsize())

    def add_after(self, key: str, delay: float) -> None:
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return
        existing = self._delayed.get(key)
        if existing is not None:
            existing.cancel()
        loop = asyncio.get_running_loop()
        self._delayed[key] = loop.call_later(delay, self._fire_delayed, key)

    def _fire_delayed(self, key: str) -> None:
        self._delayed.pop(key, None)
        self.add(key)

    def add_rate_limited(self, key: str) -> None:
        """Re-add a key once the rate limiter allows it."""
        self.add_after(key, self.rate_limiter.when(key))

    def forget(self, key: str) -> None:
        """Stop tracking failures of a key."""
        self.rate_limiter.forget(key)

    def num_requeues(self, key: str) -> int:
        return self.rate_limiter.num_requeues(key)

    async def get(self) -> str:
        """Wait for the next key and mark it as being processed.

        Raises:
            ShutDown: Once the queue has been shut down.
        """
        while True:
            if self._shutting_down:
                raise ShutDown()
            key = await self._queue.get()
            if key is None:
                # wake-up sentinel pushed by shutdown()
                continue
            self._processing.add(key)
            self._dirty.discard(key)
            added_at = self._added_at.pop(key, None)
            if self.sensor and added_at is not None:
                self.sensor.on_reconcile_dequeued(key, time.monotonic() - added_at)
            return key

    def done(self, key: str) -> None:
        """Mark a key as processed, re-queueing it if it was added meanwhile."""
        self._processing.discard(key)
        if key in self._dirty and not self._shutting_down:
            self._queue.put_nowait(key)

    def shutdown(self, workers: int = 1) -> None:
        """Stop admitting keys and wake up blocked getters."""
        self._shutting_down = True
        for handle in self._delayed.values():
            handle.cancel()
        self._delayed.clear()
        for _ in range(workers):
            self._queue.put_nowait(None)

    def is_processing(self, key: str) -> bool:
        return key in self._processing

    def is_pending(self, key: str) -> bool:
        return key in self._dirty


Handler = Callable[[str], Awaitable[None]]


class Dispatcher:
    """Pool of asyncio workers draining a :class:`WorkQueue`."""

    def __init__(
        self,
        queue: WorkQueue,
        handler: Handler,
        workers: int = 2,
        shutdown_timeout: float = 60.0,
    ) -> None:
        self.queue = queue
        self.handler = handler
        self.workers = workers
        self.shutdown_timeout = shutdown_timeout
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        for idx in range(self.workers):
            self._tasks.append(
                asyncio.create_task(self._worker(), name=f"aerospike-worker-{idx}")
            )
        logger.info(f"Started {self.workers} reconcile workers")

    async def _worker(self) -> None:
        while True:
            try:
                key = await self.queue.get()
            except ShutDown:
                return
            try:
                await self.handler(key)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    f"Error reconciling {key}, requeueing "
                    f"(retries: {self.queue.num_requeues(key)})"
                )
                self.queue.add_rate_limited(key)
            else:
                self.queue.forget(key)
            finally:
                self.queue.done(key)

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Stop admitting keys and wait for in-flight handlers to finish."""
        timeout = self.shutdown_timeout if timeout is None else timeout
        self.queue.shutdown(self.workers)
        if not self._tasks:
            return
        done, pending = await asyncio.wait(self._tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Cancelled {len(pending)} reconcile workers after {timeout}s")
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()
        logger.info("Reconcile workers stopped")
