# taipulse/core/market/throttle.py

import asyncio
import time
import logging
import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from taipulse.config import settings
from taipulse.utils.metrics import (
    throttle_queue_depth, provider_cooldowns_total, provider_skipped_total
)

logger = logging.getLogger(__name__)


class ProviderCoolingDown(Exception):
    """Raised instead of calling a provider that is inside its cooldown window."""

    def __init__(self, provider: str, remaining: float = 0.0):
        super().__init__(f"{provider} cooling down ({remaining:.0f}s left)")
        self.provider = provider
        self.remaining = remaining


class SchedulerClosed(Exception):
    pass


class ProviderCooldowns:
    """Independent rate-limit circuit breaker per upstream provider."""

    def __init__(self, windows: Optional[Dict[str, float]] = None,
                 time_fn: Callable[[], float] = time.time):
        self.windows = dict(settings.PROVIDER_COOLDOWN_SECONDS if windows is None else windows)
        self._time = time_fn
        self._until: Dict[str, float] = {}
        self._lock = threading.Lock()

    def trigger(self, provider: str) -> None:
        window = self.windows.get(provider, 60.0)
        with self._lock:
            self._until[provider] = self._time() + window
        provider_cooldowns_total.labels(provider=provider).inc()
        logger.warning(f"{provider} rate limit hit, cooling down for {window:.0f}s")

    def remaining(self, provider: str) -> float:
        with self._lock:
            until = self._until.get(provider, 0.0)
        return max(0.0, until - self._time())

    def is_cooling(self, provider: str) -> bool:
        return self.remaining(provider) > 0


@dataclass
class _Job:
    fn: Callable[[], Awaitable[Any]]
    provider: Optional[str]
    future: asyncio.Future


class ThrottledScheduler:
    """
    Global serialized request queue.

    One worker drains a FIFO queue one task at a time and sleeps
    `min_gap` after every executed task, so outbound calls never burst
    faster than one per gap regardless of how many callers are waiting.
    """

    def __init__(self, min_gap: float = settings.MIN_REQUEST_GAP_SECONDS,
                 cooldowns: Optional[ProviderCooldowns] = None):
        self.min_gap = min_gap
        self.cooldowns = cooldowns or ProviderCooldowns()
        self._queue: "asyncio.Queue[_Job]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._closed = False
        self._current: Optional[_Job] = None
        self.completed = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def submit(self, fn: Callable[[], Awaitable[Any]], provider: Optional[str] = None) -> Any:
        """
        Enqueue `fn` and wait for its result.
        Raises ProviderCoolingDown without queueing if `provider` is cooling.
        """
        if self._closed:
            raise SchedulerClosed("Scheduler is closed")
        self._check_cooldown(provider)

        loop = asyncio.get_running_loop()
        job = _Job(fn=fn, provider=provider, future=loop.create_future())
        self._queue.put_nowait(job)
        throttle_queue_depth.set(self._queue.qsize())
        self._ensure_worker()
        return await job.future

    def _check_cooldown(self, provider: Optional[str]) -> None:
        if provider and self.cooldowns.is_cooling(provider):
            provider_skipped_total.labels(provider=provider).inc()
            raise ProviderCoolingDown(provider, self.cooldowns.remaining(provider))

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            throttle_queue_depth.set(self._queue.qsize())
            try:
                if job.future.done():
                    continue

                # A cooldown may have started while this job was queued
                try:
                    self._check_cooldown(job.provider)
                except ProviderCoolingDown as e:
                    job.future.set_exception(e)
                    continue

                self._current = job
                try:
                    result = await job.fn()
                except Exception as e:
                    if not job.future.done():
                        job.future.set_exception(e)
                else:
                    if not job.future.done():
                        job.future.set_result(result)
                finally:
                    self._current = None

                self.completed += 1
                await asyncio.sleep(self.min_gap)
            finally:
                self._queue.task_done()

    async def close(self) -> None:
        """Stops the worker and fails every job still waiting."""
        self._closed = True
        current = self._current
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        if current is not None and not current.future.done():
            current.future.set_exception(SchedulerClosed("Scheduler closed mid-request"))

        while not self._queue.empty():
            job = self._queue.get_nowait()
            if not job.future.done():
                job.future.set_exception(SchedulerClosed("Scheduler closed before job ran"))
            self._queue.task_done()
        throttle_queue_depth.set(0)
