# taipulse/lifecycle/deep_scan.py

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, Iterable, Optional, Set

from taipulse.config import settings
from taipulse.core.analysis.compositor import AnalysisCompositor
from taipulse.schemas.analysis import AnalysisMode
from taipulse.services.watchlist import WatchlistStore
from taipulse.utils.metrics import deep_scan_processed_total, deep_scan_pending

logger = logging.getLogger(__name__)


class DeepScanScheduler:
    """
    Background upgrade of shallow pulse results to full analyses.

    - Pending ids live in a FIFO deque mirrored by a membership set, so a
      symbol already waiting is never queued twice.
    - At most one batch loop runs; enqueueing while it runs just extends
      the queue.
    - Each batch is analysed concurrently in full mode (which also seeds
      the static cache), synced into the watchlist store, then the loop
      pauses before the next batch.
    """

    def __init__(
        self,
        compositor: AnalysisCompositor,
        watchlist: WatchlistStore,
        batch_size: int = settings.DEEP_SCAN_BATCH_SIZE,
        delay: float = settings.DEEP_SCAN_DELAY_SECONDS,
        on_complete: Optional[Callable[[], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.compositor = compositor
        self.watchlist = watchlist
        self.batch_size = batch_size
        self.delay = delay
        self.on_complete = on_complete
        self._sleep = sleep

        self._queue: Deque[str] = deque()
        self._queued: Set[str] = set()
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

        # Progress
        self.processed = 0
        self.total_targets = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def enqueue(self, ids: Iterable[str]) -> int:
        """Queues ids not already waiting. Returns how many were added."""
        async with self._lock:
            added = 0
            for sid in ids:
                if sid in self._queued:
                    continue
                self._queue.append(sid)
                self._queued.add(sid)
                added += 1

            self.total_targets += added
            deep_scan_pending.set(len(self._queue))

            if added and not self.running:
                self._task = asyncio.create_task(self._run())
                logger.info(f"Deep scan started with {len(self._queue)} pending symbols")
            elif added:
                logger.debug(f"Deep scan extended by {added} symbols")
            return added

    async def _next_batch(self):
        async with self._lock:
            batch = []
            while self._queue and len(batch) < self.batch_size:
                sid = self._queue.popleft()
                self._queued.discard(sid)
                batch.append(sid)
            deep_scan_pending.set(len(self._queue))
            if not batch:
                # Cleared under the lock so a concurrent enqueue starts a new loop
                self._task = None
            return batch

    async def _run(self) -> None:
        while True:
            batch = await self._next_batch()
            if not batch:
                break

            await asyncio.gather(*(self._scan_one(sid) for sid in batch))
            self.processed += len(batch)
            logger.info(f"Deep scan progress: {self.processed}/{self.total_targets}")

            await self._sleep(self.delay)

        logger.info(f"Deep scan complete: {self.processed} symbols analysed")
        if self.on_complete is not None:
            try:
                self.on_complete()
            except Exception as e:
                logger.error(f"Deep scan completion callback failed: {e}")

    async def _scan_one(self, sid: str) -> None:
        try:
            detail = await self.compositor.get_analyze(sid, AnalysisMode.FULL)
        except Exception as e:
            deep_scan_processed_total.labels(status="failed").inc()
            logger.error(f"Deep scan failed for {sid}: {e}")
            return
        self.watchlist.sync_stock(sid, detail)
        deep_scan_processed_total.labels(status="ok").inc()

    async def join(self) -> None:
        """Waits until the current loop drains the queue."""
        task = self._task
        if task is not None:
            await task

    async def stop(self) -> None:
        """Cancels the loop and drops everything still queued."""
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        async with self._lock:
            dropped = len(self._queue)
            self._queue.clear()
            self._queued.clear()
            self._task = None
            deep_scan_pending.set(0)
        if dropped:
            logger.warning(f"Deep scan stopped with {dropped} symbols unprocessed")
