# taipulse/lifecycle/market_scanner.py

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from taipulse.config import settings
from taipulse.core.analysis.compositor import AnalysisCompositor
from taipulse.core.analysis.market_pulse import MarketPulseService
from taipulse.lifecycle.deep_scan import DeepScanScheduler
from taipulse.schemas.analysis import AnalysisMode, MarketPulse, StockSnapshot
from taipulse.services.watchlist import WatchlistStore

logger = logging.getLogger(__name__)


class MarketScanner:
    """
    Orchestrates the three refresh paths:

    1. scan_market: shallow pulse sweep, merged into the store, with the
       undetailed symbols handed to the deep scan
    2. refresh_watchlist: fast re-score of every watched symbol
    3. add_stock: full analysis of a newly watched symbol
    """

    def __init__(
        self,
        compositor: AnalysisCompositor,
        pulse: MarketPulseService,
        watchlist: WatchlistStore,
        deep_scan: DeepScanScheduler,
        refresh_delay: float = settings.WATCHLIST_REFRESH_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.compositor = compositor
        self.pulse = pulse
        self.watchlist = watchlist
        self.deep_scan = deep_scan
        self.refresh_delay = refresh_delay
        self._sleep = sleep
        self.scanning = False

    async def scan_market(self) -> Optional[MarketPulse]:
        if self.scanning:
            logger.info("Market scan already in progress, skipping")
            return None

        self.scanning = True
        try:
            fresh = await self.pulse.get_market_pulse()
            merged = self.watchlist.merge_pulse(fresh)

            pending = self.watchlist.pending_deep_scan_ids(fresh)
            added = await self.deep_scan.enqueue(pending) if pending else 0
            logger.info(
                f"Market scan done: {len(merged.sectors)} sectors, "
                f"{len(merged.recommendations)} picks, {added} queued for deep scan"
            )
            return merged
        except Exception as e:
            logger.error(f"Market scan failed: {e}")
            return None
        finally:
            self.scanning = False

    async def refresh_watchlist(self) -> int:
        """Returns how many symbols were refreshed."""
        refreshed = 0
        for stock in list(self.watchlist.stocks):
            try:
                detail = await self.compositor.get_analyze(stock.id, AnalysisMode.FAST)
                self.watchlist.sync_stock(stock.id, detail)
                refreshed += 1
                await self._sleep(self.refresh_delay)
            except Exception as e:
                logger.error(f"Watchlist refresh failed for {stock.id}: {e}")
        return refreshed

    async def add_stock(self, sid: str) -> Optional[StockSnapshot]:
        sid = sid.strip()
        if self.watchlist.contains(sid):
            logger.info(f"{sid} already in watchlist")
            return None

        info = await self.compositor.check_stock(sid)
        detail = await self.compositor.get_analyze(info["id"], AnalysisMode.FULL)
        snapshot = StockSnapshot.from_detail(detail, is_detailed=True).model_copy(update={"name": info["name"]})
        self.watchlist.add(snapshot)
        return snapshot
