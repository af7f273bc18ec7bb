# taipulse/core/analysis/market_pulse.py

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from taipulse.config import settings
from taipulse.constants import SECTOR_MAP, INDEX_NAMES, TAIEX_SYMBOL, NASDAQ_SYMBOL, SOX_SYMBOL
from taipulse.core.analysis.compositor import AnalysisCompositor
from taipulse.core.analytics.scoring import js_round
from taipulse.core.market.market_clock import MarketClock
from taipulse.schemas.analysis import (
    AnalysisMode, MarketPulse, MarketTrend, SectorSnapshot, StockSnapshot
)

logger = logging.getLogger(__name__)

PULSE_INDICES = (TAIEX_SYMBOL, NASDAQ_SYMBOL, SOX_SYMBOL)
WEAK_MARKET_THRESHOLD = -1.0
WARNING_WEAK = "大盤修正風險，建議保守"
WARNING_STABLE = "市場運行穩健"


class MarketPulseService:
    """
    Slow, throttle-friendly sweep over the leading sectors.

    Every symbol is analysed in pulse mode (cached static data only), one
    at a time with a pause between symbols and a longer one between
    sectors. A failing symbol becomes a neutral placeholder.
    """

    def __init__(
        self,
        compositor: AnalysisCompositor,
        clock: Optional[MarketClock] = None,
        sector_limit: int = settings.PULSE_SECTOR_LIMIT,
        stocks_per_sector: int = settings.PULSE_STOCKS_PER_SECTOR,
        stock_delay: float = settings.PULSE_STOCK_DELAY_SECONDS,
        sector_delay: float = settings.PULSE_SECTOR_DELAY_SECONDS,
        min_score: int = settings.RECOMMENDATION_MIN_SCORE,
        limit: int = settings.RECOMMENDATION_LIMIT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.compositor = compositor
        self.client = compositor.client
        self.clock = clock or compositor.clock
        self._sleep = sleep

        self.sector_limit = sector_limit
        self.stocks_per_sector = stocks_per_sector
        self.stock_delay = stock_delay
        self.sector_delay = sector_delay
        self.min_score = min_score
        self.limit = limit

    async def get_market_pulse(self) -> MarketPulse:
        quotes = await asyncio.gather(*(self.client.fetch_yahoo_quote(s) for s in PULSE_INDICES))
        trends = [
            MarketTrend(
                name=INDEX_NAMES[symbol],
                value=q.price if q else 0.0,
                change_percent=q.change_percent if q else 0.0,
            )
            for symbol, q in zip(PULSE_INDICES, quotes)
        ]

        sectors: List[SectorSnapshot] = []
        for name in list(SECTOR_MAP.keys())[:self.sector_limit]:
            stocks = []
            for sid in SECTOR_MAP[name][:self.stocks_per_sector]:
                stocks.append(await self._snapshot(sid))
                await self._sleep(self.stock_delay)

            score = js_round(sum(s.score for s in stocks) / len(stocks)) if stocks else 50
            sectors.append(SectorSnapshot(name=name, score=score, stocks=stocks))
            logger.info(f"Pulse sector {name}: score={score} ({len(stocks)} symbols)")
            await self._sleep(self.sector_delay)

        scanned = [s for sector in sectors for s in sector.stocks]
        recommendations = sorted(
            (s for s in scanned if s.score >= self.min_score),
            key=lambda s: s.score,
            reverse=True,
        )[:self.limit]

        twii = quotes[0]
        weak = twii is not None and twii.change_percent < WEAK_MARKET_THRESHOLD

        return MarketPulse(
            trends=trends,
            sectors=sectors,
            recommendations=recommendations,
            warning=WARNING_WEAK if weak else WARNING_STABLE,
            scan_status=f"最後更新: {self.clock.now().strftime('%H:%M:%S')}",
        )

    async def _snapshot(self, sid: str) -> StockSnapshot:
        try:
            detail = await self.compositor.get_analyze(sid, AnalysisMode.PULSE)
            return StockSnapshot.from_detail(detail)
        except Exception as e:
            logger.warning(f"Pulse analysis failed for {sid}, using placeholder: {e}")
            return StockSnapshot(id=sid, name=self.compositor.names.resolve(sid))
