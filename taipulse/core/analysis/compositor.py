# taipulse/core/analysis/compositor.py

import logging
from typing import Dict, List, Optional, Union

from taipulse.core.analytics import fundamentals as fa
from taipulse.core.analytics.indicators import indicator_set, weekly_aggregate, key_levels
from taipulse.core.analytics.patterns import pattern_stream
from taipulse.core.analytics.scoring import ScoringEngine, ScoreInputs
from taipulse.core.market.data_client import MarketDataClient
from taipulse.core.market.market_clock import MarketClock
from taipulse.core.market.static_cache import StaticAnalysisCache
from taipulse.schemas.analysis import (
    OHLCV, LiveQuote, StaticAnalysisData, AnalysisMode, AnalysisDetail,
    PriceInfo, AnalysisSection, Fundamentals, AdvancedTech
)
from taipulse.services.name_registry import NameRegistry
from taipulse.utils.logging import log_performance
from taipulse.utils.metrics import analysis_duration, measure_duration

logger = logging.getLogger(__name__)

DAILY_STREAM_BARS = 12
WEEKLY_STREAM_BARS = 15
SYNTHETIC_BAR_DATE = "Today"


class AnalysisCompositor:
    """
    Merges a fresh live quote with the (cached or refetched) static bundle
    and recomputes every indicator from scratch.

    Modes:
    - full:  refetch static data unconditionally and seed the cache
    - fast:  cached bundle if still valid, otherwise fetch once and store
    - pulse: cached bundle if still valid, otherwise the zeroed default
    """

    def __init__(
        self,
        client: MarketDataClient,
        static_cache: StaticAnalysisCache,
        names: NameRegistry,
        clock: Optional[MarketClock] = None,
        scoring: Optional[ScoringEngine] = None,
    ):
        self.client = client
        self.static_cache = static_cache
        self.names = names
        self.clock = clock or static_cache.clock
        self.scoring = scoring or ScoringEngine()

    # ==========================================
    # 1. INPUT RESOLUTION
    # ==========================================

    async def resolve_live_quote(self, sid: str) -> Optional[LiveQuote]:
        """Fugle first, then Yahoo listed (.TW), then Yahoo OTC (.TWO)."""
        live = await self.client.fetch_fugle_quote(sid)
        if live is not None and live.price:
            return live

        for market in ("TSE", "OTC"):
            fallback = await self.client.fetch_yahoo_quote(sid, market)
            if fallback is not None and fallback.price:
                return fallback
        return live

    async def load_static(self, sid: str, mode: AnalysisMode) -> StaticAnalysisData:
        if mode is AnalysisMode.FULL:
            return await self._refetch(sid)

        cached = self.static_cache.get(sid)
        if cached is not None:
            return cached

        if mode is AnalysisMode.FAST:
            return await self._refetch(sid)

        # Pulse sweeps never spend a full fetch on an uncached symbol
        return StaticAnalysisData.default()

    async def _refetch(self, sid: str) -> StaticAnalysisData:
        data = await self.client.fetch_static_bundle(sid)
        self.static_cache.put(sid, data)
        return data

    # ==========================================
    # 2. ENTRY POINTS
    # ==========================================

    @log_performance()
    async def get_analyze(self, sid: str, mode: Union[AnalysisMode, str] = AnalysisMode.FULL) -> AnalysisDetail:
        mode = AnalysisMode(mode)
        with measure_duration(analysis_duration, mode=mode.value):
            live = await self.resolve_live_quote(sid)
            static = await self.load_static(sid, mode)
            return self.compute_analysis(sid, live, static)

    async def check_stock(self, sid: str) -> Dict[str, str]:
        known = self.names.lookup(sid)
        if known:
            return {"id": sid, "name": known}

        live = await self.client.fetch_fugle_quote(sid)
        if live is not None and live.name:
            return {"id": sid, "name": live.name}

        yahoo = await self.client.fetch_yahoo_quote(sid)
        if yahoo is not None and yahoo.name:
            return {"id": sid, "name": yahoo.name}

        return {"id": sid, "name": sid}

    # ==========================================
    # 3. COMPUTE CORE (no I/O)
    # ==========================================

    def compute_analysis(self, sid: str, live: Optional[LiveQuote], static: StaticAnalysisData) -> AnalysisDetail:
        history = static.history
        current_price = live.price if live else 0.0
        current_vol = live.volume if live and live.volume else (history[-1].volume if history else 0.0)
        today = self.clock.today_str()

        # Rebuild the daily series, adding a transient bar for today
        daily_bars: List[OHLCV] = list(history)
        if live and live.price > 0 and history and history[-1].date != today:
            daily_bars.append(OHLCV(
                open=live.price, high=live.price, low=live.price, close=live.price,
                volume=live.volume or 0.0, date=SYNTHETIC_BAR_DATE,
            ))
        daily_prices = [b.close for b in daily_bars]

        weekly_bars = weekly_aggregate(history, live.price if live else None)
        weekly_prices = [b.close for b in weekly_bars]

        daily = indicator_set(daily_prices, current_price)
        weekly = indicator_set(weekly_prices, current_price)

        ma20 = daily.ma20 if len(history) >= 20 else None
        ma60 = daily.ma60 if len(history) >= 60 else None
        avg_vol5 = sum(b.volume for b in history[-5:]) / 5 if len(history) >= 5 else None

        valuation = fa.extract_valuation(static.per_data)
        roe, roe_estimated = fa.resolve_roe(static.financial_analysis, valuation)
        roe_value = roe if roe is not None else 0.0
        margin = fa.latest_financial_value(static.financial_analysis, fa.MARGIN_TYPE)
        chips = fa.summarize_chips(static.chip_data)
        forecasts = fa.build_forecasts(static.rev_data, roe_value)

        score = self.scoring.calculate_score(ScoreInputs(
            price=current_price,
            change_percent=live.change_percent if live else 0.0,
            ma20=ma20,
            ma60=ma60,
            avg_vol5=avg_vol5,
            volume=current_vol,
            roe=roe,
            pe=valuation.pe,
            trust_5d=chips.trust_5d,
            foreign_5d=chips.foreign_5d,
            trust_streak=chips.trust_streak,
            market_below_ma20=static.market_below_ma20,
        ))
        strategy_mom, strategy_val = fa.build_strategies(current_price, score.score, roe_value)

        bias = round((current_price - ma20) / ma20 * 100, 2) if ma20 else 0.0

        logger.debug(f"{sid}: score={score.score} action={score.action.value} bars={len(history)}")

        return AnalysisDetail(
            id=sid,
            name=self.names.resolve(sid, live.name if live else None),
            price_info=PriceInfo(
                price=current_price,
                change=live.change if live else 0.0,
                change_percent=live.change_percent if live else 0.0,
            ),
            analysis=AnalysisSection(
                score=score.score,
                action=score.action,
                reasons=score.reasons,
                strategy_mom=strategy_mom,
                strategy_val=strategy_val,
            ),
            fundamentals=Fundamentals(
                pe=valuation.pe,
                pbr=valuation.pbr,
                roe=roe,
                roe_estimated=roe_estimated,
                dividend_yield=valuation.dividend_yield or None,
                profit_margin=margin,
                volume=current_vol,
                ma20=ma20,
                ma60=ma60,
            ),
            advanced_tech=AdvancedTech(
                daily=daily,
                weekly=weekly,
                daily_stream=pattern_stream(daily_bars, DAILY_STREAM_BARS),
                weekly_stream=pattern_stream(weekly_bars, WEEKLY_STREAM_BARS),
                key_levels=key_levels(history, live),
            ),
            market_context=static.market_context,
            chips=chips,
            bias=bias,
            history=fa.price_history(history, live, today, ma20, ma60),
            forecasts=forecasts,
        )
