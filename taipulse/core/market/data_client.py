# taipulse/core/market/data_client.py

import httpx
import asyncio
import logging
import re
import time
from datetime import timedelta
from urllib.parse import quote
from typing import Any, Dict, List, Optional

from taipulse.config import settings
from taipulse.constants import (
    SECTOR_MAP, TAIEX_SYMBOL, NASDAQ_SYMBOL, SOX_SYMBOL, get_sector_name
)
from taipulse.core.analytics.indicators import moving_average
from taipulse.core.market.market_clock import MarketClock
from taipulse.core.market.quote_cache import QuoteCache
from taipulse.core.market.throttle import ThrottledScheduler, ProviderCoolingDown
from taipulse.schemas.analysis import (
    OHLCV, LiveQuote, MarketContext, IndexPerformance, SectorPerformance,
    PeerPerformance, StaticAnalysisData
)
from taipulse.services.name_registry import NameRegistry
from taipulse.utils.metrics import provider_requests_total

logger = logging.getLogger(__name__)

# Providers
FUGLE = "fugle"        # primary live quote
YAHOO = "yahoo"        # chart-based quote / index history
FINMIND = "finmind"    # history, chips, fundamentals

RATE_LIMIT_STATUS = {
    FUGLE: {429},
    YAHOO: {429},
    FINMIND: {429, 402},
}

# FinMind datasets
DS_PRICE = "TaiwanStockPrice"
DS_PER = "TaiwanStockPER"
DS_CHIPS = "TaiwanStockInstitutionalInvestorsBuySell"
DS_FINANCIAL = "TaiwanStockFinancialAnalysis"
DS_REVENUE = "TaiwanStockMonthRevenue"

MARKET_MA_PERIOD = 20
PEER_LIMIT = 3


class MarketDataClient:
    """
    Provider client behind the proxy relay.

    Every network call goes through the shared ThrottledScheduler; live
    quotes are memoized in the QuoteCache. Failures never propagate: quotes
    degrade to None, datasets to [], flags to False.
    """

    def __init__(
        self,
        scheduler: ThrottledScheduler,
        quote_cache: QuoteCache,
        names: NameRegistry,
        clock: Optional[MarketClock] = None,
        base_url: str = settings.PROXY_BASE_URL,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
    ):
        self.scheduler = scheduler
        self.quote_cache = quote_cache
        self.names = names
        self.clock = clock or MarketClock()
        self.base_url = base_url.rstrip("/")

        self.client = httpx.AsyncClient(
            timeout=timeout,
            headers={"Accept": "application/json"},
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        )

    async def close(self):
        await self.client.aclose()

    # ==========================================
    # 1. TRANSPORT
    # ==========================================

    async def _request(self, provider: str, path: str, params: Optional[Dict[str, str]] = None) -> Optional[Any]:
        """One throttled GET returning parsed JSON, or None on any failure."""
        url = f"{self.base_url}{path}"

        async def call():
            resp = await self.client.get(url, params=params)
            if resp.status_code in RATE_LIMIT_STATUS[provider]:
                provider_requests_total.labels(provider=provider, status="rate_limited").inc()
                self.scheduler.cooldowns.trigger(provider)
                return None
            resp.raise_for_status()
            provider_requests_total.labels(provider=provider, status="ok").inc()
            return resp.json()

        try:
            return await self.scheduler.submit(call, provider=provider)
        except ProviderCoolingDown as e:
            logger.debug(f"Skipped {path}: {e}")
            return None
        except Exception as e:
            provider_requests_total.labels(provider=provider, status="error").inc()
            logger.error(f"{provider} request failed for {path}: {e}")
            return None

    def _start_date(self, days: int) -> str:
        return (self.clock.now().date() - timedelta(days=days)).strftime("%Y-%m-%d")

    # ==========================================
    # 2. LIVE QUOTES
    # ==========================================

    async def fetch_fugle_quote(self, sid: str) -> Optional[LiveQuote]:
        cached = self.quote_cache.get(FUGLE, sid)
        if cached is not None:
            return cached

        data = await self._request(FUGLE, f"/fugle/{quote(sid, safe='')}")
        if not data:
            return None

        try:
            last_trade = data.get("lastTrade") or {}
            q = data.get("quote") or {}
            price = float(last_trade.get("price") or data.get("closePrice") or 0)
            prev_close = float(data.get("previousClose") or (price - float(q.get("change") or 0)))
            change = float(q.get("change") or (price - prev_close))
            change_percent = change / prev_close * 100 if prev_close > 0 else 0.0

            live = LiveQuote(
                id=sid,
                price=price,
                change=change,
                change_percent=change_percent,
                volume=float(q.get("totalVolume") or 0),
                name=self.names.resolve(sid, data.get("nameZhTw") or ""),
                market=data.get("market"),
            )
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Unparseable Fugle quote for {sid}: {e}")
            return None

        self.quote_cache.put(FUGLE, sid, live)
        return live

    @staticmethod
    def yahoo_symbol(sid: str, market: str = "TSE") -> str:
        if "^" in sid:
            return sid
        return f"{sid}.TWO" if market == "OTC" else f"{sid}.TW"

    async def _fetch_chart(self, symbol: str, range_: str) -> Optional[Dict[str, Any]]:
        data = await self._request(YAHOO, "/yahoo", {"symbol": symbol, "range": range_, "interval": "1d"})
        if not data:
            return None
        try:
            return data["chart"]["result"][0]
        except (KeyError, IndexError, TypeError):
            logger.warning(f"Empty Yahoo chart for {symbol}")
            return None

    async def fetch_yahoo_quote(self, sid: str, market: str = "TSE") -> Optional[LiveQuote]:
        symbol = self.yahoo_symbol(sid, market)
        cached = self.quote_cache.get(YAHOO, symbol)
        if cached is not None:
            return cached

        result = await self._fetch_chart(symbol, "2d")
        if result is None:
            return None

        try:
            meta = result.get("meta") or {}
            price = float(meta.get("regularMarketPrice") or 0)
            prev_close = float(meta.get("chartPreviousClose") or price)
            change = price - prev_close
            change_percent = change / prev_close * 100 if prev_close != 0 else 0.0

            volumes = ((result.get("indicators") or {}).get("quote") or [{}])[0].get("volume") or []
            volume = float(volumes[-1] or 0) if volumes else 0.0

            live = LiveQuote(
                id=sid,
                price=price,
                change=change,
                change_percent=change_percent,
                volume=volume,
                name=self.names.resolve(sid, meta.get("shortName") or ""),
                market=market,
            )
        except (TypeError, ValueError, AttributeError, IndexError) as e:
            logger.warning(f"Unparseable Yahoo quote for {symbol}: {e}")
            return None

        self.quote_cache.put(YAHOO, symbol, live)
        return live

    # ==========================================
    # 3. MARKET BREADTH & CONTEXT
    # ==========================================

    async def fetch_market_below_ma20(self) -> bool:
        """True when TAIEX closes below its own 20-day average."""
        result = await self._fetch_chart(TAIEX_SYMBOL, "2mo")
        if result is None:
            return False
        try:
            closes = result["indicators"]["quote"][0]["close"] or []
        except (KeyError, IndexError, TypeError):
            return False

        valid = [float(c) for c in closes if c is not None]
        ma20 = moving_average(valid, MARKET_MA_PERIOD)
        if ma20 is None:
            return False
        return valid[-1] < ma20

    async def fetch_market_context(self, sid: str) -> MarketContext:
        try:
            twii, nasdaq, sox = await asyncio.gather(
                self.fetch_yahoo_quote(TAIEX_SYMBOL),
                self.fetch_yahoo_quote(NASDAQ_SYMBOL),
                self.fetch_yahoo_quote(SOX_SYMBOL),
            )

            sector_name = get_sector_name(sid)
            peer_ids = [p for p in SECTOR_MAP.get(sector_name, []) if p != sid][:PEER_LIMIT]
            peer_quotes = await asyncio.gather(*(self.fetch_fugle_quote(p) for p in peer_ids))
            peers = [PeerPerformance(name=q.name, change=q.change_percent) for q in peer_quotes if q is not None]
            avg_change = sum(p.change for p in peers) / len(peers) if peers else 0.0

            return MarketContext(
                index_performance=IndexPerformance(
                    twii_change=twii.change_percent if twii else 0.0,
                    nasdaq_change=nasdaq.change_percent if nasdaq else 0.0,
                    sox_change=sox.change_percent if sox else 0.0,
                ),
                sector_performance=SectorPerformance(
                    sector_name=sector_name, avg_change=avg_change, peers=peers
                ),
            )
        except Exception as e:
            logger.error(f"Market context failed for {sid}: {e}")
            return MarketContext()

    # ==========================================
    # 4. FINMIND DATASETS
    # ==========================================

    async def fetch_finmind(self, dataset: str, sid: str, start_date: str) -> List[Dict[str, Any]]:
        clean_sid = re.sub(r"[^0-9]", "", sid.split(".")[0])
        if not clean_sid:
            return []

        data = await self._request(FINMIND, "/finmind", {
            "dataset": dataset,
            "data_id": clean_sid,
            "start_date": start_date,
        })
        if not isinstance(data, dict):
            return []
        rows = data.get("data") or []
        return rows if isinstance(rows, list) else []

    async def fetch_history(self, sid: str) -> List[OHLCV]:
        rows = await self.fetch_finmind(DS_PRICE, sid, self._start_date(settings.PRICE_LOOKBACK_DAYS))
        bars: List[OHLCV] = []
        for r in rows:
            try:
                bars.append(OHLCV(
                    open=float(r["open"]),
                    high=float(r["max"]),
                    low=float(r["min"]),
                    close=float(r["close"]),
                    volume=float(r.get("Trading_Volume") or 0),
                    date=str(r.get("date", "")),
                ))
            except (KeyError, TypeError, ValueError):
                continue
        bars.sort(key=lambda b: b.date)
        return bars

    async def fetch_static_bundle(self, sid: str) -> StaticAnalysisData:
        """The heavy per-symbol fetch. Meant to run at most once per session window."""
        history, per_data, chip_data, financial, market_below, rev_data, context = await asyncio.gather(
            self.fetch_history(sid),
            self.fetch_finmind(DS_PER, sid, self._start_date(settings.PER_LOOKBACK_DAYS)),
            self.fetch_finmind(DS_CHIPS, sid, self._start_date(settings.CHIP_LOOKBACK_DAYS)),
            self.fetch_finmind(DS_FINANCIAL, sid, self._start_date(settings.FINANCIAL_LOOKBACK_DAYS)),
            self.fetch_market_below_ma20(),
            self.fetch_finmind(DS_REVENUE, sid, self._start_date(settings.REVENUE_LOOKBACK_DAYS)),
            self.fetch_market_context(sid),
        )

        return StaticAnalysisData(
            history=history,
            per_data=per_data,
            chip_data=chip_data,
            financial_analysis=financial,
            rev_data=rev_data,
            market_below_ma20=market_below,
            market_context=context,
            timestamp=time.time(),
        )
