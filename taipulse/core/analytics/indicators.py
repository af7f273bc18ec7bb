# taipulse/core/analytics/indicators.py

import numpy as np
import logging
from typing import List, Optional, Sequence

from taipulse.schemas.analysis import (
    OHLCV, BollingerBands, TechIndicatorSet, KeyLevels, LiveQuote, TrendStatus
)

logger = logging.getLogger(__name__)

WEEK_LENGTH = 5
KEY_LEVEL_WINDOW = 60

# ==========================================
# 1. PRICE INDICATORS
# ==========================================

def moving_average(series: Sequence[float], period: int) -> Optional[float]:
    """Arithmetic mean of the last `period` values, None if history is short."""
    if period <= 0 or len(series) < period:
        return None
    return float(np.mean(np.asarray(series[-period:], dtype=float)))


def rsi(series: Sequence[float], period: int = 14) -> float:
    """
    Plain trailing-average RSI (no exponential smoothing).
    50 when there are not more than `period` prices, 100 on zero average loss.
    """
    if len(series) <= period:
        return 50.0

    window = np.asarray(series[-(period + 1):], dtype=float)
    deltas = np.diff(window)
    avg_gain = deltas[deltas >= 0].sum() / period
    avg_loss = -deltas[deltas < 0].sum() / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return float(100 - (100 / (1 + rs)))


def bollinger_bands(series: Sequence[float], period: int = 20, k: float = 2) -> Optional[BollingerBands]:
    if len(series) < period:
        return None

    window = np.asarray(series[-period:], dtype=float)
    mid = float(window.mean())
    std = float(window.std())  # population std (ddof=0)
    upper = mid + k * std
    lower = mid - k * std
    bandwidth = (upper - lower) / mid * 100 if mid != 0 else 0.0

    return BollingerBands(upper=upper, mid=mid, lower=lower, bandwidth=bandwidth)


def trend_status(price: float, ma20: Optional[float], ma60: Optional[float]) -> TrendStatus:
    if ma20 is None or ma60 is None:
        return TrendStatus.CHOPPY
    if price > ma20 and ma20 > ma60:
        return TrendStatus.BULLISH_ALIGNED
    if price < ma20 and ma20 < ma60:
        return TrendStatus.BEARISH_ALIGNED
    if price > ma60 and price < ma20:
        return TrendStatus.PULLBACK
    if price < ma60 and price > ma20:
        return TrendStatus.REBOUND
    return TrendStatus.CHOPPY


def indicator_set(prices: Sequence[float], price: float) -> TechIndicatorSet:
    """Full recompute of one timeframe's indicators."""
    ma20 = moving_average(prices, 20)
    ma60 = moving_average(prices, 60)
    return TechIndicatorSet(
        rsi=rsi(prices, 14),
        bbands=bollinger_bands(prices, 20, 2),
        ma20=ma20,
        ma60=ma60,
        trend_status=trend_status(price, ma20, ma60),
    )

# ==========================================
# 2. BAR AGGREGATION
# ==========================================

def weekly_aggregate(daily_bars: Sequence[OHLCV], live_price: Optional[float] = None) -> List[OHLCV]:
    """
    Groups daily bars into 5-bar weeks counted back from the newest bar.
    The oldest chunk may be partial. Output is oldest -> newest, and the
    latest week's close follows the live price when one is supplied.
    """
    weekly: List[OHLCV] = []
    newest_first = list(reversed(daily_bars))

    for i in range(0, len(newest_first), WEEK_LENGTH):
        chunk = newest_first[i:i + WEEK_LENGTH]
        weekly.append(OHLCV(
            open=chunk[-1].open,
            high=max(b.high for b in chunk),
            low=min(b.low for b in chunk),
            close=chunk[0].close,
            volume=sum(b.volume for b in chunk),
            date=chunk[0].date,
        ))

    weekly.reverse()

    if weekly and live_price and live_price > 0:
        last = weekly[-1]
        weekly[-1] = OHLCV(
            open=last.open, high=last.high, low=last.low,
            close=live_price, volume=last.volume, date=last.date,
        )
    return weekly

# ==========================================
# 3. KEY LEVELS
# ==========================================

def key_levels(history: Sequence[OHLCV], live: Optional[LiveQuote]) -> KeyLevels:
    """
    Recent high/low and the "smart money" price over the trailing 60 bars.
    The high-volume price is the close of the heaviest bar, unless today's
    live volume beats it.
    """
    current_price = live.price if live else 0.0
    window = list(history[-KEY_LEVEL_WINDOW:])

    if not window:
        return KeyLevels(current_price, current_price, current_price)

    closes = [b.close for b in window]
    if live and live.price:
        closes.append(live.price)

    max_vol = 0.0
    max_vol_bar: Optional[OHLCV] = None
    for bar in window:
        if bar.volume > max_vol:
            max_vol = bar.volume
            max_vol_bar = bar

    high_vol_price = current_price
    if live and live.volume > max_vol:
        high_vol_price = live.price
    elif max_vol_bar is not None:
        high_vol_price = max_vol_bar.close

    return KeyLevels(
        recent_high=max(closes),
        recent_low=min(closes),
        high_vol_price=high_vol_price,
    )
