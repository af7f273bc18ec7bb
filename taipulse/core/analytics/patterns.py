# taipulse/core/analytics/patterns.py
"""
Candlestick tagging.

Turns a bar series into a short readable trace such as
``[03-14] 612(2.5%): long-up(vol-burst) -> [03-15] 605(-1.1%): doji``.
The trace is lossy and cannot be decoded back to OHLCV.
"""

from typing import List, Sequence

from taipulse.schemas.analysis import OHLCV

DOJI_BODY_RATIO = 0.15      # body <= 15% of the range
LONG_BODY_PCT = 0.025       # body >= 2.5% of close
SHADOW_BODY_RATIO = 1.5
VOL_BURST_RATIO = 1.8
VOL_DRY_RATIO = 0.6
GAP_PCT = 0.01
VOLUME_BASELINE_BARS = 5

EMPTY_STREAM = "no data"


def classify_candle(bar: OHLCV, prev_close: float, avg_volume: float) -> str:
    body = abs(bar.close - bar.open)
    bar_range = bar.high - bar.low
    upper_shadow = bar.high - max(bar.open, bar.close)
    lower_shadow = min(bar.open, bar.close) - bar.low

    is_up = bar.close > bar.open
    is_doji = body <= bar_range * DOJI_BODY_RATIO
    is_long = body >= bar.close * LONG_BODY_PCT

    # doji > long > plain
    if is_doji:
        desc = "doji"
    elif is_long:
        desc = "long-up" if is_up else "long-down"
    else:
        desc = "up" if is_up else "down"

    features: List[str] = []
    if upper_shadow > body * SHADOW_BODY_RATIO and upper_shadow > lower_shadow:
        features.append("upper-shadow")
    if lower_shadow > body * SHADOW_BODY_RATIO and lower_shadow > upper_shadow:
        features.append("lower-shadow")

    if avg_volume > 0 and bar.volume > avg_volume * VOL_BURST_RATIO:
        features.append("vol-burst")
    elif avg_volume > 0 and bar.volume < avg_volume * VOL_DRY_RATIO:
        features.append("vol-dry")

    if prev_close > 0:
        if bar.low > prev_close * (1 + GAP_PCT):
            features.append("gap-up")
        if bar.high < prev_close * (1 - GAP_PCT):
            features.append("gap-down")

    if features:
        return f"{desc}({','.join(features)})"
    return desc


def _format_price(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return str(round(value, 4))


def pattern_stream(bars: Sequence[OHLCV], limit: int) -> str:
    if not bars:
        return EMPTY_STREAM

    target = list(bars[-limit:])
    if len(bars) >= VOLUME_BASELINE_BARS:
        avg_volume = sum(b.volume for b in bars[-VOLUME_BASELINE_BARS:]) / VOLUME_BASELINE_BARS
    else:
        avg_volume = bars[0].volume

    tokens: List[str] = []
    for i, bar in enumerate(target):
        if i > 0:
            prev_close = target[i - 1].close
        elif len(bars) > limit:
            prev_close = bars[len(bars) - limit - 1].close
        else:
            prev_close = 0.0

        tag = classify_candle(bar, prev_close, avg_volume)
        change = f"{(bar.close - prev_close) / prev_close * 100:.1f}" if prev_close > 0 else "0"
        label = bar.date[5:] or str(i)
        tokens.append(f"[{label}] {_format_price(bar.close)}({change}%): {tag}")

    return " -> ".join(tokens)
