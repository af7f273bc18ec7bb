# taipulse/core/analytics/fundamentals.py

import pandas as pd
import logging
from typing import Dict, List, Optional, Any, Tuple

from taipulse.constants import round_to_tick
from taipulse.core.analytics.indicators import moving_average
from taipulse.core.analytics.scoring import js_round
from taipulse.schemas.analysis import (
    OHLCV, ChipSummary, Valuation, Forecasts, Strategy, PricePoint, LiveQuote
)

logger = logging.getLogger(__name__)

ROE_TYPE = "Return_on_Equity_A_percent"
MARGIN_TYPE = "Net_Profit_Margin"
CHIP_WINDOW_DAYS = 5
PRICE_HISTORY_POINTS = 20
LIVE_POINT_LABEL = "live"


def _latest_first(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    df = pd.DataFrame(rows)
    if df.empty or "date" not in df.columns:
        return pd.DataFrame()
    df["date"] = df["date"].astype(str)
    return df.sort_values("date", ascending=False, kind="stable").reset_index(drop=True)


def _positive_or_none(value) -> Optional[float]:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    if pd.isna(v) or v == 0:
        return None
    return v

# ==========================================
# 1. VALUATION & QUALITY
# ==========================================

def extract_valuation(per_data: List[Dict[str, Any]]) -> Valuation:
    df = _latest_first(per_data)
    if df.empty:
        return Valuation(pe=None, pbr=None, dividend_yield=0.0)

    latest = df.iloc[0]
    dividend = pd.to_numeric(latest.get("dividend_yield", 0), errors="coerce")
    return Valuation(
        pe=_positive_or_none(latest.get("PER")),
        pbr=_positive_or_none(latest.get("PBR")),
        dividend_yield=0.0 if pd.isna(dividend) else float(dividend),
    )


def latest_financial_value(financial_analysis: List[Dict[str, Any]], value_type: str) -> Optional[float]:
    df = _latest_first(financial_analysis)
    if df.empty or "type" not in df.columns:
        return None
    matches = df[df["type"] == value_type]
    if matches.empty:
        return None
    value = pd.to_numeric(matches.iloc[0].get("value"), errors="coerce")
    return None if pd.isna(value) else float(value)


def resolve_roe(financial_analysis: List[Dict[str, Any]], valuation: Valuation) -> Tuple[Optional[float], bool]:
    """
    Official ROE when reported, else PBR / PE.
    Returns (roe, is_estimated); roe is None when neither source exists.
    """
    official = latest_financial_value(financial_analysis, ROE_TYPE)
    if official is not None:
        return official, False
    if valuation.pbr is not None and valuation.pe is not None and valuation.pe > 0:
        return valuation.pbr / valuation.pe * 100, True
    return None, False

# ==========================================
# 2. CHIP FLOW
# ==========================================

def summarize_chips(chip_data: List[Dict[str, Any]]) -> ChipSummary:
    """
    Trust / foreign net flow over the 5 latest trading dates, in lots.
    Trust streak counts consecutive latest dates with positive trust net.
    """
    df = pd.DataFrame(chip_data)
    if df.empty or "date" not in df.columns:
        return ChipSummary(trust_5d=None, foreign_5d=None, trust_streak=0)

    for col, default in (("buy", 0), ("sell", 0), ("name", "")):
        if col not in df.columns:
            df[col] = default

    df["date"] = df["date"].astype(str)
    df["net"] = (
        pd.to_numeric(df["buy"], errors="coerce").fillna(0)
        - pd.to_numeric(df["sell"], errors="coerce").fillna(0)
    )
    names = df["name"].fillna("").astype(str).str.lower()
    df["is_trust"] = names.str.contains("trust")
    df["is_foreign"] = names.str.contains("foreign")

    dates = sorted(df["date"].unique(), reverse=True)
    recent = df[df["date"].isin(dates[:CHIP_WINDOW_DAYS])]

    trust_rows = recent[recent["is_trust"]]
    foreign_rows = recent[recent["is_foreign"]]
    has_data = not trust_rows.empty or not foreign_rows.empty

    streak = 0
    for d in dates:
        day = df[(df["date"] == d) & df["is_trust"]]
        if day.empty or day["net"].sum() <= 0:
            break
        streak += 1

    if not has_data:
        return ChipSummary(trust_5d=None, foreign_5d=None, trust_streak=streak)

    return ChipSummary(
        trust_5d=js_round(trust_rows["net"].sum() / 1000),
        foreign_5d=js_round(foreign_rows["net"].sum() / 1000),
        trust_streak=streak,
    )

# ==========================================
# 3. REVENUE FORECASTS
# ==========================================

def _default_forecasts() -> Forecasts:
    return Forecasts(est_month_rev="pending", est_annual_return="8~12%", market_sentiment=60)


def build_forecasts(rev_data: List[Dict[str, Any]], roe: float) -> Forecasts:
    if len(rev_data) < 2:
        return _default_forecasts()

    df = _latest_first(rev_data)
    if df.empty:
        return _default_forecasts()
    latest = df.iloc[0]
    latest_date = latest["date"]

    yoy = pd.to_numeric(latest.get("revenue_year_growth"), errors="coerce")
    if pd.isna(yoy) or yoy == 0:
        yoy = 0.0
        same_month = pd.DataFrame()
        try:
            prev_year = str(int(latest_date[:4]) - 1)
            same_month = df[df["date"].str.startswith(prev_year) & (df["date"].str[5:] == latest_date[5:])]
        except ValueError:
            logger.warning(f"Unparseable revenue date {latest_date!r}, YoY left at 0")
        if not same_month.empty:
            prev_rev = pd.to_numeric(same_month.iloc[0].get("revenue"), errors="coerce")
            cur_rev = pd.to_numeric(latest.get("revenue"), errors="coerce")
            if not pd.isna(prev_rev) and not pd.isna(cur_rev) and prev_rev != 0:
                yoy = (cur_rev - prev_rev) / prev_rev * 100
    yoy = float(yoy)

    sentiment = min(98.0, max(30.0, 60 + yoy * 0.5))
    annual = max(2.0, roe * 0.6 + yoy * 0.2)
    return Forecasts(
        est_month_rev=f"{yoy:.1f}% (YoY)",
        est_annual_return=f"{annual:.1f}%",
        market_sentiment=js_round(sentiment),
    )

# ==========================================
# 4. TRADE PLANS
# ==========================================

def build_strategies(price: float, score: int, roe: float) -> Tuple[Strategy, Strategy]:
    """Momentum and value entry plans, snapped to the TWSE tick ladder."""
    strong = score >= 70
    mom_entry = round_to_tick(price * (0.985 if strong else 0.96))
    momentum = Strategy(
        entry=mom_entry,
        stop_loss=round_to_tick(mom_entry * 0.93),
        take_profit=round_to_tick(mom_entry * 1.15),
        desc=("Trend confirmed, scale in along the 20-day line."
              if strong else "Momentum weak, reduce size or stay flat."),
    )

    quality = roe >= 12
    val_entry = round_to_tick(price * (0.94 if quality else 0.88))
    value = Strategy(
        entry=val_entry,
        stop_loss="hold long term",
        take_profit=round_to_tick(val_entry * 1.3),
        desc=("Stable profitability supports valuation."
              if quality else "Valuation rich or efficiency low, limited value appeal."),
    )
    return momentum, value

# ==========================================
# 5. PRICE HISTORY
# ==========================================

def price_history(history: List[OHLCV], live: Optional[LiveQuote], today: str,
                  ma20: Optional[float], ma60: Optional[float]) -> List[PricePoint]:
    points: List[PricePoint] = []
    closes = [b.close for b in history]
    start = max(0, len(history) - PRICE_HISTORY_POINTS)

    for idx in range(start, len(history)):
        prefix = closes[:idx + 1]
        points.append(PricePoint(
            date=history[idx].date,
            price=history[idx].close,
            ma20=moving_average(prefix, 20),
            ma60=moving_average(prefix, 60),
        ))

    if live and live.price > 0 and (not points or points[-1].date != today):
        points.append(PricePoint(date=LIVE_POINT_LABEL, price=live.price, ma20=ma20, ma60=ma60))
    return points
