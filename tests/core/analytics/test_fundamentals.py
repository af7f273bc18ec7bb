import pytest

from taipulse.core.analytics import fundamentals as fa
from taipulse.schemas.analysis import LiveQuote, Valuation


def test_valuation_from_latest_row():
    rows = [
        {"date": "2024-03-01", "PER": 10.0, "PBR": 1.0, "dividend_yield": 5.0},
        {"date": "2024-03-05", "PER": 0, "PBR": 2.0, "dividend_yield": 3.2},
    ]
    v = fa.extract_valuation(rows)
    assert v.pe is None
    assert v.pbr == 2.0
    assert v.dividend_yield == 3.2


def test_valuation_empty():
    assert fa.extract_valuation([]) == Valuation(pe=None, pbr=None, dividend_yield=0.0)


def test_roe_prefers_reported_value():
    financial = [
        {"date": "2023-12-31", "type": "Return_on_Equity_A_percent", "value": 20.0},
        {"date": "2024-03-31", "type": "Return_on_Equity_A_percent", "value": 25.5},
        {"date": "2024-03-31", "type": "Net_Profit_Margin", "value": 40.0},
    ]
    roe, estimated = fa.resolve_roe(financial, Valuation(pe=20.0, pbr=4.0, dividend_yield=0.0))
    assert (roe, estimated) == (25.5, False)
    assert fa.latest_financial_value(financial, fa.MARGIN_TYPE) == 40.0


def test_roe_estimated_from_pbr_and_pe():
    roe, estimated = fa.resolve_roe([], Valuation(pe=20.0, pbr=4.0, dividend_yield=0.0))
    assert roe == pytest.approx(20.0)
    assert estimated is True


def test_roe_missing_everywhere():
    assert fa.resolve_roe([], Valuation(pe=None, pbr=None, dividend_yield=0.0)) == (None, False)


def _chip(date, name, buy, sell):
    return {"date": date, "name": name, "buy": buy, "sell": sell}


def test_chip_summary_window_and_streak():
    rows = []
    for day in range(1, 8):
        d = f"2024-03-{day:02d}"
        # trust sells on day 4 only, breaking the streak there
        trust_net = -100_000 if day == 4 else 200_000
        rows.append(_chip(d, "Investment_Trust", max(trust_net, 0), max(-trust_net, 0)))
        rows.append(_chip(d, "Foreign_Investor", 1_000_000, 0))
        rows.append(_chip(d, "Dealer_self", 5_000_000, 0))

    summary = fa.summarize_chips(rows)
    # last five dates are 03-03..03-07 with one selling day
    assert summary.trust_5d == 700
    assert summary.foreign_5d == 5000
    assert summary.trust_streak == 3


def test_chip_summary_without_matching_rows():
    summary = fa.summarize_chips([_chip("2024-03-01", "Dealer_self", 10, 0)])
    assert summary.trust_5d is None
    assert summary.foreign_5d is None
    assert fa.summarize_chips([]).trust_streak == 0


def test_forecasts_defaults_with_short_revenue():
    f = fa.build_forecasts([{"date": "2024-02-01", "revenue": 1}], 20.0)
    assert (f.est_month_rev, f.est_annual_return, f.market_sentiment) == ("pending", "8~12%", 60)


def test_forecasts_defaults_when_revenue_rows_are_undated():
    f = fa.build_forecasts([{"revenue": 10}, {"revenue": 12}], 10.0)
    assert (f.est_month_rev, f.est_annual_return, f.market_sentiment) == ("pending", "8~12%", 60)


def test_forecasts_malformed_date_leaves_yoy_at_zero():
    rows = [
        {"date": "2024-01-01", "revenue": 12.0},
        {"date": "abcd-02", "revenue": 10.0},
    ]
    f = fa.build_forecasts(rows, 10.0)
    assert f.est_month_rev == "0.0% (YoY)"
    assert f.est_annual_return == "6.0%"
    assert f.market_sentiment == 60


def test_forecasts_computed_yoy():
    rows = [
        {"date": "2023-02-01", "revenue": 100.0},
        {"date": "2024-01-01", "revenue": 110.0},
        {"date": "2024-02-01", "revenue": 120.0},
    ]
    f = fa.build_forecasts(rows, 10.0)
    assert f.est_month_rev == "20.0% (YoY)"
    assert f.est_annual_return == "10.0%"
    assert f.market_sentiment == 70


def test_strategies_snap_to_ticks():
    momentum, value = fa.build_strategies(600.0, 75, 20.0)
    assert momentum.entry == 591.0
    assert momentum.stop_loss == 550.0
    assert momentum.take_profit == 680.0
    assert value.entry == 564.0
    assert value.stop_loss == "hold long term"
    assert value.take_profit == 733.0


def test_price_history_appends_live_point(bars):
    history = bars([float(100 + i) for i in range(25)])
    live = LiveQuote(id="x", price=130.0, change=0.0, change_percent=0.0, volume=0.0, name="x")

    points = fa.price_history(history, live, "2024-12-31", 113.0, None)
    assert len(points) == 21
    assert points[0].ma20 is None
    assert points[-2].ma20 == pytest.approx(sum(range(105, 125)) / 20)
    assert points[-1].date == fa.LIVE_POINT_LABEL
    assert points[-1].price == 130.0


def test_price_history_skips_live_point_when_today_present(bars):
    history = bars([10.0, 11.0])
    live = LiveQuote(id="x", price=12.0, change=0.0, change_percent=0.0, volume=0.0, name="x")
    points = fa.price_history(history, live, history[-1].date, None, None)
    assert [p.price for p in points] == [10.0, 11.0]
