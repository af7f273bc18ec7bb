import pytest
from unittest.mock import AsyncMock, MagicMock

from taipulse.core.analysis.compositor import AnalysisCompositor
from taipulse.core.market.static_cache import StaticAnalysisCache
from taipulse.lifecycle.market_scanner import MarketScanner
from taipulse.schemas.analysis import (
    AnalysisMode, MarketPulse, SectorSnapshot, StockSnapshot
)
from taipulse.services.watchlist import WatchlistStore


@pytest.fixture
def deep_scan():
    ds = MagicMock()
    ds.enqueue = AsyncMock(side_effect=lambda ids: len(ids))
    return ds


@pytest.fixture
def pulse_service():
    service = MagicMock()
    service.get_market_pulse = AsyncMock(return_value=MarketPulse(sectors=[
        SectorSnapshot(name="半導體", stocks=[
            StockSnapshot(id="2330", name="台積電"), StockSnapshot(id="2454", name="聯發科"),
        ]),
        SectorSnapshot(name="ETF 戰略精選", stocks=[StockSnapshot(id="0050", name="元大台灣50")]),
    ]))
    return service


def _scanner(compositor, pulse_service, watchlist, deep_scan, sleep=None):
    return MarketScanner(compositor, pulse_service, watchlist, deep_scan,
                         refresh_delay=0.6, sleep=sleep or AsyncMock())


@pytest.mark.asyncio
async def test_scan_market_merges_and_queues_shallow_symbols(pulse_service, deep_scan):
    watchlist = WatchlistStore([StockSnapshot(id="2330", name="台積電", score=88, is_detailed=True)])
    scanner = _scanner(MagicMock(), pulse_service, watchlist, deep_scan)

    merged = await scanner.scan_market()

    assert merged.sectors[0].stocks[0].score == 88
    deep_scan.enqueue.assert_awaited_once_with(["2454"])
    assert not scanner.scanning


@pytest.mark.asyncio
async def test_scan_market_failure_returns_none(pulse_service, deep_scan):
    pulse_service.get_market_pulse = AsyncMock(side_effect=RuntimeError("network busy"))
    scanner = _scanner(MagicMock(), pulse_service, WatchlistStore(), deep_scan)

    assert await scanner.scan_market() is None
    deep_scan.enqueue.assert_not_awaited()
    assert not scanner.scanning


@pytest.mark.asyncio
async def test_refresh_watchlist_uses_fast_mode(pulse_service, deep_scan):
    watchlist = MagicMock()
    watchlist.stocks = [StockSnapshot(id="2330", name="台積電"), StockSnapshot(id="2317", name="鴻海")]
    compositor = MagicMock()
    compositor.get_analyze = AsyncMock(side_effect=lambda sid, mode: f"detail-{sid}")
    sleep = AsyncMock()

    scanner = _scanner(compositor, pulse_service, watchlist, deep_scan, sleep)
    assert await scanner.refresh_watchlist() == 2

    assert [c.args for c in compositor.get_analyze.await_args_list] == [
        ("2330", AnalysisMode.FAST), ("2317", AnalysisMode.FAST)
    ]
    watchlist.sync_stock.assert_any_call("2317", "detail-2317")
    sleep.assert_awaited_with(0.6)


@pytest.mark.asyncio
async def test_add_stock_runs_full_analysis(pulse_service, deep_scan, mock_data_client, names, clock):

    compositor = AnalysisCompositor(mock_data_client, StaticAnalysisCache(clock), names, clock)
    watchlist = WatchlistStore()
    scanner = _scanner(compositor, pulse_service, watchlist, deep_scan)

    snapshot = await scanner.add_stock(" 2330 ")
    assert snapshot.id == "2330"
    assert snapshot.name == "台積電"
    assert snapshot.is_detailed
    mock_data_client.fetch_static_bundle.assert_awaited_once()

    assert await scanner.add_stock("2330") is None
    assert len(watchlist.stocks) == 1
