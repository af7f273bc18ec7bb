import pytest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock
import pytz

from taipulse.core.market.market_clock import MarketClock
from taipulse.schemas.analysis import OHLCV, LiveQuote, StaticAnalysisData
from taipulse.services.name_registry import NameRegistry

TAIPEI = pytz.timezone("Asia/Taipei")


def taipei_ts(year, month, day, hour=10, minute=0) -> float:
    """Epoch seconds for a Taipei wall-clock time."""
    return TAIPEI.localize(datetime(year, month, day, hour, minute)).timestamp()


def make_bars(closes, volume=1000.0, start_day=1):
    """Flat-ish daily bars with sequential ISO dates."""
    bars = []
    for i, c in enumerate(closes):
        month = 1 + (start_day + i - 1) // 28
        day = 1 + (start_day + i - 1) % 28
        bars.append(OHLCV(
            open=c, high=c + 1, low=c - 1, close=c, volume=volume,
            date=f"2024-{month:02d}-{day:02d}",
        ))
    return bars


# --- CORE OBJECTS ---
@pytest.fixture
def clock():
    return MarketClock("Asia/Taipei", 15)


@pytest.fixture
def names(tmp_path):
    return NameRegistry(cache_file=str(tmp_path / "names.json"))


@pytest.fixture
def live_quote():
    return LiveQuote(
        id="2330", price=100.0, change=5.0, change_percent=5.0,
        volume=5000.0, name="台積電", market="TSE",
    )


@pytest.fixture
def static_bundle():
    return StaticAnalysisData(
        history=make_bars([90.0 + i * 0.1 for i in range(80)]),
        per_data=[{"date": "2024-03-01", "PER": 18.0, "PBR": 5.0, "dividend_yield": 1.5}],
        chip_data=[],
        financial_analysis=[{"date": "2024-03-01", "type": "Return_on_Equity_A_percent", "value": 26.0}],
        rev_data=[],
        market_below_ma20=False,
        timestamp=taipei_ts(2024, 3, 20, 10, 0),
    )


# --- MOCKS ---
@pytest.fixture
def mock_data_client(live_quote, static_bundle):
    client = MagicMock()
    client.fetch_fugle_quote = AsyncMock(return_value=live_quote)
    client.fetch_yahoo_quote = AsyncMock(return_value=None)
    client.fetch_static_bundle = AsyncMock(return_value=static_bundle)
    return client


# --- FACTORIES ---
@pytest.fixture
def bars():
    return make_bars


@pytest.fixture
def taipei():
    return taipei_ts
