from taipulse.core.analytics.patterns import classify_candle, pattern_stream, EMPTY_STREAM
from taipulse.schemas.analysis import OHLCV


def test_doji():
    bar = OHLCV(open=100.0, high=102.0, low=98.0, close=100.0, volume=1000.0)
    assert classify_candle(bar, 0.0, 1000.0) == "doji"


def test_long_up_with_volume_burst():
    bar = OHLCV(open=100.0, high=106.0, low=99.5, close=105.0, volume=5000.0)
    assert classify_candle(bar, 0.0, 1000.0) == "long-up(vol-burst)"


def test_long_down_gap_down():
    bar = OHLCV(open=95.0, high=95.5, low=90.0, close=90.5, volume=1000.0)
    assert classify_candle(bar, 100.0, 1000.0) == "long-down(gap-down)"


def test_upper_shadow_and_dry_volume():
    bar = OHLCV(open=100.0, high=104.0, low=99.8, close=100.8, volume=100.0)
    assert classify_candle(bar, 0.0, 1000.0) == "up(upper-shadow,vol-dry)"


def test_gap_up_plain_down():
    bar = OHLCV(open=103.0, high=103.2, low=102.0, close=102.5, volume=1000.0)
    assert classify_candle(bar, 100.0, 1000.0) == "down(gap-up)"


def test_empty_stream():
    assert pattern_stream([], 12) == EMPTY_STREAM


def test_stream_format_and_limit():
    bars = [
        OHLCV(open=c, high=c + 0.1, low=c - 0.1, close=c, volume=1000.0, date=f"2024-03-{10 + i:02d}")
        for i, c in enumerate([100.0, 101.0, 102.0, 103.5])
    ]
    stream = pattern_stream(bars, 2)
    tokens = stream.split(" -> ")

    assert len(tokens) == 2
    assert tokens[0].startswith("[03-12] 102(1.0%): ")
    assert tokens[1].startswith("[03-13] 103.5(1.5%): ")


def test_stream_without_prior_close_reports_zero_change():
    bars = [OHLCV(open=10.0, high=10.0, low=10.0, close=10.0, volume=1.0, date="")]
    assert pattern_stream(bars, 12) == "[0] 10(0%): doji"
