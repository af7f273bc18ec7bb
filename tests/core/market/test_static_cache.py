from taipulse.core.market.static_cache import StaticAnalysisCache
from taipulse.schemas.analysis import StaticAnalysisData


class FakeTime:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def test_settlement_crossing_expires(clock, taipei):
    cache = StaticAnalysisCache(clock, ttl_seconds=4 * 3600)
    created = taipei(2024, 3, 20, 14, 59)
    assert cache.is_expired(created, now=taipei(2024, 3, 20, 15, 1))


def test_same_session_minute_later_is_valid(clock, taipei):
    cache = StaticAnalysisCache(clock, ttl_seconds=4 * 3600)
    created = taipei(2024, 3, 20, 10, 0)
    assert not cache.is_expired(created, now=taipei(2024, 3, 20, 10, 1))


def test_previous_day_entry_expires(clock, taipei):
    cache = StaticAnalysisCache(clock, ttl_seconds=4 * 3600)
    created = taipei(2024, 3, 19, 23, 0)
    assert cache.is_expired(created, now=taipei(2024, 3, 20, 0, 30))


def test_after_settlement_entry_stays_valid_until_ttl(clock, taipei):
    cache = StaticAnalysisCache(clock, ttl_seconds=4 * 3600)
    created = taipei(2024, 3, 20, 15, 30)
    assert not cache.is_expired(created, now=taipei(2024, 3, 20, 18, 0))
    assert cache.is_expired(created, now=taipei(2024, 3, 20, 19, 31))


def test_get_and_put_roundtrip(clock, taipei):
    fake = FakeTime(taipei(2024, 3, 20, 10, 0))
    cache = StaticAnalysisCache(clock, time_fn=fake)
    data = StaticAnalysisData(timestamp=fake.now)

    assert cache.get("2330") is None
    cache.put("2330", data)
    assert cache.get("2330") is data

    fake.now = taipei(2024, 3, 20, 15, 5)
    assert cache.get("2330") is None


def test_put_ignores_older_bundle(clock, taipei):
    fake = FakeTime(taipei(2024, 3, 20, 11, 0))
    cache = StaticAnalysisCache(clock, time_fn=fake)
    newer = StaticAnalysisData(timestamp=taipei(2024, 3, 20, 10, 30))
    older = StaticAnalysisData(timestamp=taipei(2024, 3, 20, 10, 0))

    cache.put("2330", newer)
    cache.put("2330", older)
    assert cache.get("2330") is newer


def test_invalidate_drops_entry(clock, taipei):
    fake = FakeTime(taipei(2024, 3, 20, 10, 0))
    cache = StaticAnalysisCache(clock, time_fn=fake)
    cache.put("2330", StaticAnalysisData(timestamp=fake.now))
    cache.put("2317", StaticAnalysisData(timestamp=fake.now))

    cache.invalidate("2330")
    cache.invalidate("9999")
    assert cache.get("2330") is None
    assert cache.get("2317") is not None
    assert len(cache) == 1
