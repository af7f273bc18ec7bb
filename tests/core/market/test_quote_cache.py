from taipulse.core.market.quote_cache import QuoteCache


def test_quote_expires_after_ttl():
    now = [1000.0]
    cache = QuoteCache(ttl_seconds=30, time_fn=lambda: now[0])

    cache.put("fugle", "2330", {"price": 600})
    now[0] += 29
    assert cache.get("fugle", "2330") == {"price": 600}

    now[0] += 2
    assert cache.get("fugle", "2330") is None


def test_providers_do_not_share_entries():
    cache = QuoteCache(ttl_seconds=30, time_fn=lambda: 0.0)
    cache.put("yahoo", "2330.TW", "yahoo-quote")

    assert cache.get("fugle", "2330.TW") is None
    assert cache.get("yahoo", "2330.TW") == "yahoo-quote"

    cache.clear()
    assert cache.get("yahoo", "2330.TW") is None
