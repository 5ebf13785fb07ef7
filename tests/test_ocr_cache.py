import pytest
from datetime import datetime, timedelta, timezone

from receipt_reconciler.models.ocr_cache import OcrResultCacheEntry
from receipt_reconciler.services.ocr_cache_service import ResultCache, canonical_url

URL = "https://files.example.com/receipts/ticket.pdf"


class Clock:
    def __init__(self, moment):
        self.moment = moment

    def __call__(self):
        return self.moment


@pytest.fixture
def clock():
    return Clock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def cache(session_factory, clock):
    return ResultCache(session_factory, ttl_days=30, now=clock)


def test_canonical_url():
    assert canonical_url("  HTTPS://Files.Example.com/receipts/ticket.pdf#page=2 ") == URL
    # Path and query keep their case
    assert canonical_url("https://x.io/A/b.pdf?sig=AbC") == "https://x.io/A/b.pdf?sig=AbC"


def test_url_key_is_stable():
    key = ResultCache.url_key(URL)
    assert len(key) == 64
    assert ResultCache.url_key("https://FILES.example.com/receipts/ticket.pdf#top") == key
    assert ResultCache.url_key(URL + "?v=2") != key


def test_content_key():
    assert ResultCache.content_key(b"abc") == ResultCache.content_key(b"abc")
    assert ResultCache.content_key(b"abc") != ResultCache.content_key(b"abd")


def test_miss_then_hit(cache):
    key = ResultCache.url_key(URL)
    assert cache.get(key) is None

    assert cache.set(key, {"provider": "mindee", "amount": "12.50"}) is True
    assert cache.get(key) == {"provider": "mindee", "amount": "12.50"}


def test_live_entry_is_never_overwritten(cache):
    key = ResultCache.url_key(URL)
    cache.set(key, {"provider": "mindee"})

    assert cache.set(key, {"provider": "mistral"}) is False
    assert cache.get(key) == {"provider": "mindee"}


def test_entry_expires_after_ttl(cache, clock):
    key = ResultCache.url_key(URL)
    cache.set(key, {"provider": "mindee"})

    clock.moment += timedelta(days=29, hours=23)
    assert cache.get(key) == {"provider": "mindee"}

    clock.moment += timedelta(hours=1)
    assert cache.get(key) is None


def test_expired_entry_is_replaced(cache, clock, session_factory):
    key = ResultCache.url_key(URL)
    cache.set(key, {"provider": "mindee"})
    clock.moment += timedelta(days=31)

    assert cache.set(key, {"provider": "mistral"}) is True
    assert cache.get(key) == {"provider": "mistral"}
    with session_factory() as db:
        assert db.query(OcrResultCacheEntry).count() == 1


def test_purge_expired(cache, clock, session_factory):
    cache.set(ResultCache.url_key("https://a.io/1.pdf"), {"n": 1})
    cache.set(ResultCache.url_key("https://a.io/2.pdf"), {"n": 2})
    clock.moment += timedelta(days=20)
    fresh = ResultCache.url_key("https://a.io/3.pdf")
    cache.set(fresh, {"n": 3})

    clock.moment += timedelta(days=15)
    assert cache.purge_expired() == 2
    assert cache.get(fresh) == {"n": 3}
    with session_factory() as db:
        assert db.query(OcrResultCacheEntry).count() == 1
