import pytest

from backend.client.cache import (
    CACHE_DURATION_MS,
    LAST_VIEW_KEY,
    PRODUCTS_CACHE_KEY,
    ProductCache,
    TimestampedCache,
    timestamp_key,
)
from backend.client.errors import QuotaError
from backend.client.kvstore import MemoryKeyValueStore


def test_products_round_trip(tcache):
    products = [{"name": "Milk", "rate": 40, "purchaseCost": 32.5, "stock": 10}]
    pc = ProductCache(tcache)
    assert pc.save(products) is True
    assert pc.load() == products


def test_timestamp_is_stored_next_to_payload(kv, tcache, clock):
    ProductCache(tcache).save([{"name": "Milk", "rate": 40}])
    assert timestamp_key(PRODUCTS_CACHE_KEY) == "storeProductsCacheTimestamp"
    assert kv.get("storeProductsCacheTimestamp") == str(clock.now_ms)


def test_staleness_boundary_is_inclusive(kv, clock):
    clock.now_ms = 0
    cache = TimestampedCache(kv, clock)
    ProductCache(cache).save([{"name": "Milk", "rate": 40}])

    clock.now_ms = 299_999
    assert cache.is_stale(PRODUCTS_CACHE_KEY) is False
    clock.now_ms = 300_000
    assert cache.is_stale(PRODUCTS_CACHE_KEY) is True
    assert CACHE_DURATION_MS == 300_000


def test_never_saved_key_is_stale(tcache):
    assert tcache.is_stale("customersCache") is True


def test_unreadable_timestamp_is_stale(kv, tcache):
    kv.set(PRODUCTS_CACHE_KEY, '[{"name": "Milk", "rate": 40}]')
    kv.set(timestamp_key(PRODUCTS_CACHE_KEY), "not-a-number")
    assert tcache.is_stale(PRODUCTS_CACHE_KEY) is True
    # The payload itself is still usable.
    assert ProductCache(tcache).load() == [{"name": "Milk", "rate": 40}]


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        "[]",
        "{}",
        '[{"name": "", "rate": 10}]',
        '[{"name": "Milk", "rate": "40"}]',
        '"just a string"',
    ],
)
def test_invalid_product_payloads_are_misses(kv, tcache, raw):
    kv.set(PRODUCTS_CACHE_KEY, raw)
    assert ProductCache(tcache).load() is None


def test_quota_failure_keeps_previous_record(clock):
    store = MemoryKeyValueStore(max_bytes=200)
    cache = TimestampedCache(store, clock)
    pc = ProductCache(cache)
    assert pc.save([{"name": "Milk", "rate": 40}]) is True
    saved_at = cache.saved_at(PRODUCTS_CACHE_KEY)

    clock.advance(1000)
    assert pc.save([{"name": "x" * 500, "rate": 1}]) is False
    assert pc.load() == [{"name": "Milk", "rate": 40}]
    assert cache.saved_at(PRODUCTS_CACHE_KEY) == saved_at


def test_strict_save_propagates_quota_error(clock):
    cache = TimestampedCache(MemoryKeyValueStore(max_bytes=10), clock)
    with pytest.raises(QuotaError):
        cache.save("customersCache", "x" * 100, strict=True)


def test_flush_removes_payload_and_timestamp(kv, tcache):
    pc = ProductCache(tcache)
    pc.save([{"name": "Milk", "rate": 40}])
    pc.flush()
    assert kv.get(PRODUCTS_CACHE_KEY) is None
    assert kv.get(timestamp_key(PRODUCTS_CACHE_KEY)) is None
    assert pc.is_stale() is True


def test_last_view_marker(kv, tcache, clock):
    assert ProductCache(tcache).touch_last_view() is True
    assert kv.get(LAST_VIEW_KEY) == str(clock.now_ms)
