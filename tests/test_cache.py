from datetime import timedelta

import pytest

from conftest import NOW, FakeRedis, make_record
from fan_entitlements.cache import (
    CACHE_SCHEMA_VERSION,
    CachedLookup,
    EntitlementCache,
    _decode_record,
    _encode_record,
)
from fan_entitlements.models import SubscriptionStatus


def _redis_cache(clock=lambda: NOW, ttl_seconds=300):
    cache = EntitlementCache(redis_url="", ttl_seconds=ttl_seconds, clock=clock)
    fake = FakeRedis()
    cache._redis = fake
    return cache, fake


# ----- In-memory fallback -----

def test_memory_cache_round_trip():
    cache = EntitlementCache(redis_url="", clock=lambda: NOW)
    record = make_record()

    assert cache.set(record) is True
    assert cache.get("U1", "A1") == record
    assert cache.get("U1", "A2") is None


def test_memory_cache_never_returns_record_past_period_end():
    clock = {"now": NOW}
    cache = EntitlementCache(redis_url="", clock=lambda: clock["now"])
    record = make_record(period_end=NOW + timedelta(seconds=120))
    cache.set(record)

    clock["now"] = NOW + timedelta(seconds=120)

    assert cache.get("U1", "A1") is None
    assert cache._mem == {}


@pytest.mark.parametrize(
    "record",
    [
        make_record(status=SubscriptionStatus.PAST_DUE),
        make_record(status=SubscriptionStatus.CANCELED),
        make_record(period_start=NOW - timedelta(days=30), period_end=NOW - timedelta(seconds=1)),
    ],
)
def test_non_granting_records_are_not_cached(record):
    cache = EntitlementCache(redis_url="", clock=lambda: NOW)
    assert cache.set(record) is False
    assert cache.get("U1", "A1") is None


def test_invalidate_drops_entry():
    cache = EntitlementCache(redis_url="", clock=lambda: NOW)
    cache.set(make_record())

    cache.invalidate("U1", "A1")

    assert cache.get("U1", "A1") is None


def test_cache_requires_ids():
    cache = EntitlementCache(redis_url="")
    with pytest.raises(ValueError, match="viewer_id is required"):
        cache.get("  ", "A1")
    with pytest.raises(ValueError, match="artist_id is required"):
        cache.invalidate("U1", "")


def test_memory_invalidate_expired():
    cache = EntitlementCache(redis_url="", clock=lambda: NOW)
    cache.set(make_record(viewer_id="U1", period_end=NOW + timedelta(minutes=1)))
    cache.set(make_record(viewer_id="U2", period_end=NOW + timedelta(days=1)))

    evicted = cache.invalidate_expired(now=NOW + timedelta(minutes=5))

    assert evicted == ["U1:A1"]
    assert cache.get("U2", "A1") is not None


def test_memory_set_prunes_entries_past_their_deadline():
    clock = {"now": NOW}
    cache = EntitlementCache(redis_url="", clock=lambda: clock["now"])
    cache.set(make_record(viewer_id="U1", period_end=NOW + timedelta(seconds=60)))
    cache.set(make_record(viewer_id="U2", period_end=NOW + timedelta(days=1)))

    clock["now"] = NOW + timedelta(seconds=90)
    cache.set(make_record(viewer_id="U3", period_end=NOW + timedelta(days=1)))

    assert set(cache._mem) == {cache._key("U2", "A1"), cache._key("U3", "A1")}


# ----- Redis backend -----

def test_redis_ttl_capped_by_period_end():
    cache, fake = _redis_cache(ttl_seconds=300)
    cache.set(make_record(period_end=NOW + timedelta(seconds=45)))

    key = cache._key("U1", "A1")
    assert fake.ttls[key] == 45


def test_redis_ttl_uses_default_for_purchases():
    cache, fake = _redis_cache(ttl_seconds=300)
    cache.set(make_record(purchase=True))

    assert fake.ttls[cache._key("U1", "A1")] == 300
    assert fake.zscore(cache._expiry_index_key(), "U1:A1") is None


def test_redis_tracks_period_end_in_expiry_index():
    cache, fake = _redis_cache()
    end = NOW + timedelta(days=2)
    cache.set(make_record(period_end=end))

    assert fake.zscore(cache._expiry_index_key(), "U1:A1") == int(end.timestamp())


def test_redis_invalidate_expired_members():
    cache, fake = _redis_cache()
    cache.set(make_record(viewer_id="U1", period_end=NOW + timedelta(minutes=1)))
    cache.set(make_record(viewer_id="U2", period_end=NOW + timedelta(days=1)))

    evicted = cache.invalidate_expired(now=NOW + timedelta(minutes=2))

    assert evicted == ["U1:A1"]
    assert cache._key("U1", "A1") not in fake.store
    assert cache._key("U2", "A1") in fake.store
    assert fake.zscore(cache._expiry_index_key(), "U1:A1") is None


def test_redis_invalidate_expired_handles_separator_in_ids():
    cache, fake = _redis_cache()
    cache.set(make_record(viewer_id="fan:42", artist_id="A1", period_end=NOW + timedelta(minutes=1)))
    cache.set(make_record(viewer_id="fan", artist_id="42:A1", period_end=NOW + timedelta(days=1)))

    cache.invalidate_expired(now=NOW + timedelta(minutes=2))

    assert cache._key("fan:42", "A1") not in fake.store
    assert cache._key("fan", "42:A1") in fake.store
    assert cache.get("fan", "42:A1") is not None
    assert fake.zscore(cache._expiry_index_key(), cache._member("fan:42", "A1")) is None


def test_redis_get_rechecks_window():
    clock = {"now": NOW}
    cache, fake = _redis_cache(clock=lambda: clock["now"])
    cache.set(make_record(period_end=NOW + timedelta(seconds=30)))

    clock["now"] = NOW + timedelta(seconds=30)

    assert cache.get("U1", "A1") is None
    assert cache._key("U1", "A1") not in fake.store


def test_schema_version_mismatch_rejected():
    payload = _encode_record(make_record())
    assert payload["schema_version"] == CACHE_SCHEMA_VERSION

    payload["schema_version"] = 999
    with pytest.raises(ValueError):
        _decode_record(payload)


def test_encode_decode_preserves_purchase():
    record = make_record(purchase=True)
    assert _decode_record(_encode_record(record)) == record


# ----- CachedLookup -----

def test_cached_lookup_serves_second_read_from_cache(ledger):
    ledger.add(make_record())
    lookup = CachedLookup(ledger, EntitlementCache(redis_url="", clock=lambda: NOW))

    first = lookup("U1", "A1")
    second = lookup("U1", "A1")

    assert first == second
    assert ledger.calls == [("U1", "A1")]


def test_cached_lookup_does_not_cache_misses_or_lapsed_records(ledger):
    ledger.add(make_record(status=SubscriptionStatus.PAST_DUE))
    lookup = CachedLookup(ledger, EntitlementCache(redis_url="", clock=lambda: NOW))

    lookup("U1", "A1")
    lookup("U1", "A1")
    lookup("U2", "A1")

    assert len(ledger.calls) == 3


def test_cached_lookup_propagates_ledger_errors():
    def broken(viewer_id, artist_id):
        raise ConnectionError("down")

    lookup = CachedLookup(broken, EntitlementCache(redis_url="", clock=lambda: NOW))
    with pytest.raises(ConnectionError):
        lookup("U1", "A1")
