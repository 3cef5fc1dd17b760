from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from conftest import NOW, FakeRedis, make_record
from fan_entitlements.cache import EntitlementCache
from workers.entitlement_cache_reconcile_job import run_entitlement_cache_reconcile_cycle, run_forever


def test_reconcile_evicts_lapsed_entries():
    cache = EntitlementCache(redis_url="", clock=lambda: NOW)
    cache._redis = FakeRedis()
    cache.set(make_record(viewer_id="U1", period_end=NOW + timedelta(minutes=1)))
    cache.set(make_record(viewer_id="U2", period_end=NOW + timedelta(days=3)))

    stats = run_entitlement_cache_reconcile_cycle(cache, now=NOW + timedelta(hours=1))

    assert stats.expired_entry_invalidations == 1
    assert stats.errors == 0
    assert stats.completed_at is not None
    assert cache.get("U2", "A1") is not None


def test_reconcile_counts_errors_instead_of_raising():
    cache = MagicMock()
    cache.invalidate_expired.side_effect = ConnectionError("redis down")

    stats = run_entitlement_cache_reconcile_cycle(cache)

    assert stats.errors == 1
    assert stats.expired_entry_invalidations == 0


def test_run_forever_refuses_in_memory_cache():
    with pytest.raises(RuntimeError, match="REDIS_URL"):
        run_forever(interval_seconds=1, cache=EntitlementCache(redis_url=""))
