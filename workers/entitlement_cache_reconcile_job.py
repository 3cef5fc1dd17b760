from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fan_entitlements import config
from fan_entitlements.cache import EntitlementCache

logger = logging.getLogger(__name__)


@dataclass
class ReconcileStats:
    started_at: str
    completed_at: Optional[str] = None
    expired_entry_invalidations: int = 0
    errors: int = 0


def run_entitlement_cache_reconcile_cycle(
    cache: Optional[EntitlementCache] = None,
    now: Optional[datetime] = None,
) -> ReconcileStats:
    """Background drift reconciliation job.

    Responsibilities:
    - evict cached ledger records whose period_end passed
    - the next evaluation for that pair reads the ledger again
    """

    cache = cache or EntitlementCache()
    stats = ReconcileStats(started_at=datetime.now(timezone.utc).isoformat())

    try:
        expired = cache.invalidate_expired(now=now)
        stats.expired_entry_invalidations = len(expired)
    except Exception:
        logger.exception("Entitlement cache reconcile cycle failed")
        stats.errors += 1

    stats.completed_at = datetime.now(timezone.utc).isoformat()
    logger.info(
        "Entitlement cache reconcile cycle completed",
        extra={
            "expired_entry_invalidations": stats.expired_entry_invalidations,
            "errors": stats.errors,
        },
    )
    return stats


def run_forever(interval_seconds: Optional[int] = None, cache: Optional[EntitlementCache] = None) -> None:
    """
    Loop the reconcile cycle against the shared Redis cache.

    Raises:
        RuntimeError: if Redis is not configured or reachable; an in-memory
            cache lives in the API process and cannot be reached from here
    """
    interval = interval_seconds or config.CACHE_RECONCILE_INTERVAL_SECONDS
    cache = cache or EntitlementCache()
    if not cache.uses_redis:
        logger.error("Entitlement cache reconcile worker requires REDIS_URL")
        raise RuntimeError("Entitlement cache reconcile worker requires a reachable REDIS_URL")
    while True:
        run_entitlement_cache_reconcile_cycle(cache)
        time.sleep(interval)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_forever()
