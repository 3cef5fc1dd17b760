"""
Alerts for ledger lookup failures, bad catalog data and repeated deny events.
"""

import logging
import time
from collections import defaultdict
from threading import Lock
from typing import Optional

from fan_entitlements import config

logger = logging.getLogger(__name__)

# Sliding one-minute window of deny timestamps per viewer
_deny_counts: defaultdict[str, list] = defaultdict(list)
_deny_lock = Lock()


def emit_lookup_failure(viewer_id: str, artist_id: str, error_message: str) -> None:
    """Support alert for a ledger read that failed or timed out."""
    logger.error(
        "Entitlement lookup failure",
        extra={"viewer_id": viewer_id, "artist_id": artist_id, "error": error_message},
    )


def emit_invalid_content(item_id: str, kind: str, access_level: Optional[str]) -> None:
    """Data-integrity warning: catalog item with a missing or unknown access level."""
    logger.warning(
        "Content item has invalid access metadata",
        extra={"item_id": item_id, "kind": kind, "access_level": access_level},
    )


def _record_deny(viewer_id: str) -> int:
    now = time.time()
    cutoff = now - 60
    with _deny_lock:
        recent = [t for t in _deny_counts[viewer_id] if t > cutoff]
        recent.append(now)
        _deny_counts[viewer_id] = recent
        return len(recent)


def record_deny_and_alert(viewer_id: str, item_id: str, threshold: Optional[int] = None) -> int:
    """Record a deny event; alert once the per-minute threshold is reached."""
    count = _record_deny(viewer_id)
    limit = threshold if threshold is not None else config.DENY_ALERT_THRESHOLD_PER_MIN
    if count >= limit:
        emit_deny_alert(viewer_id, item_id, count)
    return count


def emit_deny_alert(viewer_id: str, item_id: str, count: int) -> None:
    """Alert on repeated deny events (>N/min), e.g. a broken checkout or a scraper."""
    logger.warning(
        "Repeated entitlement deny events",
        extra={"viewer_id": viewer_id, "item_id": item_id, "count_per_min": count},
    )


def reset_deny_counts() -> None:
    with _deny_lock:
        _deny_counts.clear()
